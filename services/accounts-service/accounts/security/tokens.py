"""Verification of bearer tokens minted by the session service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import jwt

from ..config import get_settings


@dataclass(frozen=True, slots=True)
class AccessToken:
    """Verified caller identity carried by a bearer token."""

    account_id: str
    profile_id: str

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "AccessToken":
        """Build the identity from decoded JWT claims."""
        try:
            return cls(account_id=claims["sub"], profile_id=claims["profile_id"])
        except KeyError as exc:
            raise jwt.InvalidTokenError(f"missing claim {exc.args[0]}") from exc


def decode_access_token(token: str) -> AccessToken:
    """Decode and verify a JWT, returning the caller it identifies.

    Parameters
    ----------
    token:
        Encoded JWT issued by the session service.

    Returns
    -------
    AccessToken
        The account and profile the token was issued to.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, signed by another issuer,
        or lacks the ``sub``/``profile_id`` claims.
    """

    settings = get_settings()
    claims = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer,
        options={"require": ["exp", "iss", "sub"]},
    )
    return AccessToken.from_claims(claims)
