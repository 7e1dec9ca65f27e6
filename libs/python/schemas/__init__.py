"""Shared schema exports."""

from .account import Account, AccountsEnvelope, Change

__all__ = [
    "Account",
    "AccountsEnvelope",
    "Change",
]
