"""Isolated git checkouts for change analysis."""

from wirecheck.git.checkout import (
    Checkout,
    CheckoutProvider,
    GitCheckoutProvider,
    WorkingTreeProvider,
    head_commit,
)
from wirecheck.git.errors import (
    AuthenticationError,
    GitError,
    NotARepositoryError,
    RefNotFoundError,
    RemoteError,
)

__all__ = [
    "Checkout",
    "CheckoutProvider",
    "GitCheckoutProvider",
    "WorkingTreeProvider",
    "head_commit",
    "GitError",
    "NotARepositoryError",
    "RefNotFoundError",
    "RemoteError",
    "AuthenticationError",
]
