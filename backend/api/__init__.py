"""API route handlers."""
from . import accounts, consents, payments, sync

__all__ = ["accounts", "consents", "payments", "sync"]
