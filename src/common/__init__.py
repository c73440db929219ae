"""
Common utilities for vault-unseal.

Modules:
- vault: Vault HTTP client for the sys/seal-status, sys/init and sys/unseal endpoints
"""

__all__ = [
    "vault",
]
