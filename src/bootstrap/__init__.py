"""
Vault bootstrap: wait for Vault, initialize it once, persist the keys, unseal.

Modules:
- config: immutable run configuration (flags + environment)
- handler: orchestration state machine and CLI entry point
"""

__all__ = [
    "config",
    "handler",
]
