"""
Persistence for the Vault initialization result.

The init result (unseal key shares + root token) is serialized to JSON and
stored either in a local file or in a Kubernetes Secret. Exactly one store is
chosen at startup; both expose `save()` and `load()`.
"""

from .models import InitResult
from .store import (
    InitStore,
    RecordExistsError,
    RecordNotFoundError,
    StoreError,
    StoreSetupError,
)

__all__ = [
    "InitResult",
    "InitStore",
    "RecordExistsError",
    "RecordNotFoundError",
    "StoreError",
    "StoreSetupError",
]
