from __future__ import annotations

from typing import Protocol

from pydantic import ValidationError

from .models import InitResult, load_init_result


class StoreError(RuntimeError):
    """Base error for init-result persistence."""


class RecordNotFoundError(StoreError):
    """No persisted init result exists at the configured location."""


class RecordExistsError(StoreError):
    """A persisted init result already exists; saves never overwrite."""


class StoreSetupError(StoreError):
    """The store (or its backing client/credentials) could not be built."""


class InitStore(Protocol):
    """Durable home for the `InitResult` produced by Vault initialization."""

    def save(self, result: InitResult) -> None: ...

    def load(self) -> InitResult: ...


def decode_record(data: bytes, *, source: str) -> InitResult:
    try:
        return load_init_result(data)
    except (ValueError, ValidationError) as ex:
        raise StoreError(f"Failed to parse init result from {source}") from ex
