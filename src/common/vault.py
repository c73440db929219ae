from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from state.models import InitResult


DEFAULT_VAULT_ADDR = "http://localhost:8200"

logger = logging.getLogger(__name__)


class VaultError(RuntimeError):
    """Base error for Vault client."""


class VaultTransportError(VaultError):
    """The request never produced an HTTP response (connect/read/timeout)."""


class VaultApiError(VaultError):
    """API returned an error status or a payload we could not understand."""


class VaultStatus(BaseModel):
    """Snapshot of `GET /v1/sys/seal-status`."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    initialized: bool
    sealed: bool
    threshold: int = Field(0, alias="t")
    shares: int = Field(0, alias="n")
    progress: int = 0
    cluster_name: Optional[str] = None
    version: Optional[str] = None
    cluster_id: Optional[str] = None


class UnsealResponse(BaseModel):
    sealed: bool
    threshold: Optional[int] = Field(None, alias="t")
    shares: Optional[int] = Field(None, alias="n")
    progress: Optional[int] = None


class VaultClient:
    """
    Minimal client for the Vault `sys/` endpoints used during bootstrap.

    Notes
    - Every call is a single synchronous request; nothing is retried here.
      Readiness polling lives in the orchestrator.
    - Transport failures, non-2xx statuses and malformed payloads all raise
      `VaultError` subclasses so callers can treat them uniformly.
    """

    def __init__(
        self,
        addr: str = DEFAULT_VAULT_ADDR,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not addr:
            raise ValueError("addr is required")
        self._addr = addr.rstrip("/")
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)

    @property
    def addr(self) -> str:
        return self._addr

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "VaultClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def seal_status(self) -> VaultStatus:
        data = self._request("GET", "/v1/sys/seal-status")
        try:
            return VaultStatus.model_validate(data)
        except ValidationError as ve:
            raise VaultApiError(f"Failed to parse seal status: {ve}") from ve

    def initialize(self, shares: int, threshold: int) -> InitResult:
        """
        Initialize Vault with `shares` key shares and an unseal `threshold`.

        The pair is not validated locally; Vault rejects invalid combinations
        and the rejection surfaces as `VaultApiError`. A response with an
        unexpected number of keys is logged and returned as-is.
        """
        data = self._request(
            "PUT",
            "/v1/sys/init",
            {"secret_shares": shares, "secret_threshold": threshold},
        )
        try:
            result = InitResult.model_validate(data)
        except ValidationError as ve:
            raise VaultApiError(f"Failed to parse init response: {ve}") from ve
        if len(result.keys) != shares:
            # Vault is initialized either way; the keys must still be saved
            logger.warning(
                "vault returned %d keys, expected %d", len(result.keys), shares
            )
        return result

    def submit_unseal_key(self, key: str) -> UnsealResponse:
        data = self._request("PUT", "/v1/sys/unseal", {"key": key})
        try:
            return UnsealResponse.model_validate(data)
        except ValidationError as ve:
            raise VaultApiError(f"Failed to parse unseal response: {ve}") from ve

    def unseal(self, keys: Sequence[str]) -> bool:
        """
        Submit `keys` in order until Vault reports it is unsealed.

        Returns True as soon as a response has `sealed == false`, without
        sending the remaining keys. Returns False when every key was accepted
        and Vault is still sealed, or when `keys` is empty.

        Errors abort the call. A later call starts again from the first key;
        Vault accepts shares it has already counted, so no progress is tracked
        here.
        """
        for i, key in enumerate(keys, start=1):
            resp = self.submit_unseal_key(key)
            logger.debug(
                "submitted unseal key %d/%d (progress=%s, sealed=%s)",
                i,
                len(keys),
                resp.progress,
                resp.sealed,
            )
            if not resp.sealed:
                return True
        return False

    # --------------- Internal ---------------
    def _request(
        self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        url = f"{self._addr}{path}"
        try:
            resp = self._client.request(method, url, json=json_body)
        except httpx.DecodingError as exc:
            raise VaultApiError(f"Failed to decode response body from Vault {path}: {exc}") from exc
        except httpx.RequestError as exc:
            raise VaultTransportError(f"{method} {path} failed: {exc}") from exc

        if not resp.is_success:
            raise VaultApiError(
                f"HTTP {resp.status_code} from Vault {path}: {self._error_detail(resp)}"
            )
        try:
            payload = resp.json()
        except ValueError as exc:  # JSON decode error
            raise VaultApiError(f"Failed to parse JSON from Vault {path}") from exc
        if not isinstance(payload, dict):
            raise VaultApiError(f"Malformed response from Vault {path}")
        return payload

    @staticmethod
    def _error_detail(resp: httpx.Response) -> str:
        # Vault error bodies look like {"errors": ["..."]}
        try:
            body = resp.json()
        except ValueError:
            return resp.text[:200]
        errors = body.get("errors") if isinstance(body, dict) else None
        if isinstance(errors, list) and errors:
            return "; ".join(str(e) for e in errors)
        return resp.text[:200]


__all__ = [
    "DEFAULT_VAULT_ADDR",
    "UnsealResponse",
    "VaultApiError",
    "VaultClient",
    "VaultError",
    "VaultStatus",
    "VaultTransportError",
]
