from __future__ import annotations

import json
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class InitResult(BaseModel):
    """
    Output of a successful Vault initialization, persisted for later unseals.

    Fields
    - keys: unseal key shares, in the order Vault returned them.
    - root_token: the initial root token.

    Notes
    - This is the only object the tool persists. It is written once, right
      after initialization, and afterwards only read back on the unseal path.
    - The stored form is the JSON encoding of this model:
        {"keys": ["..."], "root_token": "..."}
    """

    model_config = ConfigDict(frozen=True)

    keys: List[str] = Field(..., description="Unseal key shares")
    root_token: str = Field(..., description="Initial root token")


def dump_init_result(result: InitResult) -> bytes:
    # Deterministic JSON: stable key order, no extra whitespace
    return json.dumps(
        result.model_dump(), separators=(",", ":"), sort_keys=True
    ).encode("utf-8")


def load_init_result(data: bytes) -> InitResult:
    raw = json.loads(data.decode("utf-8"))
    return InitResult.model_validate(raw)
