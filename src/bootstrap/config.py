from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from common.vault import DEFAULT_VAULT_ADDR


# Environment variable names
ENV_VAULT_ADDR = "VAULT_ADDR"
ENV_SECRET_SHARES = "VAULT_SECRET_SHARES"
ENV_SECRET_THRESHOLD = "VAULT_SECRET_THRESHOLD"
ENV_OUTPUT = "VAULT_UNSEAL_OUTPUT"
ENV_INPUT = "VAULT_UNSEAL_INPUT"
ENV_K8S_SECRET = "VAULT_UNSEAL_K8S_SECRET"
ENV_K8S_NS = "VAULT_UNSEAL_K8S_NS"
ENV_K8S_SECRET_NAME = "VAULT_UNSEAL_K8S_SECRET_NAME"
ENV_K8S_IN_CLUSTER = "VAULT_UNSEAL_K8S_IN_CLUSTER"
ENV_KUBECONFIG = "KUBECONFIG"
ENV_DEBUG = "DEBUG"

DEFAULT_INIT_FILE = "/tmp/vault-init.json"

_TRUTHY = {"1", "true", "yes", "on"}


def _getenv(environ: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    v = environ.get(name)
    return v if v not in (None, "") else default


def _env_flag(environ: Mapping[str, str], name: str) -> bool:
    v = _getenv(environ, name)
    return v is not None and v.strip().lower() in _TRUTHY


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as ex:
        raise argparse.ArgumentTypeError(f"invalid integer: {raw!r}") from ex
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return value


def _positive_float(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as ex:
        raise argparse.ArgumentTypeError(f"invalid number: {raw!r}") from ex
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {value}")
    return value


def _default_kubeconfig(environ: Mapping[str, str]) -> Optional[str]:
    explicit = _getenv(environ, ENV_KUBECONFIG)
    if explicit:
        return explicit
    candidate = Path.home() / ".kube" / "config"
    return str(candidate) if candidate.exists() else None


class BootstrapConfig(BaseModel):
    """
    Immutable run configuration, built once at startup.

    Fields
    - vault_addr: base URL of Vault (`VAULT_ADDR`, default http://localhost:8200).
    - secret_shares / secret_threshold: passed to `sys/init` as-is.
    - output_file / input_file: paths used by the file store for save / load.
    - k8s_secret: store the init result in a Kubernetes Secret instead of a file.
    - k8s_namespace / k8s_secret_name: location of that Secret.
    - k8s_in_cluster: use the pod service account rather than a kubeconfig.
    - kubeconfig: kubeconfig path for out-of-cluster access (None = client default).
    - poll_interval: seconds between readiness polls.
    - timeout: HTTP timeout for Vault requests, in seconds.
    - debug: enable DEBUG logging.
    """

    model_config = ConfigDict(frozen=True)

    vault_addr: str = DEFAULT_VAULT_ADDR
    secret_shares: int = Field(5, ge=1)
    secret_threshold: int = Field(3, ge=1)
    output_file: str = DEFAULT_INIT_FILE
    input_file: str = DEFAULT_INIT_FILE
    k8s_secret: bool = False
    k8s_namespace: str = "default"
    k8s_secret_name: str = "vault-unseal"
    k8s_in_cluster: bool = False
    kubeconfig: Optional[str] = None
    poll_interval: float = Field(1.0, gt=0)
    timeout: float = Field(15.0, gt=0)
    debug: bool = False

    @classmethod
    def from_args(
        cls,
        argv: Optional[Sequence[str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BootstrapConfig":
        """Parse command-line flags, falling back to environment variables."""
        env = os.environ if environ is None else environ
        parser = build_parser(env)
        args = parser.parse_args(argv)
        return cls(
            vault_addr=_getenv(env, ENV_VAULT_ADDR, DEFAULT_VAULT_ADDR),
            secret_shares=args.secret_shares,
            secret_threshold=args.secret_threshold,
            output_file=args.output,
            input_file=args.input,
            k8s_secret=args.k8s_secret,
            k8s_namespace=args.k8s_ns,
            k8s_secret_name=args.k8s_secret_name,
            k8s_in_cluster=args.k8s_in_cluster,
            kubeconfig=args.kubeconfig,
            poll_interval=args.poll_interval,
            timeout=args.timeout,
            debug=args.debug,
        )


def build_parser(env: Mapping[str, str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-unseal",
        description="Initialize Vault if needed, persist its keys, and unseal it.",
    )
    parser.add_argument(
        "--secret-shares",
        type=_positive_int,
        default=_getenv(env, ENV_SECRET_SHARES, "5"),
        help="Number of unseal key shares to generate",
    )
    parser.add_argument(
        "--secret-threshold",
        type=_positive_int,
        default=_getenv(env, ENV_SECRET_THRESHOLD, "3"),
        help="Number of key shares needed to unseal Vault",
    )
    parser.add_argument(
        "--output",
        default=_getenv(env, ENV_OUTPUT, DEFAULT_INIT_FILE),
        help="File in which to store the unseal keys and root token",
    )
    parser.add_argument(
        "--input",
        default=_getenv(env, ENV_INPUT, DEFAULT_INIT_FILE),
        help="File from which to load the unseal keys",
    )
    parser.add_argument(
        "--k8s-secret",
        action="store_true",
        default=_env_flag(env, ENV_K8S_SECRET),
        help="Store the init result in a Kubernetes Secret instead of a file",
    )
    parser.add_argument(
        "--k8s-ns",
        default=_getenv(env, ENV_K8S_NS, "default"),
        help="Namespace of the Kubernetes Secret",
    )
    parser.add_argument(
        "--k8s-secret-name",
        default=_getenv(env, ENV_K8S_SECRET_NAME, "vault-unseal"),
        help="Name of the Kubernetes Secret",
    )
    parser.add_argument(
        "--k8s-in-cluster",
        action="store_true",
        default=_env_flag(env, ENV_K8S_IN_CLUSTER),
        help="Use in-cluster service account credentials",
    )
    parser.add_argument(
        "--kubeconfig",
        default=_default_kubeconfig(env),
        help="Path to the kubeconfig file (out-of-cluster only)",
    )
    parser.add_argument(
        "--poll-interval",
        type=_positive_float,
        default=1.0,
        help="Seconds to wait between readiness checks",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=15.0,
        help="HTTP timeout for Vault requests, in seconds",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=_env_flag(env, ENV_DEBUG),
        help="Enable debug logging",
    )
    return parser
