from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Optional

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from .models import InitResult, dump_init_result
from .store import (
    RecordExistsError,
    RecordNotFoundError,
    StoreError,
    StoreSetupError,
    decode_record,
)


# Field inside the Secret's data map holding the JSON record
VALUE_FIELD = "value"
MANAGED_BY = "vault-unseal"

logger = logging.getLogger(__name__)


def build_core_api(*, in_cluster: bool, kubeconfig: Optional[str] = None) -> k8s_client.CoreV1Api:
    """Build a CoreV1Api from in-cluster credentials or a kubeconfig file.

    Raises `StoreSetupError` when credentials cannot be loaded.
    """
    try:
        if in_cluster:
            k8s_config.load_incluster_config()
        else:
            k8s_config.load_kube_config(config_file=kubeconfig)
    except (k8s_config.ConfigException, OSError, TypeError) as ex:
        source = "in-cluster service account" if in_cluster else (kubeconfig or "default kubeconfig")
        raise StoreSetupError(f"Could not load Kubernetes credentials from {source}: {ex}") from ex
    return k8s_client.CoreV1Api()


class KubernetesInitStore:
    """
    Kubernetes Secret persistence for `InitResult`.

    The record is the JSON document stored (base64, as Secret data requires)
    under the `value` field of an Opaque Secret `name` in `namespace`.

    - `save()` only ever creates the Secret. If it already exists the API
      answers 409 and `RecordExistsError` is raised, so a second initialization
      can never replace key shares issued earlier.
    - `load()` reads the Secret back; a 404 raises `RecordNotFoundError`.
    """

    def __init__(self, *, api: k8s_client.CoreV1Api, namespace: str, name: str) -> None:
        if not namespace or not name:
            raise StoreSetupError("Kubernetes secret namespace and name are required")
        self._api = api
        self._namespace = namespace
        self._name = name

    @classmethod
    def from_kubeconfig(
        cls,
        *,
        namespace: str,
        name: str,
        in_cluster: bool = False,
        kubeconfig: Optional[os.PathLike[str] | str] = None,
    ) -> "KubernetesInitStore":
        api = build_core_api(
            in_cluster=in_cluster,
            kubeconfig=os.fspath(kubeconfig) if kubeconfig else None,
        )
        return cls(api=api, namespace=namespace, name=name)

    @property
    def ref(self) -> str:
        return f"{self._namespace}/{self._name}"

    def save(self, result: InitResult) -> None:
        encoded = base64.b64encode(dump_init_result(result)).decode("ascii")
        secret = k8s_client.V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=k8s_client.V1ObjectMeta(
                name=self._name,
                labels={"app.kubernetes.io/managed-by": MANAGED_BY},
            ),
            type="Opaque",
            data={VALUE_FIELD: encoded},
        )
        try:
            self._api.create_namespaced_secret(namespace=self._namespace, body=secret)
        except ApiException as e:
            if e.status == 409:
                raise RecordExistsError(f"Secret {self.ref} already exists") from e
            raise StoreError(f"Could not create secret {self.ref}: {e.status} {e.reason}") from e
        except HTTPError as e:
            raise StoreError(f"Could not reach Kubernetes API to create secret {self.ref}: {e}") from e
        logger.info("stored init result in secret %s", self.ref)

    def load(self) -> InitResult:
        try:
            secret = self._api.read_namespaced_secret(name=self._name, namespace=self._namespace)
        except ApiException as e:
            if e.status == 404:
                raise RecordNotFoundError(f"Secret {self.ref} not found") from e
            raise StoreError(f"Could not read secret {self.ref}: {e.status} {e.reason}") from e
        except HTTPError as e:
            raise StoreError(f"Could not reach Kubernetes API to read secret {self.ref}: {e}") from e

        data = secret.data or {}
        raw = data.get(VALUE_FIELD)
        if not raw:
            raise RecordNotFoundError(f"Secret {self.ref} has no '{VALUE_FIELD}' field")
        try:
            decoded = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as ex:
            raise StoreError(f"Secret {self.ref} field '{VALUE_FIELD}' is not valid base64") from ex
        return decode_record(decoded, source=f"secret {self.ref}")
