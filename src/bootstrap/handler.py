from __future__ import annotations

import enum
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from common.vault import VaultClient, VaultError, VaultStatus
from state.file_store import FileInitStore
from state.store import InitStore, StoreError, StoreSetupError

from .config import BootstrapConfig


EXIT_OK = 0
EXIT_UNSEAL_FAILED = 1
EXIT_FATAL = 2

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    WAITING_READY = "waiting_ready"
    CHECK_INIT = "check_init"
    INITIALIZING = "initializing"
    PERSISTING = "persisting"
    CHECK_SEAL = "check_seal"
    UNSEALING = "unsealing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Outcome:
    """Result of one bootstrap run.

    - phase: DONE or FAILED.
    - exit_code: EXIT_OK, EXIT_UNSEAL_FAILED (every key sent, still sealed)
      or EXIT_FATAL (init/persistence/transport error).
    - history: phases visited, in order.
    """

    phase: Phase
    exit_code: int
    message: str
    history: List[Phase] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_code == EXIT_OK


class Bootstrapper:
    """
    Drives Vault from uninitialized/sealed to initialized and unsealed.

    Flow
    - Poll `sys/seal-status` until Vault answers (forever, fixed interval).
    - If not initialized: initialize, then save the init result. Either
      failing is fatal; nothing is rolled back on the Vault side.
    - If the first status said sealed: load the init result from the store
      (even when it was saved moments ago) and submit keys until unsealed.

    The seal check reuses the status observed before initialization. A vault
    that was just initialized is always sealed, so it is not polled again.
    """

    def __init__(
        self,
        config: BootstrapConfig,
        client: VaultClient,
        store: InitStore,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._client = client
        self._store = store
        self._sleep = sleep
        self._history: List[Phase] = []

    def wait_until_ready(self) -> VaultStatus:
        """Block until `sys/seal-status` returns a usable status.

        Unreachable Vault and unparseable responses are retried the same way.
        """
        logger.info("waiting for vault to be ready at %s", self._client.addr)
        while True:
            try:
                return self._client.seal_status()
            except VaultError as e:
                logger.warning("vault is not ready yet: %s", e)
                self._sleep(self._config.poll_interval)

    def run(self) -> Outcome:
        self._history = []

        self._enter(Phase.WAITING_READY)
        status = self.wait_until_ready()
        logger.info(
            "vault is sealed: %s, vault is initialized: %s",
            status.sealed,
            status.initialized,
        )

        self._enter(Phase.CHECK_INIT)
        if not status.initialized:
            self._enter(Phase.INITIALIZING)
            logger.info(
                "initializing vault with %d shares and a threshold of %d",
                self._config.secret_shares,
                self._config.secret_threshold,
            )
            try:
                result = self._client.initialize(
                    self._config.secret_shares, self._config.secret_threshold
                )
            except VaultError as e:
                return self._fail(EXIT_FATAL, f"could not initialize vault: {e}")

            self._enter(Phase.PERSISTING)
            try:
                self._store.save(result)
            except StoreError as e:
                return self._fail(EXIT_FATAL, f"could not save init result: {e}")
            logger.info("saved init result (%d keys)", len(result.keys))

        self._enter(Phase.CHECK_SEAL)
        if not status.sealed:
            return self._done("vault is already unsealed")

        self._enter(Phase.UNSEALING)
        logger.info("unsealing vault")
        try:
            stored = self._store.load()
        except StoreError as e:
            return self._fail(EXIT_FATAL, f"could not load init result: {e}")

        try:
            unsealed = self._client.unseal(stored.keys)
        except VaultError as e:
            return self._fail(EXIT_FATAL, f"could not unseal vault: {e}")

        if not unsealed:
            return self._fail(EXIT_UNSEAL_FAILED, "failed to unseal vault")
        return self._done("vault successfully unsealed")

    # --------------- Internal ---------------
    def _enter(self, phase: Phase) -> None:
        logger.debug("phase -> %s", phase.value)
        self._history.append(phase)

    def _done(self, message: str) -> Outcome:
        self._enter(Phase.DONE)
        logger.info(message)
        return Outcome(Phase.DONE, EXIT_OK, message, list(self._history))

    def _fail(self, exit_code: int, message: str) -> Outcome:
        self._enter(Phase.FAILED)
        logger.error(message)
        return Outcome(Phase.FAILED, exit_code, message, list(self._history))


def build_store(config: BootstrapConfig) -> InitStore:
    """Construct the one store selected by `config`.

    Raises `StoreSetupError` when the Kubernetes client cannot be built.
    """
    if not config.k8s_secret:
        return FileInitStore(config.output_file, config.input_file)

    # Imported lazily so file-only deployments do not load the Kubernetes client
    from state.k8s_store import KubernetesInitStore

    return KubernetesInitStore.from_kubeconfig(
        namespace=config.k8s_namespace,
        name=config.k8s_secret_name,
        in_cluster=config.k8s_in_cluster,
        kubeconfig=config.kubeconfig,
    )


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def run_once(config: BootstrapConfig, *, sleep: Callable[[float], None] = time.sleep) -> Outcome:
    try:
        store = build_store(config)
    except StoreSetupError as e:
        logger.error("could not set up init result store: %s", e)
        return Outcome(Phase.FAILED, EXIT_FATAL, str(e), [Phase.FAILED])

    with VaultClient(config.vault_addr, timeout=config.timeout) as client:
        return Bootstrapper(config, client, store, sleep=sleep).run()


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = BootstrapConfig.from_args(argv)
    configure_logging(config.debug)
    return run_once(config).exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
