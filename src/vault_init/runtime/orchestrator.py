from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, Optional, Protocol, Union

from vault_init.cli.formatter import OutputFormatter
from vault_init.core.context import BootstrapContext
from vault_init.core.models import InitAction, InitRequest, InitResult, LifecycleState
from vault_init.handoff.pipeline import CredentialHandoff, build_credential_handoff
from vault_init.infrastructure.vault import initialize_vault
from vault_init.runtime.health import HealthProbe, ProbeFailure
from vault_init.utils.errors import InitializationError

STATE_MESSAGES: Dict[LifecycleState, str] = {
    LifecycleState.READY: "Vault is initialised and unsealed. Going dormant...",
    LifecycleState.STANDBY: "Vault is unsealed and in standby mode. Going dormant...",
    LifecycleState.UNINITIALIZED: "Vault is not initialised. Initialising...",
    LifecycleState.SEALED: (
        "Vault is initialised, but still sealed. Use the tokens received after "
        "last initialisation to unseal. Going dormant..."
    ),
    LifecycleState.UNKNOWN: "Vault is in an unknown state. Health status code: {status_code}. Going dormant...",
}

STATE_SEVERITY: Dict[LifecycleState, str] = {
    LifecycleState.SEALED: "warning",
    LifecycleState.UNKNOWN: "warning",
}


class Prober(Protocol):
    """Anything that can classify Vault health; keeps the status code of its last answer."""

    last_status_code: Optional[int]

    def probe(self, address: str) -> Union[LifecycleState, ProbeFailure]:
        ...


class ShutdownFlag(Protocol):
    @property
    def is_requested(self) -> bool:
        ...

    @property
    def reason(self) -> Optional[str]:
        ...

    def wait(self, timeout: float) -> bool:
        ...


@dataclass(frozen=True)
class PollCancelled:
    """Poll loop outcome when shutdown was requested before a state resolved."""

    reason: str


@dataclass(frozen=True)
class BootstrapOutcome:
    """What one bootstrap run observed and did."""

    state: Optional[LifecycleState]
    action: Optional[InitAction]
    cancelled: bool = False
    location: Optional[str] = None


def decide(state: LifecycleState) -> InitAction:
    """Only a never-initialised Vault gets initialised."""
    if state == LifecycleState.UNINITIALIZED:
        return InitAction.INITIALIZE
    return InitAction.DO_NOTHING


def describe_state(state: LifecycleState, status_code: Optional[int] = None) -> str:
    """Operator message for a resolved state."""
    code = "n/a" if status_code is None else str(status_code)
    return STATE_MESSAGES[state].format(status_code=code)


def wait_for_state(
    probe: Prober,
    address: str,
    shutdown: ShutdownFlag,
    interval_seconds: float,
    log: Optional[Callable[..., None]] = None,
) -> Union[LifecycleState, PollCancelled]:
    """
    Probe until Vault reports a state or shutdown is requested.

    Unreachable Vault is retried forever, waiting interval_seconds on the
    shutdown flag between attempts so a shutdown ends the wait early.
    """
    log = log or OutputFormatter.log
    log(f"Probing Vault health at {address}...")

    while True:
        if shutdown.is_requested:
            return PollCancelled(reason=shutdown.reason or "requested")

        result = probe.probe(address)
        if not isinstance(result, ProbeFailure):
            return result

        log(f"Vault is not reachable: {result.reason}", severity="warning")
        log(f"Sleeping {interval_seconds:g}s")
        if shutdown.wait(interval_seconds):
            return PollCancelled(reason=shutdown.reason or "requested")
        log("Trying again")


class BootstrapOrchestrator:
    """
    Runs one bootstrap pass: poll, decide, initialise at most once, hand off.

    Fatal failures propagate as VaultInitError subclasses. The caller owns exit
    codes and the dormant wait.
    """

    def __init__(
        self,
        context: BootstrapContext,
        probe: Optional[Prober] = None,
        initializer: Optional[Callable[[InitRequest], InitResult]] = None,
        handoff_factory: Optional[Callable[[BootstrapContext], CredentialHandoff]] = None,
        log: Optional[Callable[..., None]] = None,
    ) -> None:
        self.context = context
        self.log = log or OutputFormatter.log
        self.probe = probe or HealthProbe(context.get_http_client())
        self._initializer = initializer or self._initialize_over_http
        self._handoff_factory = handoff_factory or partial(build_credential_handoff, log=self.log)
        self._init_attempted = False

    @property
    def init_attempted(self) -> bool:
        return self._init_attempted

    def poll(self) -> Union[LifecycleState, PollCancelled]:
        return wait_for_state(
            probe=self.probe,
            address=self.context.vault.vault_addr,
            shutdown=self.context.shutdown,
            interval_seconds=self.context.vault.check_interval,
            log=self.log,
        )

    def initialize(self) -> InitResult:
        """Send the init request. A second call in the same run is refused."""
        if self._init_attempted:
            raise InitializationError("Vault initialisation was already attempted in this run.")
        self._init_attempted = True

        self.log("Initialising Vault...")
        result = self._initializer(self.context.init_request)
        self.log("Initialisation complete", severity="success")
        return result

    def run(self) -> BootstrapOutcome:
        state = self.poll()
        if isinstance(state, PollCancelled):
            self.log("Shutdown requested before Vault state was resolved. Nothing was initialised.", severity="warning")
            return BootstrapOutcome(state=None, action=None, cancelled=True)

        action = decide(state)
        self.log(describe_state(state, self.probe.last_status_code), severity=STATE_SEVERITY.get(state, "info"))

        if action == InitAction.DO_NOTHING:
            return BootstrapOutcome(state=state, action=action)

        # AWS settings must be complete before the init request goes out.
        handoff = self._handoff_factory(self.context)

        if self.context.shutdown.is_requested:
            self.log("Shutdown requested before initialisation. Nothing was initialised.", severity="warning")
            return BootstrapOutcome(state=state, action=action, cancelled=True)

        root_token = self.initialize().root_token
        location = handoff.handoff(root_token)
        del root_token

        return BootstrapOutcome(state=state, action=action, location=location)

    def _initialize_over_http(self, request: InitRequest) -> InitResult:
        return initialize_vault(self.context.get_http_client(), self.context.vault.vault_addr, request)
