from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union

import httpx

from vault_init.core.models import LifecycleState
from vault_init.infrastructure.vault import health_url

HEALTH_STATUS_STATES: Dict[int, LifecycleState] = {
    200: LifecycleState.READY,
    429: LifecycleState.STANDBY,
    501: LifecycleState.UNINITIALIZED,
    503: LifecycleState.SEALED,
}


@dataclass(frozen=True)
class ProbeFailure:
    """Recoverable probe outcome: Vault could not be reached."""

    reason: str


@dataclass(frozen=True)
class ProbeReading:
    """A classified health response together with the raw status code."""

    state: LifecycleState
    status_code: int


def classify_health_status(status_code: int) -> LifecycleState:
    """Map a health endpoint status code to a lifecycle state."""
    return HEALTH_STATUS_STATES.get(status_code, LifecycleState.UNKNOWN)


class HealthProbe:
    """Issues HEAD /v1/sys/health and classifies the answer."""

    def __init__(self, client: httpx.Client) -> None:
        self.client = client
        self.last_status_code: Optional[int] = None

    def read(self, address: str) -> Union[ProbeReading, ProbeFailure]:
        """Probe once; transport failures are returned, never raised."""
        try:
            response = self.client.head(health_url(address))
        except httpx.TransportError as exc:
            return ProbeFailure(reason=f"{type(exc).__name__}: {exc}")

        self.last_status_code = response.status_code
        return ProbeReading(
            state=classify_health_status(response.status_code),
            status_code=response.status_code,
        )

    def probe(self, address: str) -> Union[LifecycleState, ProbeFailure]:
        """Probe once and return only the lifecycle state (or the failure)."""
        reading = self.read(address)
        if isinstance(reading, ProbeFailure):
            return reading
        return reading.state
