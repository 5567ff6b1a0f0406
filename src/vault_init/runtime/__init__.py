"""Health probing and shutdown coordination."""

from vault_init.runtime.health import (
	HEALTH_STATUS_STATES,
	HealthProbe,
	ProbeFailure,
	ProbeReading,
	classify_health_status,
)
from vault_init.runtime.shutdown import DEFAULT_SIGNALS, ShutdownCoordinator

__all__ = [
	"DEFAULT_SIGNALS",
	"HEALTH_STATUS_STATES",
	"HealthProbe",
	"ProbeFailure",
	"ProbeReading",
	"ShutdownCoordinator",
	"classify_health_status",
]
