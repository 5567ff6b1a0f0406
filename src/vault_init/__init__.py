"""Bootstrap a Vault instance: wait for it, initialise it once, and store its root token."""

from vault_init.core.models import InitAction, InitRequest, InitResult, LifecycleState
from vault_init.utils.errors import (
	ConfigurationError,
	HandoffError,
	InitializationError,
	VaultInitError,
)

__version__ = "0.1.0"

__all__ = [
	"ConfigurationError",
	"HandoffError",
	"InitAction",
	"InitRequest",
	"InitResult",
	"InitializationError",
	"LifecycleState",
	"VaultInitError",
	"__version__",
]
