from typing import Optional


class VaultInitError(Exception):
    """
    Base class for fatal bootstrap failures. Carries the phase in which the
    failure happened so the CLI can narrate it.
    """
    phase = "bootstrap"

    def __init__(self, message: str, phase: Optional[str] = None):
        self.message = message
        if phase is not None:
            self.phase = phase
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.phase}] {self.message}"


class ConfigurationError(VaultInitError):
    """Missing or malformed configuration."""
    phase = "config"


class InitializationError(VaultInitError):
    """The one-shot Vault initialization failed or was rejected."""
    phase = "initialise"


class HandoffError(VaultInitError):
    """The root token could not be encrypted, written or uploaded."""
    phase = "handoff"
