from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from vault_init.config.loader import load_config
from vault_init.core.models import AwsSettings, HandoffSettings, InitRequest, VaultSettings
from vault_init.infrastructure.vault import build_http_client
from vault_init.runtime.shutdown import ShutdownCoordinator
from vault_init.utils.errors import ConfigurationError


class BootstrapContext(BaseModel):
    """
    Everything one bootstrap run needs, built once at startup and passed to
    each component.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Target Vault (Maps to 'vault' section / VAULT_ADDR, CHECK_INTERVAL)
    vault: VaultSettings = Field(default_factory=VaultSettings)

    # KMS key coordinates (Maps to 'aws' section / AWS_* variables)
    aws: AwsSettings = Field(default_factory=AwsSettings)

    # Token file and bucket (Maps to 'handoff' section / TOKEN_* variables)
    handoff: HandoffSettings = Field(default_factory=HandoffSettings)

    # Fixed split policy for the one-shot init request
    init_request: InitRequest = Field(default_factory=InitRequest)

    shutdown: ShutdownCoordinator = Field(default_factory=ShutdownCoordinator, exclude=True)

    _http_client: Optional[httpx.Client] = PrivateAttr(default=None)

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None, **data: Any):
        """
        Initialize the context, optionally seeding settings from a config dictionary.
        Values from the dictionary take precedence over the environment.
        """
        if config_dict is not None:
            if 'vault' not in data:
                data['vault'] = VaultSettings(**config_dict.get('vault', {}))
            if 'aws' not in data:
                data['aws'] = AwsSettings(**config_dict.get('aws', {}))
            if 'handoff' not in data:
                data['handoff'] = HandoffSettings(**config_dict.get('handoff', {}))

        super().__init__(**data)

    def get_http_client(self) -> httpx.Client:
        """Return the shared HTTP client, creating it on first use."""
        if self._http_client is None:
            self._http_client = build_http_client(timeout=self.vault.vault_http_timeout)
        return self._http_client

    def use_http_client(self, client: httpx.Client) -> None:
        """Replace the shared HTTP client (custom transports, tests)."""
        self.close()
        self._http_client = client

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None


def build_context(
    config_path: Optional[Path] = None,
    address: Optional[str] = None,
    interval: Optional[int] = None,
    shutdown: Optional[ShutdownCoordinator] = None,
) -> BootstrapContext:
    """
    Read the config file (if any) and the environment once, apply CLI
    overrides, and validate the result.
    """
    config_data: Dict[str, Any] = load_config(config_path) if config_path is not None else {}

    vault_section = dict(config_data.get('vault', {}))
    if address is not None:
        vault_section['vault_addr'] = address
    if interval is not None:
        vault_section['check_interval'] = interval
    if vault_section:
        config_data['vault'] = vault_section

    extra: Dict[str, Any] = {}
    if shutdown is not None:
        extra['shutdown'] = shutdown

    try:
        return BootstrapContext(config_dict=config_data, **extra)
    except ValidationError as exc:
        raise ConfigurationError(_describe_validation_error(exc)) from exc


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or exc.title
        problems.append(f"{location}: {error['msg']}")
    return f"Invalid {exc.title} configuration: " + "; ".join(problems)
