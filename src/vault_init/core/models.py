from enum import Enum
from pathlib import Path
from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LifecycleState(str, Enum):
    """Vault lifecycle classification derived from the health endpoint status code."""

    READY = "ready"
    STANDBY = "standby"
    UNINITIALIZED = "uninitialized"
    SEALED = "sealed"
    UNKNOWN = "unknown"


class InitAction(str, Enum):
    """What the orchestrator does for a resolved lifecycle state."""

    DO_NOTHING = "do_nothing"
    INITIALIZE = "initialize"


class VaultSettings(BaseSettings):
    """
    Target Vault settings (the 'vault' section in vault-init.yaml).
    Field names double as environment variable names.
    """
    model_config = SettingsConfigDict(extra='ignore')

    vault_addr: str = "http://127.0.0.1:8200"
    check_interval: int = Field(default=10, ge=0)
    vault_http_timeout: float = Field(default=10.0, gt=0)

    @field_validator("vault_addr")
    @classmethod
    def _http_address(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"Vault address must start with http:// or https://: '{value}'")
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as exc:
            raise ValueError(f"Vault address is not a valid URL: '{value}' ({exc})") from exc
        if not url.host:
            raise ValueError(f"Vault address has no host: '{value}'")
        return value.rstrip("/")


class AwsSettings(BaseSettings):
    """
    KMS key coordinates (the 'aws' section in vault-init.yaml).
    Environment: AWS_REGION, AWS_ACCOUNT_NUMBER, AWS_KMS_KEY_ID.
    """
    model_config = SettingsConfigDict(env_prefix='AWS_', extra='ignore')

    region: str = ""
    account_number: str = ""
    kms_key_id: str = ""

    def missing_variables(self) -> List[str]:
        """Return the environment variable names of settings that are still empty."""
        required = {
            "AWS_REGION": self.region,
            "AWS_ACCOUNT_NUMBER": self.account_number,
            "AWS_KMS_KEY_ID": self.kms_key_id,
        }
        return [name for name, value in required.items() if not value.strip()]


class HandoffSettings(BaseSettings):
    """
    Where the encrypted token goes (the 'handoff' section in vault-init.yaml).
    Environment: TOKEN_BUCKET, TOKEN_DIR.
    """
    model_config = SettingsConfigDict(env_prefix='TOKEN_', extra='ignore')

    bucket: str = Field(default="encrypted-tokens", min_length=1)
    dir: Path = Path(".")


class InitRequest(BaseModel):
    """
    Body of PUT /v1/sys/init. The defaults are the fixed split policy.
    """
    model_config = ConfigDict(extra='forbid', frozen=True)

    recovery_shares: int = Field(default=1, ge=1)
    recovery_threshold: int = Field(default=1, ge=1)
    secret_shares: int = Field(default=5, ge=1)
    secret_threshold: int = Field(default=3, ge=1)

    @model_validator(mode="after")
    def _thresholds_within_shares(self) -> "InitRequest":
        if self.recovery_threshold > self.recovery_shares:
            raise ValueError("recovery_threshold cannot exceed recovery_shares")
        if self.secret_threshold > self.secret_shares:
            raise ValueError("secret_threshold cannot exceed secret_shares")
        return self


class InitResult(BaseModel):
    """
    Parsed response of a successful PUT /v1/sys/init.
    """
    model_config = ConfigDict(extra='ignore')

    keys: List[str] = Field(default_factory=list, repr=False)
    keys_base64: List[str] = Field(default_factory=list, repr=False)
    root_token: str = Field(repr=False)
    recovery_keys: List[str] = Field(default_factory=list, repr=False)
    recovery_keys_base64: List[str] = Field(default_factory=list, repr=False)

    @field_validator("keys", "keys_base64", "recovery_keys", "recovery_keys_base64", mode="before")
    @classmethod
    def _null_list_is_empty(cls, value: Optional[List[str]]) -> List[str]:
        return [] if value is None else value

    @field_validator("root_token")
    @classmethod
    def _root_token_present(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("root_token is empty")
        return value
