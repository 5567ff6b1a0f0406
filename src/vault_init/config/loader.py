import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict

from vault_init.utils.errors import ConfigurationError

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")

DEFAULT_CONFIG_NAME = "vault-init.yaml"
ALLOWED_SECTIONS = {"vault", "aws", "handoff"}

def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)

def load_config(path: Path) -> Dict[str, Any]:
    """
    Load vault-init.yaml with environment variable interpolation.

    A missing file yields an empty mapping. Keys outside the vault, aws and
    handoff sections are dropped.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text(encoding="utf-8")
        interpolated_content = interpolate_env_vars(content)
        full_config = yaml.safe_load(interpolated_content) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Unable to read config file {path}: {exc}") from exc

    if not isinstance(full_config, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping at the top level.")

    filtered_config = {k: v for k, v in full_config.items() if k in ALLOWED_SECTIONS}

    for section, values in filtered_config.items():
        if values is None:
            filtered_config[section] = {}
        elif not isinstance(values, dict):
            raise ConfigurationError(f"Config section '{section}' must be a mapping.")

    return filtered_config
