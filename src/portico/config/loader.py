import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from portico.utils.diagnostics import ConfigurationError

ENV_REFERENCE = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::(?P<default>[^}]*))?\}")

def interpolate_env_vars(content: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Expand ${NAME} and ${NAME:default} references.

    An unset variable falls back to its default, or to an empty string. An
    empty default (${NAME:}) is allowed.
    """
    env = os.environ if environ is None else environ
    return ENV_REFERENCE.sub(lambda ref: env.get(ref.group("name"), ref.group("default") or ""), content)

def load_config(path: Path) -> Dict[str, Any]:
    """
    Load portico.yaml with environment variable interpolation.

    Only the 'controller' section is kept. A missing file
    yields an empty config; a malformed one is a startup error.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text()
        interpolated_content = interpolate_env_vars(content)
        full_config = yaml.safe_load(interpolated_content) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Unable to read config file '{path}': {exc}") from exc

    if not isinstance(full_config, dict):
        raise ConfigurationError(f"Config file '{path}' must contain a mapping at the top level")

    allowed_keys = {"controller"}
    filtered_config = {k: v for k, v in full_config.items() if k in allowed_keys}

    return filtered_config
