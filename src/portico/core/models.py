from pathlib import Path
from typing import Any, Dict, List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_EVENT_BUFFER_SIZE = 600


class ControllerSettings(BaseSettings):
    """
    Controller settings (the 'controller' section in portico.yaml).

    Built once at startup and passed explicitly to every component; the model
    is frozen so nothing can mutate paths or modes after wiring.
    """
    model_config = SettingsConfigDict(env_prefix='PORTICO_', extra='ignore', frozen=True)

    cfg_dir: Path = Path("/etc/haproxy")
    config_file: Optional[Path] = None
    pid_file: Path = Path("/var/run/haproxy.pid")
    cert_dir: Optional[Path] = None
    map_dir: Optional[Path] = None
    state_dir: Path = Path("/var/state/haproxy")
    transaction_dir: Optional[Path] = None
    runtime_socket: Path = Path("/var/run/haproxy-runtime-api.sock")
    haproxy_binary: str = "haproxy"

    # Dry-run: lifecycle actions are logged, never executed
    test_mode: bool = False
    validate_config: bool = True

    publish_service: Optional[str] = None
    namespaces: List[str] = Field(default_factory=list)
    event_buffer_size: int = Field(default=DEFAULT_EVENT_BUFFER_SIZE, ge=1)
    log_level: str = "INFO"

    @field_validator("publish_service")
    @classmethod
    def _validate_publish_service(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        if value.count("/") != 1 or not all(value.split("/")):
            raise ValueError(f"publish_service must be '<namespace>/<name>', got '{value}'")
        return value

    @property
    def config_path(self) -> Path:
        return self.config_file or self.cfg_dir / "haproxy.cfg"

    @property
    def cert_path(self) -> Path:
        return self.cert_dir or self.cfg_dir / "certs"

    @property
    def map_path(self) -> Path:
        return self.map_dir or self.cfg_dir / "maps"

    @property
    def transaction_path(self) -> Path:
        return self.transaction_dir or self.cfg_dir / "transactions"

    @property
    def state_file(self) -> Path:
        return self.state_dir / "global"

    def managed_dirs(self) -> List[Path]:
        """Directories that must exist before the proxy is first started."""
        return [self.cert_path, self.map_path, self.state_dir, self.transaction_path]

    def is_namespace_relevant(self, namespace: str) -> bool:
        return not self.namespaces or namespace in self.namespaces

    @classmethod
    def from_config_dict(cls, config_dict: Optional[Dict[str, Any]] = None, **overrides: Any) -> "ControllerSettings":
        """Seed settings from a loaded portico.yaml, with explicit overrides winning."""
        data: Dict[str, Any] = dict((config_dict or {}).get("controller", {}) or {})
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)
