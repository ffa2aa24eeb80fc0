# Volunteer board: configuration
# Defaults, overridden by config.yaml, then by environment variables.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional

CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config.yaml"

# env var -> Config attribute
ENV_OVERRIDES = {
    "VOLUNTEER_BOARD_DB": "db_path",
    "VOLUNTEER_BOARD_API_SECRET": "api_secret",
    "LGL_API_TOKEN": "lgl_api_token",
    "LGL_API_URL": "lgl_api_url",
    "LGL_WEBHOOK_SECRET": "lgl_webhook_secret",
}


@dataclass
class Config:
    """Runtime configuration for the volunteer board server."""

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    api_secret: str = ""             # empty = mutating routes are open
    log_level: str = "INFO"

    # Storage
    db_path: str = "~/.local/share/volunteer-board/storage.db"
    storage_quota: int = 5 * 1024 * 1024
    autosave_delay: float = 0.5

    # Little Green Light
    lgl_api_token: str = ""
    lgl_api_url: str = "https://api.littlegreenlight.com/api/v1"
    lgl_webhook_secret: str = ""
    lgl_cache_ttl: int = 300

    def resolve_paths(self):
        """Expand ~ in paths."""
        self.db_path = str(Path(self.db_path).expanduser())

    def apply_env(self, environ=None):
        environ = os.environ if environ is None else environ
        for var, attr in ENV_OVERRIDES.items():
            value = environ.get(var)
            if value:
                setattr(self, attr, value)

    @classmethod
    def load(cls, path: Optional[str] = None, environ=None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        environ = os.environ if environ is None else environ
        cfg_path = Path(path or environ.get("VOLUNTEER_BOARD_CONFIG") or CONFIG_PATH)
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                known = {fld.name for fld in fields(cls)}
                cfg = cls(**{k: v for k, v in data.items() if k in known})
            except (OSError, yaml.YAMLError, TypeError, AttributeError):
                cfg = cls()
        else:
            cfg = cls()
        cfg.apply_env(environ)
        cfg.resolve_paths()
        return cfg
