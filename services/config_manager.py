# --- START OF FULL services/config_manager.py ---
import os
from typing import Any, Dict

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from tools.logger import log_info, log_error, log_warning

SETTINGS_PATH = os.path.join("config", "settings.yaml")

# env var -> settings key
ENV_OVERRIDES = {
    "EXTRACTOR_HOST": "host",
    "PORT": "port",
    "PROJECT_ROOT": "project_root",
    "BACKUP_DIR_NAME": "backup_dir_name",
    "CREATE_BACKUPS": "create_backups",
    "BACKUP_MAX_AGE_DAYS": "backup_max_age_days",
    "BACKUP_CLEANUP_INTERVAL_HOURS": "backup_cleanup_interval_hours",
    "CONSULT_LEDGER": "consult_ledger",
}


class ServiceSettings(BaseModel):
    host: str = Field("127.0.0.1", description="Interface the HTTP bridge binds to.")
    port: int = Field(3030, description="Port the browser extension posts to.")
    project_root: str | None = Field(None, description="Optional root applied at startup.")
    backup_dir_name: str = Field(".claude-backups", description="Backup folder inside the project root.")
    create_backups: bool = True
    backup_max_age_days: float = Field(7.0, description="Backups older than this are removed by cleanup.")
    backup_cleanup_interval_hours: float = Field(24.0, description="0 disables the scheduled cleanup.")
    consult_ledger: bool = Field(True, description="Skip redundant backups for identical resubmissions.")

    @field_validator("port")
    @classmethod
    def _check_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"port out of range: {v}")
        return v

    @field_validator("backup_dir_name")
    @classmethod
    def _check_backup_dir_name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"backup_dir_name must be a single folder name, got {v!r}")
        return v

    @field_validator("backup_max_age_days", "backup_cleanup_interval_hours")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("project_root", mode="before")
    @classmethod
    def _blank_root_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def backup_max_age_seconds(self) -> float:
        return self.backup_max_age_days * 24 * 60 * 60


def _load_yaml_settings(path: str) -> Dict[str, Any]:
    fn_name = "_load_yaml_settings"
    if not os.path.exists(path):
        log_warning("config_manager", fn_name, f"{path} not found. Using built-in defaults.")
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
        if not content.strip():
            return {}
        data = yaml.safe_load(content) or {}
        if not isinstance(data, dict):
            log_error("config_manager", fn_name, f"{path} must contain a mapping, got {type(data).__name__}. Ignoring.")
            return {}
        return data
    except (yaml.YAMLError, OSError) as e:
        log_error("config_manager", fn_name, f"Failed to load {path}: {e}", e)
        return {}


def load_settings(path: str | None = None, env: Dict[str, str] | None = None) -> ServiceSettings:
    """
    Builds ServiceSettings from config/settings.yaml overlaid with environment variables.
    Invalid fields are logged and fall back to their defaults.
    """
    fn_name = "load_settings"
    if env is None:
        load_dotenv()
        env = dict(os.environ)

    raw = _load_yaml_settings(path or SETTINGS_PATH)
    for env_name, key in ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is not None and value != "":
            raw[key] = value

    unknown = set(raw) - set(ServiceSettings.model_fields)
    if unknown:
        log_warning("config_manager", fn_name, f"Ignoring unknown settings keys: {sorted(unknown)}")
    raw = {k: v for k, v in raw.items() if k in ServiceSettings.model_fields}

    try:
        settings = ServiceSettings(**raw)
    except ValidationError as e:
        bad_fields = {err["loc"][0] for err in e.errors() if err.get("loc")}
        log_error("config_manager", fn_name, f"Invalid settings for {sorted(bad_fields)}, using defaults for those: {e}")
        settings = ServiceSettings(**{k: v for k, v in raw.items() if k not in bad_fields})

    log_info("config_manager", fn_name, f"Settings loaded (port={settings.port}, backups={settings.create_backups}, backup_dir='{settings.backup_dir_name}').")
    return settings

# --- END OF FULL services/config_manager.py ---
