# civic_settings.py
# Environment configuration and logging setup shared by the citizen portal and
# the admin dashboard.

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

# ---------------- CONFIG ----------------
APP_TITLE = "Civic Issues Reporter"
APP_SUB = "Report. Track. Resolve."
ADMIN_TITLE = "Admin Dashboard"

DEFAULT_BUCKET = "report-images"
DEFAULT_ROLE_LOOKUP_TIMEOUT = 5.0
DEFAULT_PRIORITY_MODEL = "priority_model.joblib"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off", ""}


class ConfigurationError(Exception):
    """Raised when the environment does not describe a usable configuration."""


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_anon_key: str
    storage_bucket: str = DEFAULT_BUCKET
    environment: str = "production"
    gate_fail_open: bool = False
    role_lookup_timeout: float = DEFAULT_ROLE_LOOKUP_TIMEOUT
    priority_model_path: str = DEFAULT_PRIORITY_MODEL
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in TRUTHY:
        return True
    if value in FALSY:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables.

    SUPABASE_URL and SUPABASE_ANON_KEY are required. CIVIC_GATE_FAIL_OPEN is
    refused when CIVIC_ENV is production so a deployed admin dashboard can
    never grant access on a failed role lookup.
    """
    env = os.environ if environ is None else environ

    url = env.get("SUPABASE_URL", "").strip()
    key = env.get("SUPABASE_ANON_KEY", "").strip()
    missing = [name for name, value in (("SUPABASE_URL", url), ("SUPABASE_ANON_KEY", key)) if not value]
    if missing:
        raise ConfigurationError("Missing required environment variables: " + ", ".join(missing))

    raw_timeout = env.get("CIVIC_ROLE_LOOKUP_TIMEOUT", str(DEFAULT_ROLE_LOOKUP_TIMEOUT))
    try:
        timeout = float(raw_timeout)
    except ValueError:
        raise ConfigurationError(f"CIVIC_ROLE_LOOKUP_TIMEOUT must be a number, got {raw_timeout!r}")
    if timeout <= 0:
        raise ConfigurationError("CIVIC_ROLE_LOOKUP_TIMEOUT must be positive")

    log_level = env.get("CIVIC_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"Unknown CIVIC_LOG_LEVEL {log_level!r}")

    settings = Settings(
        supabase_url=url,
        supabase_anon_key=key,
        storage_bucket=env.get("CIVIC_STORAGE_BUCKET", DEFAULT_BUCKET).strip() or DEFAULT_BUCKET,
        environment=env.get("CIVIC_ENV", "production").strip() or "production",
        gate_fail_open=_parse_bool("CIVIC_GATE_FAIL_OPEN", env.get("CIVIC_GATE_FAIL_OPEN", "false")),
        role_lookup_timeout=timeout,
        priority_model_path=env.get("CIVIC_PRIORITY_MODEL", DEFAULT_PRIORITY_MODEL).strip() or DEFAULT_PRIORITY_MODEL,
        log_level=log_level,
    )
    if settings.gate_fail_open and settings.is_production:
        raise ConfigurationError("CIVIC_GATE_FAIL_OPEN is not allowed when CIVIC_ENV is production")
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
