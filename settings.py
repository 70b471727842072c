# settings.py
import os
from dataclasses import dataclass


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=1):
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    return number if number >= minimum else default


@dataclass(frozen=True)
class Settings:
    api_base_url: str | None = None
    api_token: str | None = None
    api_timeout: int = 30
    batch_size: int = 500
    default_country: str = "Canada"
    phone_region: str = "US"
    id_prefix: str = "lmn"
    log_level: str = "INFO"
    verbose: bool = False

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        base_url = (env.get("CRM_API_BASE_URL") or "").strip().rstrip("/")
        return cls(
            api_base_url=base_url or None,
            api_token=(env.get("CRM_API_TOKEN") or "").strip() or None,
            api_timeout=_coerce_int(env.get("CRM_API_TIMEOUT"), 30),
            batch_size=_coerce_int(env.get("IMPORT_BATCH_SIZE"), 500),
            default_country=(env.get("IMPORT_DEFAULT_COUNTRY") or "Canada").strip(),
            phone_region=(env.get("IMPORT_PHONE_REGION") or "US").strip().upper(),
            id_prefix=(env.get("IMPORT_ID_PREFIX") or "lmn").strip().lower(),
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
            verbose=_coerce_bool(env.get("IMPORT_VERBOSE"), default=False),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached instance so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
