from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DATA_DIR = BASE_DIR / "data"


def _resolve_path(raw_path: str | None, default_path: Path) -> Path:
    if not raw_path:
        return default_path
    path = Path(raw_path).expanduser()
    if path.is_absolute():
        return path
    return (BASE_DIR / path).resolve()


# Load .env early so path env vars are available for module-level constants.
load_dotenv()

DATA_DIR = _resolve_path(os.getenv("DATA_DIR"), DEFAULT_DATA_DIR)
STORAGE_DIR = _resolve_path(os.getenv("STORAGE_DIR"), DATA_DIR / "storage" / "users")
EXPORTS_DIR = _resolve_path(os.getenv("EXPORTS_DIR"), DATA_DIR / "temp" / "excel")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int
    user: str
    password: str
    sender: str
    admin_email: str
    use_tls: bool = True
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class AppConfig:
    telegram_bot_token: str
    telegram_channel_id: str | None = None
    smtp: SmtpConfig | None = None
    session_ttl_minutes: int = 120
    allow_zero_quantities: bool = True
    restore_reports: bool = True
    api_enabled: bool = False
    api_host: str = "0.0.0.0"
    api_port: int = 3000


class ConfigError(RuntimeError):
    pass


def _parse_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean (true/false)")


def _parse_int(name: str, default: int, low: int, high: int) -> int:
    raw = os.getenv(name, "").strip() or str(default)
    try:
        value = int(raw)
        if value < low or value > high:
            raise ValueError
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer in range [{low}, {high}]") from exc
    return value


def _normalize_channel_id(raw: str) -> str | None:
    channel_id = raw.strip()
    if not channel_id:
        return None
    if channel_id.startswith("@") and len(channel_id) > 1:
        return channel_id
    if channel_id.lstrip("-").isdigit():
        return channel_id
    raise ConfigError("TELEGRAM_CHANNEL_ID must be '@channel_name' or a numeric chat id")


def _load_smtp() -> SmtpConfig | None:
    host = os.getenv("SMTP_HOST", "").strip()
    admin_email = os.getenv("ADMIN_EMAIL", "").strip()
    if not host and not admin_email:
        return None
    if not host or not admin_email:
        raise ConfigError("SMTP_HOST and ADMIN_EMAIL must be set together")

    user = os.getenv("SMTP_USER", "").strip()
    timeout_raw = os.getenv("SMTP_TIMEOUT_SECONDS", "30").strip() or "30"
    try:
        timeout_seconds = float(timeout_raw)
        if timeout_seconds <= 0:
            raise ValueError
    except ValueError as exc:
        raise ConfigError("SMTP_TIMEOUT_SECONDS must be a positive number") from exc

    return SmtpConfig(
        host=host,
        port=_parse_int("SMTP_PORT", 587, 1, 65535),
        user=user,
        password=os.getenv("SMTP_PASSWORD", ""),
        sender=os.getenv("SMTP_FROM", "").strip() or user or admin_email,
        admin_email=admin_email,
        use_tls=_parse_bool("SMTP_USE_TLS", True),
        timeout_seconds=timeout_seconds,
    )


def load_config() -> AppConfig:
    load_dotenv()

    telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    if not telegram_bot_token:
        raise ConfigError("Missing TELEGRAM_BOT_TOKEN in environment/.env")

    return AppConfig(
        telegram_bot_token=telegram_bot_token,
        telegram_channel_id=_normalize_channel_id(os.getenv("TELEGRAM_CHANNEL_ID", "")),
        smtp=_load_smtp(),
        session_ttl_minutes=_parse_int("SESSION_TTL_MINUTES", 120, 0, 10080),
        allow_zero_quantities=_parse_bool("ALLOW_ZERO_QUANTITIES", True),
        restore_reports=_parse_bool("RESTORE_REPORTS", True),
        api_enabled=_parse_bool("API_ENABLED", False),
        api_host=os.getenv("API_HOST", "0.0.0.0").strip() or "0.0.0.0",
        api_port=_parse_int("API_PORT", 3000, 1, 65535),
    )


def ensure_data_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    STORAGE_DIR.mkdir(parents=True, exist_ok=True)
    EXPORTS_DIR.mkdir(parents=True, exist_ok=True)
