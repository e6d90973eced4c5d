import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    bootstrap_admin_email: str
    admin_toggle_emails: tuple[str, ...]
    allow_signup: bool

    freq_limite_alerta: int
    freq_limite_critico: int
    freq_minima_percent: int

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def _getlist(name: str) -> tuple[str, ...]:
    return tuple(v.strip().lower() for v in _getenv(name).split(",") if v.strip())


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///academia.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        bootstrap_admin_email=_getenv("BOOTSTRAP_ADMIN_EMAIL", "").lower(),
        admin_toggle_emails=_getlist("ADMIN_TOGGLE_EMAILS"),
        allow_signup=_getenv("ALLOW_SIGNUP", "1") == "1",
        freq_limite_alerta=_getint("FREQ_LIMITE_ALERTA", 3),
        freq_limite_critico=_getint("FREQ_LIMITE_CRITICO", 5),
        freq_minima_percent=_getint("FREQ_MINIMA_PERCENT", 75),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "BOOTSTRAP_ADMIN_EMAIL": s.bootstrap_admin_email,
        "ADMIN_TOGGLE_EMAILS": s.admin_toggle_emails,
        "ALLOW_SIGNUP": s.allow_signup,
        # attendance thresholds (absence counts / minimum percentage)
        "FREQ_LIMITE_ALERTA": s.freq_limite_alerta,
        "FREQ_LIMITE_CRITICO": s.freq_limite_critico,
        "FREQ_MINIMA_PERCENT": s.freq_minima_percent,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        # justification attachments (10MB)
        "MAX_CONTENT_LENGTH": 10 * 1024 * 1024,
    }
