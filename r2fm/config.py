"""Settings read from the environment at startup."""

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_PORT = 8080
DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class Settings:
    password: str
    signing_secret: str
    bucket: str
    endpoint_url: Optional[str] = None
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    host: str = ""
    port: int = DEFAULT_PORT
    tls_cert: Optional[str] = None
    tls_key: Optional[str] = None
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    log_file: Optional[str] = None
    log_level: str = "INFO"


def _get(env, name):
    value = env.get(name, "").strip()
    return value or None


def _int(env, name, default):
    try:
        return int(env.get(name, str(default)))
    except ValueError:
        return default


def resolve_port(env):
    port = _int(env, "R2FM_PORT", DEFAULT_PORT)
    if not 0 <= port <= 65535:
        return DEFAULT_PORT
    return port


def load_settings(env=None):
    if env is None:
        env = os.environ
    missing = [
        name for name in ("R2FM_PASSWORD", "R2FM_SIGNING_SECRET", "R2FM_BUCKET")
        if not env.get(name, "").strip()
    ]
    if missing:
        raise ConfigError("Missing required settings: " + ", ".join(missing))

    tls_cert = _get(env, "R2FM_TLS_CERT")
    tls_key = _get(env, "R2FM_TLS_KEY")
    if bool(tls_cert) != bool(tls_key):
        raise ConfigError("R2FM_TLS_CERT and R2FM_TLS_KEY must be set together")

    log_level = (env.get("R2FM_LOG_LEVEL") or "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        log_level = "INFO"

    max_upload = _int(env, "R2FM_MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)
    if max_upload <= 0:
        max_upload = DEFAULT_MAX_UPLOAD_BYTES

    return Settings(
        # Secrets are used verbatim, surrounding whitespace included.
        password=env["R2FM_PASSWORD"],
        signing_secret=env["R2FM_SIGNING_SECRET"],
        bucket=env["R2FM_BUCKET"].strip(),
        endpoint_url=_get(env, "R2FM_ENDPOINT_URL"),
        region=_get(env, "R2FM_REGION"),
        access_key_id=_get(env, "R2FM_ACCESS_KEY_ID"),
        secret_access_key=_get(env, "R2FM_SECRET_ACCESS_KEY"),
        host=env.get("R2FM_HOST", "").strip(),
        port=resolve_port(env),
        tls_cert=tls_cert,
        tls_key=tls_key,
        max_upload_bytes=max_upload,
        log_file=_get(env, "R2FM_LOG_FILE"),
        log_level=log_level,
    )
