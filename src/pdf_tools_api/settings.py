from __future__ import annotations

from dataclasses import dataclass
import os

COOKIE_SECURE_MODES = ("always", "never", "auto")
DEFAULT_BIND_ADDR = "0.0.0.0:8080"
DEFAULT_MAX_FILE_BYTES = 30 * 1024 * 1024
MAX_DOCUMENTS = 10
MAX_FIELD_BYTES = 1024 * 1024
SESSION_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class Settings:
    app_name: str
    username: str
    password: str
    session_secret: str
    session_ttl_seconds: int = SESSION_TTL_SECONDS
    bind_host: str = "0.0.0.0"
    bind_port: int = 8080
    tool_timeout_seconds: float = 120.0
    cookie_secure: str = "auto"
    trust_proxy_headers: bool = False
    max_documents: int = MAX_DOCUMENTS
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    max_field_bytes: int = MAX_FIELD_BYTES
    qpdf_binary: str = "qpdf"
    ghostscript_binary: str = "gs"
    scratch_root: str | None = None
    api_rate_limit_per_minute: int = 120
    login_rate_limit_per_minute: int = 10

    @property
    def max_body_bytes(self) -> int:
        # Room for every document at its cap plus control fields and framing.
        return self.max_documents * self.max_file_bytes + 5 * 1024 * 1024


def parse_str_env(name: str, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip()
    if not normalized:
        return default
    return normalized


def parse_required_str_env(name: str) -> str:
    # Credentials and secrets are taken verbatim; surrounding spaces are significant.
    raw = os.getenv(name, "")
    if not raw:
        raise ValueError(f"{name} must be set")
    return raw


def parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a numeric value, got {raw!r}") from exc


def parse_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer value, got {raw!r}") from exc


def parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def parse_choice_env(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = (parse_str_env(name, default) or default).lower()
    if value not in choices:
        raise ValueError(f"{name} must be one of: {', '.join(choices)}")
    return value


def parse_bind_addr(raw: str) -> tuple[str, int]:
    host, sep, port = raw.rpartition(":")
    if not sep or not host:
        raise ValueError(f"BIND_ADDR must look like host:port, got {raw!r}")
    try:
        parsed_port = int(port)
    except ValueError as exc:
        raise ValueError(f"BIND_ADDR port must be an integer, got {port!r}") from exc
    if not 0 < parsed_port < 65536:
        raise ValueError(f"BIND_ADDR port out of range: {parsed_port}")
    return host.strip("[]"), parsed_port


def load_settings() -> Settings:
    username = parse_required_str_env("APP_USERNAME")
    password = parse_required_str_env("APP_PASSWORD")
    session_secret = parse_required_str_env("SESSION_SECRET")
    bind_host, bind_port = parse_bind_addr(
        parse_str_env("BIND_ADDR", DEFAULT_BIND_ADDR) or DEFAULT_BIND_ADDR
    )

    tool_timeout_seconds = parse_float_env("TOOL_TIMEOUT_SECONDS", 120.0)
    if tool_timeout_seconds <= 0:
        raise ValueError("TOOL_TIMEOUT_SECONDS must be > 0")
    max_file_bytes = parse_int_env("UPLOAD_MAX_FILE_BYTES", DEFAULT_MAX_FILE_BYTES)
    if max_file_bytes < 1:
        raise ValueError("UPLOAD_MAX_FILE_BYTES must be >= 1")

    return Settings(
        app_name=parse_str_env("API_APP_NAME", "PDF Tools") or "PDF Tools",
        username=username,
        password=password,
        session_secret=session_secret,
        bind_host=bind_host,
        bind_port=bind_port,
        tool_timeout_seconds=tool_timeout_seconds,
        cookie_secure=parse_choice_env("COOKIE_SECURE", "auto", COOKIE_SECURE_MODES),
        trust_proxy_headers=parse_bool_env("TRUST_PROXY_HEADERS", False),
        max_file_bytes=max_file_bytes,
        qpdf_binary=parse_str_env("QPDF_BINARY", "qpdf") or "qpdf",
        ghostscript_binary=parse_str_env("GHOSTSCRIPT_BINARY", "gs") or "gs",
        scratch_root=parse_str_env("SCRATCH_ROOT"),
        api_rate_limit_per_minute=parse_int_env("API_RATE_LIMIT_PER_MINUTE", 120),
        login_rate_limit_per_minute=parse_int_env("LOGIN_RATE_LIMIT_PER_MINUTE", 10),
    )
