"""Configuration module for specmcp.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path

STORAGE_BACKENDS = ("sqlite", "file")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_port(name: str, default: str) -> int:
    port_str = os.getenv(name, default)
    try:
        port = int(port_str)
        if not 1 <= port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {port}")
    except ValueError as e:
        raise ValueError(f"Invalid {name} value '{port_str}': {e}") from e
    return port


def _parse_positive_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {name} value '{raw}': {e}") from e
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")
    return value


def _parse_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class Config:
    """Application configuration."""

    spec_home: Path
    spec_db: Path
    docs_dir: Path
    storage: str
    mcp_port: int
    api_port: int
    auth_token: str | None
    read_only: bool
    enforce_version: bool
    max_body_size: int
    heartbeat_interval: int
    heartbeat_timeout: int
    ws_max_connections: int
    log_level: str

    @classmethod
    def from_env(cls, read_only_override: bool | None = None) -> "Config":
        """Load configuration from environment variables.

        Args:
            read_only_override: If provided, overrides the SPEC_READ_ONLY env var.
        """
        default_home = str(Path.home() / ".specmcp")
        spec_home = Path(os.getenv("SPEC_HOME", default_home)).expanduser()

        spec_db = Path(os.getenv("SPEC_DB", str(spec_home / "specs.db"))).expanduser()
        docs_dir = Path(os.getenv("SPEC_DOCS_DIR", str(spec_home / "docs"))).expanduser()

        storage = os.getenv("SPEC_STORAGE", "sqlite").lower()
        if storage not in STORAGE_BACKENDS:
            raise ValueError(
                f"Invalid SPEC_STORAGE value '{storage}': "
                f"expected one of {', '.join(STORAGE_BACKENDS)}"
            )

        mcp_port = _parse_port("SPEC_PORT", "8080")
        api_port = _parse_port("SPEC_API_PORT", "3001")

        # Auth token - must be at least 32 bytes if set
        auth_token = os.getenv("SPEC_AUTH_TOKEN")
        if auth_token is not None and len(auth_token) < 32:
            raise ValueError("SPEC_AUTH_TOKEN must be at least 32 characters for security")

        # Read-only mode - CLI flag takes precedence over env var
        if read_only_override is not None:
            read_only = read_only_override
        else:
            read_only = _parse_flag("SPEC_READ_ONLY")

        heartbeat_interval = _parse_positive_int("SPEC_HEARTBEAT_INTERVAL", "30")
        heartbeat_timeout = _parse_positive_int("SPEC_HEARTBEAT_TIMEOUT", "60")
        if heartbeat_timeout < heartbeat_interval:
            raise ValueError(
                "SPEC_HEARTBEAT_TIMEOUT must be >= SPEC_HEARTBEAT_INTERVAL "
                f"({heartbeat_timeout} < {heartbeat_interval})"
            )

        log_level = os.getenv("SPEC_LOG_LEVEL", "INFO").upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid SPEC_LOG_LEVEL value '{log_level}': "
                f"expected one of {', '.join(LOG_LEVELS)}"
            )

        return cls(
            spec_home=spec_home,
            spec_db=spec_db,
            docs_dir=docs_dir,
            storage=storage,
            mcp_port=mcp_port,
            api_port=api_port,
            auth_token=auth_token,
            read_only=read_only,
            enforce_version=_parse_flag("SPEC_ENFORCE_VERSION"),
            max_body_size=_parse_positive_int("SPEC_MAX_BODY_SIZE", "1048576"),
            heartbeat_interval=heartbeat_interval,
            heartbeat_timeout=heartbeat_timeout,
            ws_max_connections=_parse_positive_int("SPEC_WS_MAX_CONNECTIONS", "100"),
            log_level=log_level,
        )
