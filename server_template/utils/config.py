from dataclasses import dataclass, field
from typing import List, Mapping, Optional
import os

from dotenv import load_dotenv

DEFAULT_PORT = 3000
DEFAULT_SHUTDOWN_TIMEOUT = 30.0


def _parse_port(raw: Optional[str]) -> int:
    if raw is None or raw.strip() == "":
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer, got '{raw}'")
    if not 0 <= port <= 65535:
        raise ValueError(f"PORT out of range: {port}")
    return port


def _parse_timeout(raw: Optional[str]) -> float:
    if raw is None or raw.strip() == "":
        return DEFAULT_SHUTDOWN_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError:
        raise ValueError(f"SHUTDOWN_TIMEOUT_SECONDS must be a number, got '{raw}'")
    if not timeout > 0:
        raise ValueError(f"SHUTDOWN_TIMEOUT_SECONDS must be positive, got {timeout}")
    return timeout


def _parse_origins(raw: Optional[str]) -> List[str]:
    if not raw:
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "app"
    environment: str = "development"
    log_level: str = "INFO"
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        When no mapping is given, a local .env file is loaded first and the
        process environment is read. APP_ENV plays the role NODE_ENV has in
        Node deployments.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        environment = environ.get("APP_ENV", "development")
        default_level = "WARNING" if environment == "test" else "INFO"

        return cls(
            host=environ.get("HOST", "0.0.0.0"),
            port=_parse_port(environ.get("PORT")),
            database_url=environ.get("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=environ.get("DATABASE_NAME", "app"),
            environment=environment,
            log_level=environ.get("LOG_LEVEL", default_level).upper(),
            shutdown_timeout=_parse_timeout(environ.get("SHUTDOWN_TIMEOUT_SECONDS")),
            cors_origins=_parse_origins(environ.get("CORS_ORIGINS")),
        )
