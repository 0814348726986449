import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Config:
    database_url: str
    http_host: str = "0.0.0.0"
    http_port: int = 8080
    log_format: str = "json"
    request_timeout_seconds: float = 10.0
    admin_token: str | None = None

    @classmethod
    def from_env(cls) -> "Config":
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL must be set")

        return cls(
            database_url=database_url,
            http_host=os.environ.get("FACTS_HTTP_HOST", "0.0.0.0"),
            http_port=int(os.environ.get("FACTS_HTTP_PORT", "8080")),
            log_format=os.environ.get("FACTS_LOG_FORMAT", "json"),
            request_timeout_seconds=float(os.environ.get("FACTS_REQUEST_TIMEOUT", "10.0")),
            admin_token=os.environ.get("FACTS_ADMIN_TOKEN") or None,
        )
