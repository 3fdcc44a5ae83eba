"""Environment-driven settings for the shop orders API."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


load_dotenv()

DEFAULT_PORT = 4000
DEFAULT_API_PREFIX = "/api"
DEFAULT_DATABASE_NAME = "shop"


def _parse_origins(raw: Optional[str]) -> List[str]:
    origins = [s.strip() for s in (raw or "").split(",") if s.strip()]
    if not origins or "*" in origins:
        return ["*"]
    return origins


def _parse_flag(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Process configuration, read once at startup."""

    mongodb_uri: Optional[str]
    database_name: str = DEFAULT_DATABASE_NAME
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    api_prefix: str = DEFAULT_API_PREFIX
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    use_transactions: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        prefix = os.getenv("API_PREFIX") or DEFAULT_API_PREFIX
        if not prefix.startswith("/"):
            prefix = "/" + prefix
        return cls(
            mongodb_uri=os.getenv("MONGODB_URI") or None,
            database_name=os.getenv("DATABASE_NAME") or DEFAULT_DATABASE_NAME,
            host=os.getenv("HOST") or "0.0.0.0",
            port=int(os.getenv("PORT") or DEFAULT_PORT),
            api_prefix=prefix.rstrip("/") or DEFAULT_API_PREFIX,
            cors_origins=_parse_origins(os.getenv("CORS_ORIGIN")),
            use_transactions=_parse_flag(os.getenv("MONGODB_TRANSACTIONS")),
        )


settings = Settings.from_env()
