from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass
class Settings:
    """Runtime configuration, normally read from the environment."""

    secret_key: str = "development-secret-change-me"
    gcp_project: Optional[str] = None
    recipes_collection: str = "recipes"
    users_collection: str = "users"
    gcs_bucket: Optional[str] = None
    upload_dir: str = "uploads"
    token_ttl_minutes: int = 7 * 24 * 60
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    log_format: str = "json"
    max_upload_mb: int = 16

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""

        return cls(
            secret_key=os.environ.get("SECRET_KEY", cls.secret_key),
            gcp_project=os.environ.get("GCP_PROJECT"),
            recipes_collection=os.environ.get("RECIPES_COLLECTION", cls.recipes_collection),
            users_collection=os.environ.get("USERS_COLLECTION", cls.users_collection),
            gcs_bucket=os.environ.get("GCS_BUCKET") or None,
            upload_dir=os.environ.get("UPLOAD_DIR", cls.upload_dir),
            token_ttl_minutes=int(os.environ.get("TOKEN_TTL_MINUTES", cls.token_ttl_minutes)),
            cors_origins=_split_origins(os.environ.get("CORS_ORIGINS", "*")),
            log_level=os.environ.get("LOG_LEVEL", cls.log_level),
            log_format=os.environ.get("LOG_FORMAT", cls.log_format),
            max_upload_mb=int(os.environ.get("MAX_UPLOAD_MB", cls.max_upload_mb)),
        )


__all__ = ["Settings"]
