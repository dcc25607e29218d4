"""Configuration primitives for the tenant drive service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

GIB = 1024 * 1024 * 1024


@dataclass
class StorageConfig:
    root_dir: str = "uploads"
    max_bytes_per_tenant: int = 5 * GIB
    max_upload_bytes: int = 100 * 1024 * 1024
    copy_chunk_bytes: int = 1024 * 1024


@dataclass
class SharingConfig:
    default_ttl_hours: int = 24
    token_bytes: int = 32
    id_bytes: int = 4
    sweep_interval_seconds: float = 0.0


@dataclass
class AuthConfig:
    shared_secret: Optional[str] = None
    allowed_algorithms: List[str] = field(default_factory=lambda: ["HS256"])
    trust_identity_headers: bool = False
    share_token_header: str = "x-share-token"


@dataclass
class ObservabilityConfig:
    log_level: str = "INFO"
    max_events: int = 1000


@dataclass
class TenantDriveConfig:
    storage: StorageConfig
    sharing: SharingConfig
    auth: AuthConfig
    observability: ObservabilityConfig
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @staticmethod
    def default() -> "TenantDriveConfig":
        return TenantDriveConfig(
            storage=StorageConfig(),
            sharing=SharingConfig(),
            auth=AuthConfig(),
            observability=ObservabilityConfig(),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TenantDriveConfig":
        """Overlay ``TENANT_DRIVE_*`` environment variables on the defaults."""
        env = os.environ if environ is None else environ
        cfg = cls.default()

        cfg.storage.root_dir = env.get("TENANT_DRIVE_ROOT", cfg.storage.root_dir)
        if env.get("TENANT_DRIVE_MAX_BYTES"):
            cfg.storage.max_bytes_per_tenant = int(env["TENANT_DRIVE_MAX_BYTES"])
        if env.get("TENANT_DRIVE_MAX_UPLOAD_BYTES"):
            cfg.storage.max_upload_bytes = int(env["TENANT_DRIVE_MAX_UPLOAD_BYTES"])

        if env.get("TENANT_DRIVE_SHARE_TTL_HOURS"):
            cfg.sharing.default_ttl_hours = int(env["TENANT_DRIVE_SHARE_TTL_HOURS"])
        if env.get("TENANT_DRIVE_SWEEP_INTERVAL"):
            cfg.sharing.sweep_interval_seconds = float(env["TENANT_DRIVE_SWEEP_INTERVAL"])

        cfg.auth.shared_secret = env.get("TENANT_DRIVE_JWT_SECRET") or cfg.auth.shared_secret
        cfg.auth.trust_identity_headers = env.get("TENANT_DRIVE_TRUST_HEADERS", "").strip().lower() in {
            "1",
            "true",
            "yes",
            "on",
        }

        cfg.observability.log_level = env.get("TENANT_DRIVE_LOG_LEVEL", cfg.observability.log_level)

        origins = [origin.strip() for origin in env.get("TENANT_DRIVE_CORS_ORIGINS", "*").split(",") if origin.strip()]
        cfg.cors_origins = origins or ["*"]
        return cfg
