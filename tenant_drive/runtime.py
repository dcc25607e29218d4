"""Runtime wiring for the tenant drive services."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .config import TenantDriveConfig
from .services.capability_registry import CapabilityRegistry, CapabilitySweeper
from .services.identity_resolver import IdentityResolver
from .services.path_sandbox import PathSandbox
from .services.quota_service import QuotaAccountant
from .services.sharing_service import SharingService
from .services.storage_service import StorageService
from .storage.local_file_store import LocalFileStore
from .telemetry import TelemetryCollector

logger = logging.getLogger(__name__)


@dataclass
class TenantDriveRuntime:
    config: TenantDriveConfig
    telemetry: TelemetryCollector
    file_store: LocalFileStore
    sandbox: PathSandbox
    registry: CapabilityRegistry
    resolver: IdentityResolver
    quota: QuotaAccountant
    storage_service: StorageService
    sharing_service: SharingService
    sweeper: CapabilitySweeper

    @classmethod
    def bootstrap(
        cls,
        config: Optional[TenantDriveConfig] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "TenantDriveRuntime":
        cfg = config or TenantDriveConfig.default()
        telemetry = TelemetryCollector(cfg.observability)
        file_store = LocalFileStore(cfg.storage.root_dir, chunk_size=cfg.storage.copy_chunk_bytes)
        sandbox = PathSandbox(file_store.base_path)

        registry_kwargs = {"clock": clock} if clock is not None else {}
        registry = CapabilityRegistry(config=cfg, telemetry=telemetry, **registry_kwargs)
        resolver = IdentityResolver(registry=registry)
        quota = QuotaAccountant(config=cfg, telemetry=telemetry, sandbox=sandbox, file_store=file_store)
        storage_service = StorageService(
            config=cfg,
            telemetry=telemetry,
            resolver=resolver,
            sandbox=sandbox,
            file_store=file_store,
            quota=quota,
        )
        sharing_service = SharingService(
            config=cfg,
            telemetry=telemetry,
            registry=registry,
            resolver=resolver,
            sandbox=sandbox,
            file_store=file_store,
        )
        sweeper = CapabilitySweeper(registry, cfg.sharing.sweep_interval_seconds)

        return cls(
            config=cfg,
            telemetry=telemetry,
            file_store=file_store,
            sandbox=sandbox,
            registry=registry,
            resolver=resolver,
            quota=quota,
            storage_service=storage_service,
            sharing_service=sharing_service,
            sweeper=sweeper,
        )

    def start(self) -> None:
        self.sweeper.start()
        logger.info(
            "Tenant drive runtime started (root=%s, sweep=%ss)",
            self.file_store.base_path,
            self.config.sharing.sweep_interval_seconds,
        )

    def shutdown(self) -> None:
        self.sweeper.stop()
        logger.info("Tenant drive runtime stopped")

    def run_background_jobs(self) -> int:
        return self.registry.sweep_expired()
