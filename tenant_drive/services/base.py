"""Shared plumbing for the tenant drive services.

Each service holds the runtime config and the telemetry sink. Labels on
events and metrics are stored as strings so owner IDs, counts and paths
can be exported without further conversion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict

from ..config import TenantDriveConfig
from ..telemetry import TelemetryCollector

logger = logging.getLogger(__name__)


def _as_labels(values: Dict[str, object]) -> Dict[str, str]:
    return {key: "" if value is None else str(value) for key, value in values.items()}


@dataclass
class BaseService:
    config: TenantDriveConfig
    telemetry: TelemetryCollector

    def emit_metric(self, name: str, value: float, **labels: object) -> None:
        self.telemetry.emit_metric(name, float(value), _as_labels(labels))

    def emit_event(self, message: str, **attrs: object) -> None:
        labels = _as_labels(attrs)
        logger.debug("%s %s", message, labels)
        self.telemetry.emit_event(message, labels)
