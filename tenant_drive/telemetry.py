"""Observability scaffolding."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict

from .config import ObservabilityConfig
from .models import ObservabilityEvent

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


@dataclass
class TelemetryCollector:
    config: ObservabilityConfig
    metrics: Deque[Dict[str, object]] = field(default=None)
    events: Deque[ObservabilityEvent] = field(default=None)

    def __post_init__(self) -> None:
        if self.metrics is None:
            self.metrics = deque(maxlen=self.config.max_events)
        if self.events is None:
            self.events = deque(maxlen=self.config.max_events)

    def emit_metric(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        payload = {
            "name": name,
            "value": value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **(labels or {}),
        }
        self.metrics.append(payload)

    def emit_event(self, message: str, attributes: Dict[str, str] | None = None) -> None:
        self.events.append(ObservabilityEvent(event_type="custom", message=message, attributes=attributes))

    def event_names(self) -> list[str]:
        return [event.message for event in self.events]

    def flush(self) -> None:
        self.metrics.clear()
        self.events.clear()
