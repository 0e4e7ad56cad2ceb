"""Phase event emitters for provisioning runs."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from provisioning_engine.core.models import ProvisioningPhase, ProvisioningResult

logger = logging.getLogger(__name__)


ALLOWED_STATUSES = {"PASS", "FAIL", "SKIP", "WARN"}


@dataclass
class PhaseEvent:
    """One user-visible phase outcome."""

    phase: ProvisioningPhase
    status: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @staticmethod
    def from_result(result: ProvisioningResult) -> "PhaseEvent":
        if not result.succeeded:
            status = "FAIL"
        elif result.skipped:
            status = "SKIP"
        else:
            status = "PASS"
        message = "; ".join(result.diagnostics) if result.diagnostics else result.phase.value
        return PhaseEvent(phase=result.phase, status=status, message=message)

    @staticmethod
    def warning(phase: ProvisioningPhase, message: str) -> "PhaseEvent":
        return PhaseEvent(phase=phase, status="WARN", message=message)

    def format(self) -> str:
        return f"{self.status}: [{self.phase.value}] {self.message}"


class EventEmitter(ABC):
    """Abstract event emitter."""

    @abstractmethod
    def emit(self, events: Iterable[PhaseEvent]) -> None:
        """Emit one or more events."""
        pass


class ConsoleEventEmitter(EventEmitter):
    """Prints one marker line per event and keeps them in memory."""

    def __init__(self):
        self.events = []

    def emit(self, events: Iterable[PhaseEvent]) -> None:
        for event in events:
            if event.status not in ALLOWED_STATUSES:
                raise ValueError(f"Invalid event status: {event.status}")

            self.events.append(event)
            print(event.format(), flush=True)


class LoggingEventEmitter(EventEmitter):
    """Forwards events to the logging module."""

    def emit(self, events: Iterable[PhaseEvent]) -> None:
        for event in events:
            if event.status == "FAIL":
                logger.error(f"❌ {event.phase.value}: {event.message}")
            elif event.status == "WARN":
                logger.warning(f"⚠️  {event.phase.value}: {event.message}")
            else:
                logger.info(f"✅ {event.phase.value}: {event.message}")


class MultiEventEmitter:
    """Fan-out to multiple emitters."""

    def __init__(self, emitters: Iterable[EventEmitter]):
        self._emitters = list(emitters)

    def emit(self, events: Iterable[PhaseEvent]):
        events = list(events)
        for emitter in self._emitters:
            emitter.emit(events)


class NullEventEmitter(EventEmitter):
    """No-op emitter (used when events are not needed)."""

    def emit(self, events: Iterable[PhaseEvent]) -> None:
        pass
