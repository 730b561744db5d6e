from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pressurefield.io.events import DataEvent
from pressurefield.utils._logger import get_logger


class BaseDataProducer:
    """Minimal base class for pressurefield pressure sources."""

    device_id: str = "pressure_sensor"
    device_type: str = "pressure"
    data_event: DataEvent
    is_active: bool
    _started: Optional[datetime]
    _stopped: Optional[datetime]

    def __init__(
        self,
        *,
        device_id: Optional[str] = None,
        device_type: Optional[str] = None,
        logger_name: Optional[str] = None,
    ) -> None:
        self.is_active = False
        self._started = None
        self._stopped = None
        if device_id is not None:
            self.device_id = device_id
        if device_type is not None:
            self.device_type = device_type
        self.logger = get_logger(logger_name or f"{__name__}.{self.__class__.__name__}")
        self.data_event = DataEvent(on_error=lambda exc: self._log_exception("data_event", exc))

    def _log_exception(self, action: str, exc: Exception) -> None:
        self.logger.exception(
            "%s failed for %s (%s): %s",
            action,
            getattr(self, "device_id", "unknown"),
            getattr(self, "device_type", "unknown"),
            exc,
        )

    def _guard(self, action: str, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            self._log_exception(action, exc)
            return None

    def mark_started(self) -> None:
        self._started = datetime.now()
        self.is_active = True

    def mark_stopped(self) -> None:
        self._stopped = datetime.now()
        self.is_active = False

    def start(self) -> Any:
        """Start acquisition. Startup failures propagate to the caller."""
        result = self._start()
        self.mark_started()
        return result

    def stop(self) -> Any:
        """Stop acquisition; errors are logged, never raised."""
        result = self._guard("stop", self._stop)
        self.mark_stopped()
        return result

    def shutdown(self) -> None:
        """Release resources."""
        if self.is_active:
            self.stop()
        self._guard("shutdown", self._shutdown)

    def status(self) -> dict[str, Any]:
        """Return device status."""
        return {
            "device_id": getattr(self, "device_id", ""),
            "device_type": getattr(self, "device_type", ""),
            "active": self.is_active,
            "started": self._started,
            "stopped": self._stopped,
        }

    def _start(self) -> Any:
        raise NotImplementedError

    def _stop(self) -> Any:
        raise NotImplementedError

    def _shutdown(self) -> None:
        return None
