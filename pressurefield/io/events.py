from __future__ import annotations

import threading
from typing import Any, Callable, List, Optional

DataCallback = Callable[[Any, Any], None]


class DataEvent:
    """Explicit callback registry used by devices to publish samples.

    Callbacks receive ``(payload, device_ts)``. With ``on_error`` set, a failing
    callback is reported there and delivery continues to the remaining
    subscribers; without it the exception propagates to the emitter.
    """

    def __init__(self, on_error: Optional[Callable[[Exception], None]] = None) -> None:
        self._callbacks: List[DataCallback] = []
        self._lock = threading.Lock()
        self._on_error = on_error

    def connect(self, callback: DataCallback) -> None:
        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def disconnect(self, callback: DataCallback) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def emit(self, payload: Any, device_ts: Any = None) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(payload, device_ts)
            except Exception as exc:
                if self._on_error is None:
                    raise
                self._on_error(exc)

    def __len__(self) -> int:
        return len(self._callbacks)
