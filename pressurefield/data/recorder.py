from __future__ import annotations

import os
import socket
from pathlib import Path
from typing import IO, List, Optional, Tuple

from pressurefield.errors import RecordingError
from pressurefield.schema.output import Measurement, format_row, header_line
from pressurefield.utils._logger import get_logger


class DataRecorder:
    """Durable CSV log of measurements plus a best-effort UDP copy of each row.

    ``record`` returns only after the row has been flushed and fsync'ed, so a
    measurement that was recorded survives a crash right after. The telemetry
    send never blocks and never raises.
    """

    def __init__(
        self,
        telemetry_host: str = "127.0.0.1",
        telemetry_port: int = 8893,
        *,
        telemetry_enabled: bool = True,
    ) -> None:
        self.logger = get_logger(f"{__name__}.{self.__class__.__name__}")
        self.telemetry_address: Tuple[str, int] = (telemetry_host, int(telemetry_port))
        self.telemetry_enabled = telemetry_enabled
        self.output_path: Optional[Path] = None
        self.rows_written = 0
        self.telemetry_failures = 0
        self.measurements: List[Measurement] = []
        self._handle: Optional[IO[str]] = None
        self._sock: Optional[socket.socket] = None

    def __repr__(self) -> str:
        return f"<DataRecorder path={self.output_path} rows={self.rows_written}>"

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self, path: str | Path) -> Path:
        """Create the session log with its header row."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handle = path.open("x", encoding="utf-8", newline="")
            handle.write(header_line() + "\n")
            self._sync(handle)
        except OSError as exc:
            self.logger.critical("Could not create measurement log %s: %s", path, exc)
            raise RecordingError(f"Could not create measurement log {path}: {exc}") from exc

        self._handle = handle
        self.output_path = path
        if self.telemetry_enabled:
            self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self._sock.setblocking(False)
        self.logger.info("Recording measurements to %s", path)
        return path

    def record(self, measurement: Measurement) -> str:
        row = format_row(measurement)
        self._append(row)
        self.measurements.append(measurement)
        self._send(row)
        return row

    def close(self) -> None:
        if self._handle is not None:
            try:
                self._sync(self._handle)
            except OSError as exc:
                self.logger.error("Final flush of %s failed: %s", self.output_path, exc)
            self._handle.close()
            self._handle = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    # ------------------------------------------------------------------

    def _append(self, row: str) -> None:
        if self._handle is None:
            raise RecordingError("Measurement log is not open")
        try:
            self._handle.write(row + "\n")
            self._sync(self._handle)
        except OSError as exc:
            self.logger.critical("Append to %s failed: %s", self.output_path, exc)
            raise RecordingError(f"Append to {self.output_path} failed: {exc}") from exc
        self.rows_written += 1

    @staticmethod
    def _sync(handle: IO[str]) -> None:
        handle.flush()
        os.fsync(handle.fileno())

    def _send(self, row: str) -> None:
        if self._sock is None:
            return
        try:
            self._sock.sendto(row.encode("ascii", errors="replace"), self.telemetry_address)
        except OSError as exc:
            self.telemetry_failures += 1
            self.logger.warning("Telemetry send to %s:%s failed: %s", *self.telemetry_address, exc)
