from __future__ import annotations

import math
import socket

import pytest

from pressurefield.data import DataRecorder
from pressurefield.errors import RecordingError
from pressurefield.schema.output import MEASUREMENT_FIELDS, format_row, header_line


class DummySocket:
    def __init__(self):
        self.closed = False

    def sendto(self, data, address):
        raise OSError("network unreachable")

    def close(self):
        self.closed = True


class BrokenHandle:
    def write(self, text):
        raise OSError("disk full")

    def flush(self):
        pass

    def fileno(self):
        raise OSError("no descriptor")

    def close(self):
        pass


def test_open_writes_header(tmp_path) -> None:
    path = tmp_path / "sub-1" / "log.csv"
    recorder = DataRecorder(telemetry_enabled=False)

    recorder.open(path)
    recorder.close()

    assert path.read_text().splitlines() == [header_line()]
    assert header_line().split(",") == list(MEASUREMENT_FIELDS)


def test_open_refuses_to_overwrite(tmp_path) -> None:
    path = tmp_path / "log.csv"
    path.write_text("previous session\n")
    recorder = DataRecorder(telemetry_enabled=False)

    with pytest.raises(RecordingError):
        recorder.open(path)

    assert path.read_text() == "previous session\n"
    assert not recorder.is_open


def test_record_appends_one_row_per_measurement(tmp_path, make_measurement) -> None:
    path = tmp_path / "log.csv"
    recorder = DataRecorder(telemetry_enabled=False)
    recorder.open(path)

    first = recorder.record(make_measurement(1))
    recorder.record(make_measurement(2))
    recorder.close()

    lines = path.read_text().splitlines()
    assert len(lines) == 3
    assert lines[1] == first
    assert lines[2].startswith("2,")
    assert recorder.rows_written == 2
    assert [m.step for m in recorder.measurements] == [1, 2]


def test_record_sends_row_as_telemetry(tmp_path, make_measurement) -> None:
    receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    receiver.bind(("127.0.0.1", 0))
    receiver.settimeout(2.0)
    recorder = DataRecorder("127.0.0.1", receiver.getsockname()[1])
    try:
        recorder.open(tmp_path / "log.csv")
        row = recorder.record(make_measurement())
        data, _ = receiver.recvfrom(4096)
    finally:
        recorder.close()
        receiver.close()

    assert data.decode("ascii") == row


def test_telemetry_failure_does_not_interrupt_recording(tmp_path, caplog, make_measurement) -> None:
    recorder = DataRecorder()
    recorder.open(tmp_path / "log.csv")
    recorder._sock.close()
    recorder._sock = DummySocket()

    recorder.record(make_measurement(1))
    recorder.record(make_measurement(2))
    recorder.close()

    assert recorder.rows_written == 2
    assert recorder.telemetry_failures == 2
    assert "Telemetry send" in caplog.text


def test_append_failure_raises_recording_error(tmp_path, make_measurement) -> None:
    recorder = DataRecorder(telemetry_enabled=False)
    recorder.open(tmp_path / "log.csv")
    real_handle = recorder._handle
    recorder._handle = BrokenHandle()

    try:
        with pytest.raises(RecordingError):
            recorder.record(make_measurement())
        assert recorder.rows_written == 0
        assert recorder.measurements == []
    finally:
        recorder.close()
        real_handle.close()


def test_record_without_open_fails(make_measurement) -> None:
    with pytest.raises(RecordingError):
        DataRecorder(telemetry_enabled=False).record(make_measurement())


def test_row_formatting_matches_log_precision(make_measurement) -> None:
    row = format_row(make_measurement(raw_pressure=math.nan, step_elapsed=1.23456789, accuracy_pct=87.654))
    values = dict(zip(MEASUREMENT_FIELDS, row.split(",")))

    assert values["raw_pressure"] == "nan"
    assert values["step_elapsed"] == "1.2346"
    assert values["accuracy_pct"] == "87.65"
    assert values["target_compression"] == "0.68794"
    assert values["compression_error"] == "0.01206"
    assert values["step"] == "1"
