from pressurefield.data.recorder import DataRecorder

__all__ = ["DataRecorder"]
