from pressurefield.schema.output import (
    MEASUREMENT_FIELDS,
    Measurement,
    build_session_summary,
    format_row,
    header_line,
    load_measurements,
)

__all__ = [
    "MEASUREMENT_FIELDS",
    "Measurement",
    "build_session_summary",
    "format_row",
    "header_line",
    "load_measurements",
]
