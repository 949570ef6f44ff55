"""Flight log parsing and validation: CSV rows -> ordered TelemetrySample list."""

from __future__ import annotations

import csv
import io
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, Mapping

from flightfusion.errors import ValidationError
from flightfusion.processing.geodesy import normalize_heading
from flightfusion.recording.models import TelemetrySample

logger = logging.getLogger(__name__)

FEET_TO_METERS = 0.3048

TIME_COLUMN = "time(millisecond)"
# Some exporter versions ship the header misspelled
TIME_COLUMN_ALIASES = (TIME_COLUMN, "time(milliseond)")
DATETIME_COLUMN = "datetime(utc)"
ALTITUDE_COLUMN = "ascent(feet)"
HEADING_COLUMN = "compass_heading(degrees)"
RECORDING_COLUMN = "isVideo"

FRACTION_PATTERN = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")


def parse_utc_datetime(value: str) -> datetime:
    """Parse '2024-09-11 05:47:13[.200]' or ISO-8601 ('...T...Z') into an aware UTC datetime."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat on 3.10 only takes 3 or 6 fractional digits
    text = FRACTION_PATTERN.sub(
        lambda m: f"{m.group(1)}.{(m.group(2) + '000000')[:6]}", text, count=1
    )
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid date format: {value!r}") from None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _column(row: Mapping[str, str], names: Iterable[str], index: int) -> str:
    for name in names:
        if name in row and row[name] is not None:
            return row[name].strip()
    raise ValidationError(
        f"Row {index}: missing column {'/'.join(names)}", index=index
    )


def _number(row: Mapping[str, str], name: str, index: int) -> float:
    raw = _column(row, (name,), index)
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(
            f"Row {index}: {name} is not a number: {raw!r}", index=index
        ) from None


def _time_value(row: Mapping[str, str], index: int) -> float:
    raw = _column(row, TIME_COLUMN_ALIASES, index)
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError(
            f"Row {index}: {TIME_COLUMN} is not a number: {raw!r}", index=index
        ) from None
    if value < 0:
        raise ValidationError(
            f"Row {index}: {TIME_COLUMN} must not be negative, got {raw}",
            index=index,
        )
    return int(value) if value.is_integer() else value


def parse_row(row: Mapping[str, str], index: int) -> TelemetrySample:
    """Convert one raw flight-log row into a TelemetrySample."""
    raw_timestamp = _column(row, (DATETIME_COLUMN,), index)
    try:
        timestamp = parse_utc_datetime(raw_timestamp)
    except ValidationError as e:
        raise ValidationError(f"Row {index}: {e}", index=index) from None

    return TelemetrySample(
        time_from_start=_time_value(row, index),
        timestamp=timestamp,
        latitude=_number(row, "latitude", index),
        longitude=_number(row, "longitude", index),
        altitude=_number(row, ALTITUDE_COLUMN, index) * FEET_TO_METERS,
        heading=normalize_heading(_number(row, HEADING_COLUMN, index)),
        is_recording=_column(row, (RECORDING_COLUMN,), index) == "1",
    )


def check_time_sequence(samples: list[TelemetrySample]) -> None:
    """Raise ValidationError unless time_from_start is strictly increasing."""
    if not samples:
        raise ValidationError("Empty telemetry data")

    previous = samples[0].time_from_start
    for i in range(1, len(samples)):
        current = samples[i].time_from_start
        if current <= previous:
            raise ValidationError(
                f"Invalid time sequence at index {i}: "
                f"{current}ms is not greater than {previous}ms",
                index=i,
            )
        previous = current


def validate_telemetry(rows: Iterable[Mapping[str, str]]) -> list[TelemetrySample]:
    """Build the ordered telemetry sequence from raw rows.

    Rows are taken in the given order; a log that is not strictly increasing
    in time is rejected, never sorted or deduplicated.
    """
    samples = [parse_row(row, i) for i, row in enumerate(rows)]
    check_time_sequence(samples)

    logger.info("Telemetry validated: %d samples (%s -> %s)",
                len(samples), samples[0].timestamp.isoformat(),
                samples[-1].timestamp.isoformat())
    return samples


def parse_telemetry_csv(content: str) -> list[TelemetrySample]:
    """Parse flight-log CSV text (header row + data rows)."""
    if not content.strip():
        raise ValidationError("Invalid CSV format: empty content")

    reader = csv.DictReader(io.StringIO(content.strip()), skipinitialspace=True)
    if reader.fieldnames is not None:
        reader.fieldnames = [name.strip() for name in reader.fieldnames]

    rows = [row for row in reader if any(isinstance(v, str) and v.strip() for v in row.values())]
    if not rows:
        raise ValidationError("Invalid CSV format: no data rows found")

    logger.debug("Parsed %d flight log rows", len(rows))
    return validate_telemetry(rows)
