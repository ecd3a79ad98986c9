"""
Payload Decoder - raw MQTT payload -> TelemetryRecord
"""

from dataclasses import dataclass

from pydantic import ValidationError

from sensorhub.schemas.telemetry import TelemetryRecord


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of decoding one payload: either `record` or `error` is set."""

    record: TelemetryRecord | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None


def decode_payload(raw: str | bytes) -> DecodeResult:
    """
    Decode a device payload.

    Never raises. A payload that is not JSON, is not an object, lacks
    `ts`/`device`, or carries a field of the wrong type is rejected as a
    whole; no partial record is produced.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            return DecodeResult(error=f"payload is not valid UTF-8: {e}")

    try:
        record = TelemetryRecord.model_validate_json(raw)
    except ValidationError as e:
        return DecodeResult(error=_summarize(e))

    return DecodeResult(record=record)


def encode_record(record: TelemetryRecord) -> str:
    """Serialize a record back to JSON, omitting absent fields."""
    return record.model_dump_json(exclude_none=True)


def _summarize(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "<root>"
    return f"{location}: {first['msg']} ({error.error_count()} error(s))"
