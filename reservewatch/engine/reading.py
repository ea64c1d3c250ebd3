"""Normalized reserve readings and per-source outcomes."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional
import math

from .exceptions import ReadingParseError


class SourceState(str, Enum):
    """Outcome of asking one reserve source for a reading."""

    ABSENT = "absent"  # not configured, or the fetch itself failed
    INVALID = "invalid"  # responded, but the payload failed validation
    PRESENT = "present"  # parsed into a ReserveReading


@dataclass(frozen=True)
class SignatureCheck:
    """
    Result of verifying a reading's signature.

    ``valid`` is tri-state: ``None`` means verification was not required and
    was not performed. It must never be read as "verified".
    """

    valid: Optional[bool] = None
    recovered_signer: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.valid is False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signatureValid": self.valid,
            "recoveredSigner": self.recovered_signer,
            "signatureError": self.error,
        }


NOT_EVALUATED = SignatureCheck()


@dataclass(frozen=True)
class ReserveReading:
    """
    One source's reserve measurement.

    The ``*_text`` fields keep the values exactly as the source sent them:
    the signed message is built from these strings, so re-rendering a
    Decimal would break signatures for inputs such as ``"1.50"`` or ``"1e6"``.
    """

    timestamp: int  # unix seconds asserted by the source
    reserve_usd: Decimal
    source_id: str
    reserve_usd_text: str
    nav_usd: Optional[Decimal] = None
    nav_usd_text: Optional[str] = None
    signer: Optional[str] = None
    signature: Optional[str] = None
    timestamp_text: Optional[str] = None  # timestamp as sent; None means str(timestamp)

    @property
    def timestamp_wire(self) -> str:
        return self.timestamp_text if self.timestamp_text is not None else str(self.timestamp)

    @property
    def message_version(self) -> str:
        return "v2" if self.nav_usd_text is not None else "v1"

    def age(self, now: int) -> int:
        """Seconds between the asserted timestamp and ``now`` (negative if in the future)."""
        return int(now) - self.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "reserveUsd": self.reserve_usd_text,
            "navUsd": self.nav_usd_text,
            "source": self.source_id,
            "signer": self.signer,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class SourceResult:
    """
    What one reserve source produced for this tick.

    Transport failures and validation failures are both represented here
    instead of raised, so a single source outage degrades the status rather
    than aborting the evaluation.
    """

    state: SourceState
    reading: Optional[ReserveReading] = None
    signature: SignatureCheck = field(default=NOT_EVALUATED)
    error: Optional[str] = None

    @classmethod
    def absent(cls, error: Optional[str] = None) -> "SourceResult":
        return cls(state=SourceState.ABSENT, error=error)

    @classmethod
    def invalid(cls, error: str) -> "SourceResult":
        return cls(state=SourceState.INVALID, error=error)

    @classmethod
    def present(
        cls,
        reading: ReserveReading,
        signature: SignatureCheck = NOT_EVALUATED,
    ) -> "SourceResult":
        return cls(state=SourceState.PRESENT, reading=reading, signature=signature)

    @property
    def is_present(self) -> bool:
        return self.state is SourceState.PRESENT and self.reading is not None

    @property
    def signature_failed(self) -> bool:
        return self.is_present and self.signature.failed

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "state": self.state.value,
            "error": self.error,
            "reading": self.reading.to_dict() if self.reading else None,
        }
        data.update(self.signature.to_dict())
        return data


# ============================================================================
# Payload validation
# ============================================================================

# Largest integer a JSON number keeps exactly on the signing side.
MAX_SAFE_INTEGER = 2 ** 53 - 1


def _js_number_text(value: float) -> str:
    """Render a finite float the way JavaScript's ``String(number)`` does."""
    if value == 0:
        return "0"
    sign, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    digits = "".join(str(d) for d in digit_tuple).rstrip("0")
    exponent += len(digit_tuple) - len(digits)
    k = len(digits)
    n = exponent + k  # position of the decimal point relative to the digits

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = "0." + "0" * -n + digits
    else:
        mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{mantissa}e{'+' if n - 1 >= 0 else '-'}{abs(n - 1)}"
    return "-" + text if sign else text


def _wire_text(value: Any, field_name: str) -> str:
    """Render a JSON scalar the way the signing side stringifies it."""
    if isinstance(value, bool):
        raise ReadingParseError(f"{field_name} must be numeric, got boolean", field_name, value)
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        if abs(value) > MAX_SAFE_INTEGER:
            raise ReadingParseError(
                f"{field_name} exceeds 2**53 - 1 as a JSON number; send it as a string",
                field_name,
                value,
            )
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ReadingParseError(f"{field_name} must be finite", field_name, value)
        return _js_number_text(value)
    if isinstance(value, Decimal):
        return str(value)
    raise ReadingParseError(
        f"{field_name} has unsupported type {type(value).__name__}", field_name, value
    )


def _parse_decimal(text: str, field_name: str) -> Decimal:
    try:
        amount = Decimal(text.strip())
    except (InvalidOperation, ValueError):
        raise ReadingParseError(f"{field_name} is not a number: {text!r}", field_name, text)
    if not amount.is_finite():
        raise ReadingParseError(f"{field_name} must be finite", field_name, text)
    if amount < 0:
        raise ReadingParseError(f"{field_name} must be non-negative", field_name, text)
    return amount


def _parse_timestamp(value: Any) -> int:
    if value is None or isinstance(value, bool):
        raise ReadingParseError("timestamp is required", "timestamp", value)
    if isinstance(value, str):
        if not value.strip():
            raise ReadingParseError("timestamp is required", "timestamp", value)
        try:
            number = Decimal(value.strip())
        except (InvalidOperation, ValueError):
            raise ReadingParseError(f"timestamp is not numeric: {value!r}", "timestamp", value)
    elif isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and not math.isfinite(value):
            raise ReadingParseError("timestamp must be finite", "timestamp", value)
        number = Decimal(value)
    else:
        raise ReadingParseError(
            f"timestamp has unsupported type {type(value).__name__}", "timestamp", value
        )

    if not number.is_finite():
        raise ReadingParseError("timestamp must be finite", "timestamp", value)
    if number != number.to_integral_value():
        # A fractional timestamp cannot be rendered identically on both sides of the signature.
        raise ReadingParseError("timestamp must be whole seconds", "timestamp", value)
    return int(number)


def _optional_text(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ReadingParseError(f"{key} must be a string", key, value)
    return value


def parse_reading(payload: Any, fallback_source: str = "unknown") -> ReserveReading:
    """
    Validate a raw reserve payload into a ReserveReading.

    Expected shape: ``{timestamp, reserveUsd, navUsd?, source?, signer?, signature?}``.
    Signatures are not checked here; see ``signature.verify_signature``.

    Args:
        payload: Decoded JSON body from the reserve source
        fallback_source: Connector id used when the payload omits ``source``

    Returns:
        ReserveReading

    Raises:
        ReadingParseError: If a required field is missing or malformed
    """
    if not isinstance(payload, Mapping):
        raise ReadingParseError(
            f"reserve payload must be an object, got {type(payload).__name__}", "payload", payload
        )

    raw_timestamp = payload.get("timestamp")
    timestamp = _parse_timestamp(raw_timestamp)
    timestamp_text = _wire_text(raw_timestamp, "timestamp")

    raw_reserve = payload.get("reserveUsd")
    if raw_reserve is None or raw_reserve == "":
        raise ReadingParseError("reserveUsd is required", "reserveUsd", raw_reserve)
    reserve_text = _wire_text(raw_reserve, "reserveUsd")
    reserve_usd = _parse_decimal(reserve_text, "reserveUsd")

    nav_usd = None
    nav_text = None
    raw_nav = payload.get("navUsd")
    if raw_nav is not None:
        nav_text = _wire_text(raw_nav, "navUsd")
        nav_usd = _parse_decimal(nav_text, "navUsd")

    if "source" in payload and payload["source"] is not None:
        source_id = payload["source"]
        if not isinstance(source_id, str) or not source_id:
            raise ReadingParseError("source must be a non-empty string", "source", source_id)
    else:
        source_id = fallback_source
        if not source_id:
            raise ReadingParseError("source is missing and no fallback is configured", "source", None)

    return ReserveReading(
        timestamp=timestamp,
        reserve_usd=reserve_usd,
        source_id=source_id,
        reserve_usd_text=reserve_text,
        nav_usd=nav_usd,
        nav_usd_text=nav_text,
        signer=_optional_text(payload, "signer"),
        signature=_optional_text(payload, "signature"),
        timestamp_text=timestamp_text,
    )
