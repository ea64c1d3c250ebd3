"""
Reserve signature verification.

Reserve sources sign a canonical text message with an Ethereum key
(EIP-191 ``personal_sign``). The message layout is part of the wire
contract shared with every signer:

    v1: ReserveWatch:v1|source=<source>|reserveUsd=<reserveUsd>|timestamp=<timestamp>
    v2: ReserveWatch:v2|source=<source>|reserveUsd=<reserveUsd>|navUsd=<navUsd>|timestamp=<timestamp>

v2 is used whenever the reading carries ``navUsd``.
"""
from typing import Optional
import logging

from eth_account import Account
from eth_account.messages import encode_defunct

from .reading import NOT_EVALUATED, ReserveReading, SignatureCheck

logger = logging.getLogger(__name__)

MESSAGE_PREFIX = "ReserveWatch"


def normalize_address(address: Optional[str]) -> str:
    """Lower-case an address for comparison; empty string when missing."""
    if not address:
        return ""
    return str(address).strip().lower()


def reserve_message(reading: ReserveReading) -> str:
    """Build the canonical signed message for a reading."""
    if reading.nav_usd_text is not None:
        return (
            f"{MESSAGE_PREFIX}:v2|source={reading.source_id}"
            f"|reserveUsd={reading.reserve_usd_text}"
            f"|navUsd={reading.nav_usd_text}"
            f"|timestamp={reading.timestamp_wire}"
        )
    return (
        f"{MESSAGE_PREFIX}:v1|source={reading.source_id}"
        f"|reserveUsd={reading.reserve_usd_text}"
        f"|timestamp={reading.timestamp_wire}"
    )


def _signature_bytes(signature: str) -> bytes:
    text = signature.strip()
    if not text.startswith("0x"):
        raise ValueError("signature must be 0x-prefixed hex")
    return bytes.fromhex(text[2:])


def recover_signer(reading: ReserveReading) -> str:
    """
    Recover the address that signed ``reading``.

    Raises:
        ValueError: If the reading has no signature or it is malformed
    """
    if not reading.signature:
        raise ValueError("reading has no signature")
    message = encode_defunct(text=reserve_message(reading))
    return Account.recover_message(message, signature=_signature_bytes(reading.signature))


def verify_signature(reading: ReserveReading, expected_signer: Optional[str]) -> SignatureCheck:
    """
    Check that ``reading`` was signed by ``expected_signer``.

    The reading only verifies when the recovered address matches both the
    declared ``signer`` field and ``expected_signer``.

    Args:
        reading: Parsed reserve reading
        expected_signer: Address the connector is configured to trust; empty
            means verification is not required

    Returns:
        SignatureCheck with ``valid=None`` when not required, otherwise
        True/False. Never raises.
    """
    expected = normalize_address(expected_signer)
    if not expected:
        return NOT_EVALUATED

    if not reading.signer or not reading.signature:
        return SignatureCheck(valid=False, error="missing signer/signature")

    try:
        recovered = recover_signer(reading)
    except Exception as exc:
        logger.warning("Signature recovery failed for source %s: %s", reading.source_id, exc)
        return SignatureCheck(valid=False, error=str(exc) or type(exc).__name__)

    recovered_ok = normalize_address(recovered) == expected
    declared_ok = normalize_address(reading.signer) == expected
    valid = recovered_ok and declared_ok

    if not valid:
        logger.warning(
            "Signature mismatch for source %s: recovered=%s declared=%s expected=%s",
            reading.source_id,
            recovered,
            reading.signer,
            expected_signer,
        )
    return SignatureCheck(valid=valid, recovered_signer=recovered)


__all__ = [
    "SignatureCheck",
    "normalize_address",
    "reserve_message",
    "recover_signer",
    "verify_signature",
]
