"""HTTP ingestion of signed reserve readings."""
from typing import Dict, Optional
import logging

import requests

from reservewatch.config import SOURCE_FETCH_TIMEOUT_S
from reservewatch.engine.exceptions import ReadingParseError
from reservewatch.engine.reading import SourceResult, parse_reading
from reservewatch.engine.signature import verify_signature

logger = logging.getLogger(__name__)


def fetch_reserve(
    url: str,
    fallback_source: str,
    expected_signer: Optional[str] = None,
    timeout: float = SOURCE_FETCH_TIMEOUT_S,
    session: Optional[requests.Session] = None,
) -> SourceResult:
    """
    GET a reserve source, validate the payload and verify its signature.

    Never raises: transport problems come back as ABSENT, malformed payloads
    as INVALID, and signature problems on a PRESENT result.

    Args:
        url: Reserve endpoint
        fallback_source: Connector id used when the payload has no ``source``
        expected_signer: Address the source must sign with (empty: unsigned OK)
        timeout: Request timeout in seconds
        session: Optional requests session to reuse connections

    Returns:
        SourceResult
    """
    if not url:
        return SourceResult.absent("missing url")

    http = session or requests
    try:
        resp = http.get(url, headers={"accept": "application/json"}, timeout=timeout)
        resp.raise_for_status()
        payload = resp.json()
    except requests.JSONDecodeError as exc:
        logger.warning("Reserve source %s returned non-JSON body: %s", fallback_source, exc)
        return SourceResult.invalid(f"invalid JSON: {exc}")
    except requests.RequestException as exc:
        logger.warning("Reserve fetch failed for %s (%s): %s", fallback_source, url, exc)
        return SourceResult.absent(str(exc))

    try:
        reading = parse_reading(payload, fallback_source=fallback_source)
    except ReadingParseError as exc:
        logger.warning("Reserve payload from %s rejected: %s", fallback_source, exc.message)
        return SourceResult.invalid(exc.message)

    signature = verify_signature(reading, expected_signer)
    logger.debug(
        "Fetched reserve %s: reserveUsd=%s timestamp=%s signatureValid=%s",
        reading.source_id,
        reading.reserve_usd_text,
        reading.timestamp,
        signature.valid,
    )
    return SourceResult.present(reading, signature)


def fetch_connector(connector: Optional[Dict], role: str, **kwargs) -> SourceResult:
    """Fetch using a connector config ``{id, url, expectedSigner}``."""
    if not connector:
        return SourceResult.absent(f"no {role} connector configured")
    return fetch_reserve(
        url=str(connector.get("url") or "").strip(),
        fallback_source=str(connector.get("id") or role),
        expected_signer=str(connector.get("expectedSigner") or "").strip(),
        **kwargs,
    )
