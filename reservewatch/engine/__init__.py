"""
Pure reserve decision engine: reading validation, signature checks,
consensus, coverage and status derivation. No I/O.
"""

from .exceptions import ConfigurationError, ReadingParseError, ReserveWatchError

# Readings
from .reading import ReserveReading, SignatureCheck, SourceResult, SourceState, parse_reading
from .signature import reserve_message, verify_signature

# Policy and consensus
from .policy import ConsensusMode, ConsensusPolicy, StalePolicy
from .consensus import Resolution, mismatch_ratio, resolve

# Coverage, enforcement, status
from .coverage import CoverageResult, compute_coverage_bps, evaluate_coverage
from .enforcement import EnforcementSnapshot, EnforcementTransition, detect_enforcement_transition
from .status import (
    DerivedStatus,
    Incident,
    IncidentSeverity,
    ReadingPair,
    ReasonCode,
    SystemStatus,
    derive_status,
    evaluate,
)

__all__ = [
    "ReserveWatchError",
    "ConfigurationError",
    "ReadingParseError",

    # Readings
    "ReserveReading",
    "SignatureCheck",
    "SourceResult",
    "SourceState",
    "parse_reading",
    "reserve_message",
    "verify_signature",

    # Policy and consensus
    "ConsensusMode",
    "ConsensusPolicy",
    "StalePolicy",
    "Resolution",
    "mismatch_ratio",
    "resolve",

    # Coverage, enforcement, status
    "CoverageResult",
    "compute_coverage_bps",
    "evaluate_coverage",
    "EnforcementSnapshot",
    "EnforcementTransition",
    "detect_enforcement_transition",
    "DerivedStatus",
    "Incident",
    "IncidentSeverity",
    "ReadingPair",
    "ReasonCode",
    "SystemStatus",
    "derive_status",
    "evaluate",
]
