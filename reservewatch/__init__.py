"""
ReserveWatch: reserve monitoring and minting circuit-breaker decisions.

Ingests signed reserve readings from independent sources, reconciles them
under a consensus policy, compares the result against outstanding
liabilities and on-chain enforcement state, and derives a single ordered
system status with the reasons behind it.
"""

__version__ = '0.1.0'

# Make key imports available at package level
from reservewatch.engine import (
    ConsensusPolicy,
    DerivedStatus,
    EnforcementSnapshot,
    ReadingPair,
    SystemStatus,
    evaluate,
    verify_signature,
)

__all__ = [
    '__version__',
    'ConsensusPolicy',
    'DerivedStatus',
    'EnforcementSnapshot',
    'ReadingPair',
    'SystemStatus',
    'evaluate',
    'verify_signature',
]
