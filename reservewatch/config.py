"""ReserveWatch configuration loaded from environment variables."""
import os
from typing import Dict, List, Optional
from pathlib import Path
from dotenv import load_dotenv

from reservewatch.engine.attestation import ATTESTATION_VERSIONS
from reservewatch.engine.exceptions import ConfigurationError
from reservewatch.engine.policy import ConsensusPolicy

# Load .env file if it exists
env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)

# ============================================================================
# Reserve Sources
# ============================================================================

RESERVE_URL_PRIMARY = os.getenv('RESERVE_URL_PRIMARY', '')
RESERVE_URL_SECONDARY = os.getenv('RESERVE_URL_SECONDARY', '')
RESERVE_SOURCE_ID_PRIMARY = os.getenv('RESERVE_SOURCE_ID_PRIMARY', 'primary')
RESERVE_SOURCE_ID_SECONDARY = os.getenv('RESERVE_SOURCE_ID_SECONDARY', 'secondary')

# A shared expected signer applies to both sources unless overridden per source
RESERVE_EXPECTED_SIGNER = os.getenv('RESERVE_EXPECTED_SIGNER', '')
RESERVE_EXPECTED_SIGNER_PRIMARY = os.getenv('RESERVE_EXPECTED_SIGNER_PRIMARY', '') or RESERVE_EXPECTED_SIGNER
RESERVE_EXPECTED_SIGNER_SECONDARY = os.getenv('RESERVE_EXPECTED_SIGNER_SECONDARY', '') or RESERVE_EXPECTED_SIGNER

SOURCE_FETCH_TIMEOUT_S = float(os.getenv('SOURCE_FETCH_TIMEOUT_S', '12'))

# ============================================================================
# Consensus Policy
# ============================================================================

RESERVE_CONSENSUS_MODE = os.getenv('RESERVE_CONSENSUS_MODE', 'require_match')
RESERVE_MAX_AGE_S = os.getenv('RESERVE_MAX_AGE_S', '120')
RESERVE_MAX_MISMATCH_RATIO = os.getenv('RESERVE_MAX_MISMATCH_RATIO', '0.01')
RESERVE_MAX_MISMATCH_BPS = os.getenv('RESERVE_MAX_MISMATCH_BPS', '')
RESERVE_MIN_COVERAGE_BPS = os.getenv('RESERVE_MIN_COVERAGE_BPS', '')
RESERVE_STALE_POLICY = os.getenv('RESERVE_STALE_POLICY', 'fallback_secondary')

POLICY_CONFIG = {
    'consensusMode': RESERVE_CONSENSUS_MODE,
    'maxReserveAgeS': RESERVE_MAX_AGE_S,
    'maxMismatchRatio': RESERVE_MAX_MISMATCH_RATIO,
    'maxMismatchBps': RESERVE_MAX_MISMATCH_BPS,
    'minCoverageBps': RESERVE_MIN_COVERAGE_BPS,
    'stalePolicy': RESERVE_STALE_POLICY,
}

# ============================================================================
# On-chain Configuration
# ============================================================================

RPC_URL = os.getenv('RPC_URL', '')
RECEIVER_ADDRESS = os.getenv('RECEIVER_ADDRESS', '')
LIABILITY_TOKEN_ADDRESS = os.getenv('LIABILITY_TOKEN_ADDRESS', '')
EXPECTED_FORWARDER_ADDRESS = os.getenv('EXPECTED_FORWARDER_ADDRESS', '')

EVM_READ_BLOCK_TAG = os.getenv('EVM_READ_BLOCK_TAG', 'finalized')
EVM_READ_FALLBACK_TO_LATEST = bool(int(os.getenv('EVM_READ_FALLBACK_TO_LATEST', '1')))
EVM_READ_RETRIES = int(os.getenv('EVM_READ_RETRIES', '0'))
RPC_TIMEOUT_S = float(os.getenv('RPC_TIMEOUT_S', '15'))

ATTESTATION_VERSION = os.getenv('ATTESTATION_VERSION', 'v1')

# ============================================================================
# Project
# ============================================================================

DEFAULT_PROJECT_ID = os.getenv('DEFAULT_PROJECT_ID', 'default')
DEFAULT_PROJECT_NAME = os.getenv('DEFAULT_PROJECT_NAME', 'ReserveWatch')

DEFAULT_PROJECT: Dict = {
    'id': DEFAULT_PROJECT_ID,
    'name': DEFAULT_PROJECT_NAME,
    'connectors': {
        'primary': {
            'id': RESERVE_SOURCE_ID_PRIMARY,
            'url': RESERVE_URL_PRIMARY,
            'expectedSigner': RESERVE_EXPECTED_SIGNER_PRIMARY,
        },
        'secondary': {
            'id': RESERVE_SOURCE_ID_SECONDARY,
            'url': RESERVE_URL_SECONDARY,
            'expectedSigner': RESERVE_EXPECTED_SIGNER_SECONDARY,
        },
    },
    'onchain': {
        'rpcUrl': RPC_URL,
        'receiverAddress': RECEIVER_ADDRESS,
        'liabilityTokenAddress': LIABILITY_TOKEN_ADDRESS,
        'expectedForwarderAddress': EXPECTED_FORWARDER_ADDRESS,
    },
    'policy': POLICY_CONFIG,
}

# ============================================================================
# Monitor Configuration
# ============================================================================

POLL_INTERVAL_S = float(os.getenv('POLL_INTERVAL_S', '8'))
STATUS_HISTORY_SIZE = int(os.getenv('STATUS_HISTORY_SIZE', '500'))

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
LOG_FILE = os.getenv('LOG_FILE', '')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'detailed')


def default_policy() -> ConsensusPolicy:
    """Consensus policy built from the environment."""
    return ConsensusPolicy.from_mapping(POLICY_CONFIG)


# ============================================================================
# Validation
# ============================================================================

def validate_config() -> None:
    """Validate configuration values."""
    errors: List[str] = []

    try:
        default_policy()
    except ConfigurationError as e:
        errors.append(f"Invalid consensus policy: {e.message}")

    if EVM_READ_BLOCK_TAG not in ('finalized', 'latest'):
        errors.append("EVM_READ_BLOCK_TAG must be 'finalized' or 'latest'")

    if EVM_READ_RETRIES < 0:
        errors.append("EVM_READ_RETRIES must be >= 0")

    if SOURCE_FETCH_TIMEOUT_S <= 0:
        errors.append("SOURCE_FETCH_TIMEOUT_S must be positive")

    if RPC_TIMEOUT_S <= 0:
        errors.append("RPC_TIMEOUT_S must be positive")

    if POLL_INTERVAL_S <= 0:
        errors.append("POLL_INTERVAL_S must be positive")

    if STATUS_HISTORY_SIZE < 1:
        errors.append("STATUS_HISTORY_SIZE must be at least 1")

    if ATTESTATION_VERSION not in ATTESTATION_VERSIONS:
        errors.append(f"ATTESTATION_VERSION must be one of {ATTESTATION_VERSIONS}")

    if errors:
        raise ValueError(f"Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))


# ============================================================================
# Logging Setup
# ============================================================================

def setup_logging(level_name: Optional[str] = None) -> None:
    """Configure logging based on config settings."""
    import logging
    import sys

    # Map log level string to logging constant
    level = getattr(logging, (level_name or LOG_LEVEL).upper(), logging.INFO)

    # Configure format
    if LOG_FORMAT == 'json':
        # JSON format for structured logging
        format_string = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
    elif LOG_FORMAT == 'detailed':
        format_string = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:  # simple
        format_string = '%(levelname)s: %(message)s'

    # Configure handlers
    handlers = []

    # Always log to stdout
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(format_string))
    handlers.append(stdout_handler)

    # Optionally log to file
    if LOG_FILE:
        file_handler = logging.FileHandler(LOG_FILE)
        file_handler.setFormatter(logging.Formatter(format_string))
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True
    )

    # Set specific loggers
    logging.getLogger('reservewatch').setLevel(level)

    # Reduce noise from third-party libraries
    logging.getLogger('urllib3').setLevel(logging.WARNING)


# ============================================================================
# Initialization
# ============================================================================

# Validate config on import
validate_config()
