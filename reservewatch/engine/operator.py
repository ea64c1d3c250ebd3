"""Operator guidance derived from a status."""
from typing import List

from .status import DerivedStatus, ReasonCode, SystemStatus

CHECK_RPC_AND_DATA_SOURCES = "check_rpc_and_data_sources"
FIX_ENFORCEMENT_WIRING_ROLES = "fix_enforcement_wiring_roles"
INVESTIGATE_SOURCE_DISCREPANCY = "investigate_source_discrepancy"
CHECK_INCIDENT_FEED = "check_incident_feed"
BROADCAST_NEW_ATTESTATION_AFTER_FIX = "broadcast_new_attestation_after_fix"
USE_GUARDED_REENABLE_FLOW = "use_guarded_reenable_flow"


def recommended_actions(derived: DerivedStatus) -> List[str]:
    """Ordered, de-duplicated action codes for the operator."""
    actions: List[str] = []

    if derived.status is SystemStatus.STALE:
        actions.append(CHECK_RPC_AND_DATA_SOURCES)
    if derived.has(ReasonCode.ENFORCEMENT_NOT_WIRED) or derived.has(ReasonCode.FORWARDER_NOT_SET):
        actions.append(FIX_ENFORCEMENT_WIRING_ROLES)
    if derived.has(ReasonCode.RESERVE_SOURCE_MISMATCH):
        actions.append(INVESTIGATE_SOURCE_DISCREPANCY)
    if derived.has(ReasonCode.INCIDENT_ACTIVE):
        actions.append(CHECK_INCIDENT_FEED)
    if derived.has(ReasonCode.COVERAGE_BELOW_THRESHOLD):
        actions.append(BROADCAST_NEW_ATTESTATION_AFTER_FIX)
    if derived.has(ReasonCode.MINTING_PAUSED) or derived.has(ReasonCode.MINTING_DISABLED):
        actions.append(USE_GUARDED_REENABLE_FLOW)

    return actions
