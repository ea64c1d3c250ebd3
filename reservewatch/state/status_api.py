"""Reserve status APIs (FastAPI adapters over monitors and the pure engine)."""
from typing import Any, Dict, List, Optional
import logging

try:
    from fastapi import APIRouter, HTTPException, Query
    from pydantic import BaseModel, StrictBool
except ImportError as exc:  # pragma: no cover - optional dependency
    raise ImportError(
        "FastAPI is required for reservewatch.state.status_api; install fastapi to use these endpoints"
    ) from exc

from reservewatch.engine.enforcement import EnforcementSnapshot
from reservewatch.engine.exceptions import ConfigurationError, ReadingParseError
from reservewatch.engine.operator import recommended_actions
from reservewatch.engine.policy import ConsensusPolicy
from reservewatch.engine.reading import SourceResult, parse_reading
from reservewatch.engine.signature import verify_signature
from reservewatch.engine.status import Incident, ReadingPair, evaluate
from .incidents import INCIDENTS
from .monitor import ReserveMonitor

logger = logging.getLogger(__name__)

MONITORS: Dict[str, ReserveMonitor] = {}
DEFAULT_PROJECT: Dict[str, Optional[str]] = {"id": None}

router = APIRouter()


# -------------------------
# Monitor registry
# -------------------------
def register_monitor(monitor: ReserveMonitor, default: bool = False) -> None:
    """Register a monitor under its project id."""
    MONITORS[monitor.project_id] = monitor
    if default or DEFAULT_PROJECT["id"] is None:
        DEFAULT_PROJECT["id"] = monitor.project_id
    logger.info("Registered monitor for project %s", monitor.project_id)


def get_monitor(project_id: Optional[str]) -> Optional[ReserveMonitor]:
    """Return the monitor for a project (default project when id is empty)."""
    key = project_id or DEFAULT_PROJECT["id"]
    if key is None:
        return None
    return MONITORS.get(key)


def _require_monitor(project_id: Optional[str]) -> ReserveMonitor:
    monitor = get_monitor(project_id)
    if monitor is None:
        raise HTTPException(status_code=404, detail="Unknown project")
    return monitor


# -------------------------
# Request bodies
# -------------------------
class VerifyRequest(BaseModel):
    payload: Dict[str, Any]
    expectedSigner: str = ""
    fallbackSource: str = "unknown"


class EvaluateRequest(BaseModel):
    primary: Optional[Dict[str, Any]] = None
    secondary: Optional[Dict[str, Any]] = None
    expectedSignerPrimary: str = ""
    expectedSignerSecondary: str = ""
    policy: Optional[Dict[str, Any]] = None
    onchain: Optional[Dict[str, Any]] = None
    incident: Optional[Dict[str, Any]] = None
    now: Optional[int] = None


class IncidentRequest(BaseModel):
    projectId: Optional[str] = None
    active: Optional[StrictBool] = None
    severity: str = "warning"
    message: str = ""


def _source_from_payload(
    payload: Optional[Dict[str, Any]], role: str, expected_signer: str
) -> SourceResult:
    if payload is None:
        return SourceResult.absent(f"no {role} payload")
    try:
        reading = parse_reading(payload, fallback_source=role)
    except ReadingParseError as exc:
        return SourceResult.invalid(exc.message)
    return SourceResult.present(reading, verify_signature(reading, expected_signer))


# -------------------------
# Status
# -------------------------
@router.get("/api/projects")
def list_projects():
    return {
        "defaultProjectId": DEFAULT_PROJECT["id"],
        "projects": [
            {
                "id": m.project_id,
                "name": m.project.get("name"),
                "historySize": m.buffer.maxlen,
                "buffered": len(m.buffer),
            }
            for m in MONITORS.values()
        ],
    }


@router.get("/api/status")
def get_status(
    project: Optional[str] = Query(None, description="Project id"),
    refresh: bool = Query(False, description="Evaluate now instead of serving the last tick"),
):
    monitor = _require_monitor(project)
    tick = monitor.last_tick()
    if tick is None or refresh:
        tick = monitor.step()
    return tick.to_dict(monitor.project)


@router.get("/api/status/history")
def get_status_history(
    project: Optional[str] = Query(None, description="Project id"),
    limit: int = Query(50, ge=1, le=5000),
    since: Optional[int] = Query(None, description="Only statuses evaluated at or after this unix second"),
) -> List[Dict[str, Any]]:
    monitor = _require_monitor(project)
    return [status.to_dict() for status in monitor.history(limit, since=since)]


# -------------------------
# Standalone engine endpoints
# -------------------------
@router.post("/api/verify")
def verify_payload(body: VerifyRequest):
    try:
        reading = parse_reading(body.payload, fallback_source=body.fallbackSource)
    except ReadingParseError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    check = verify_signature(reading, body.expectedSigner)
    result = {"reading": reading.to_dict(), "messageVersion": reading.message_version}
    result.update(check.to_dict())
    return result


@router.post("/api/evaluate")
def evaluate_preview(body: EvaluateRequest):
    try:
        policy = ConsensusPolicy.from_mapping(body.policy)
        snapshot = (
            EnforcementSnapshot.from_mapping(body.onchain)
            if body.onchain is not None
            else EnforcementSnapshot.unavailable("no onchain snapshot")
        )
    except (ConfigurationError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    readings = ReadingPair(
        primary=_source_from_payload(body.primary, "primary", body.expectedSignerPrimary),
        secondary=_source_from_payload(body.secondary, "secondary", body.expectedSignerSecondary),
    )
    derived = evaluate(
        readings, policy, snapshot, incident=Incident.from_mapping(body.incident), now=body.now
    )
    return {
        "derived": derived.to_dict(),
        "reserves": {
            "primary": readings.primary.to_dict(),
            "secondary": readings.secondary.to_dict(),
        },
        "operator": {"recommendedActions": recommended_actions(derived)},
    }


# -------------------------
# Incidents
# -------------------------
@router.post("/admin/incident")
def set_incident(body: IncidentRequest):
    if body.active is None:
        raise HTTPException(status_code=400, detail="active must be boolean")
    incident = INCIDENTS.set(body.projectId, body.active, body.severity, body.message)
    return {"projectId": body.projectId or "default", "incident": incident.to_dict()}


@router.get("/incident/feed")
def get_incident_feed(project: Optional[str] = Query(None, description="Project id")):
    return {"projectId": project or "default", "incident": INCIDENTS.get(project).to_dict()}


def attach_to_app(app) -> None:
    """Include status routes on an existing FastAPI app."""
    app.include_router(router)
