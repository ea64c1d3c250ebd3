"""In-memory incident registry keyed by project id."""
from threading import Lock
from typing import Dict, Optional
import logging
import time

from reservewatch.engine.status import Incident, IncidentSeverity

logger = logging.getLogger(__name__)

DEFAULT_KEY = "default"


class IncidentRegistry:
    """Latest incident per project. Projects with no record report an inactive warning."""

    def __init__(self):
        self._incidents: Dict[str, Incident] = {}
        self._lock = Lock()

    def get(self, project_id: Optional[str] = None) -> Incident:
        key = project_id or DEFAULT_KEY
        with self._lock:
            existing = self._incidents.get(key)
        if existing is not None:
            return existing
        return Incident(active=False, updated_at=int(time.time()))

    def set(
        self,
        project_id: Optional[str],
        active: bool,
        severity: str = IncidentSeverity.WARNING.value,
        message: str = "",
    ) -> Incident:
        incident = Incident(
            active=bool(active),
            severity=(
                IncidentSeverity.CRITICAL
                if severity == IncidentSeverity.CRITICAL.value
                else IncidentSeverity.WARNING
            ),
            message=message if isinstance(message, str) else "",
            updated_at=int(time.time()),
        )
        key = project_id or DEFAULT_KEY
        with self._lock:
            self._incidents[key] = incident
        logger.info(
            "Incident for %s set active=%s severity=%s", key, incident.active, incident.severity.value
        )
        return incident

    def clear(self) -> None:
        with self._lock:
            self._incidents.clear()


INCIDENTS = IncidentRegistry()
