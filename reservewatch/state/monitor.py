"""Live reserve monitor: fetch, evaluate and buffer one status per tick."""
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from threading import Event, Lock
from typing import Any, Callable, Dict, List, Optional
import logging

import requests

from reservewatch.config import (
    ATTESTATION_VERSION,
    POLL_INTERVAL_S,
    SOURCE_FETCH_TIMEOUT_S,
    STATUS_HISTORY_SIZE,
)
from reservewatch.engine.attestation import attestation_hash, build_attestation
from reservewatch.engine.enforcement import (
    EnforcementSnapshot,
    EnforcementTransition,
    detect_enforcement_transition,
)
from reservewatch.engine.operator import recommended_actions
from reservewatch.engine.policy import ConsensusPolicy
from reservewatch.engine.reading import SourceResult
from reservewatch.engine.status import DerivedStatus, Incident, ReadingPair, evaluate
from reservewatch.ingestion.onchain import OnchainReader
from reservewatch.ingestion.reserve_sources import fetch_connector
from .incidents import INCIDENTS, IncidentRegistry
from .status_buffer import StatusBuffer

logger = logging.getLogger(__name__)

TransitionHandler = Callable[[str, EnforcementTransition], None]


@dataclass(frozen=True)
class MonitorTick:
    """Inputs and output of one evaluation, kept for reporting."""

    derived: DerivedStatus
    readings: ReadingPair
    snapshot: EnforcementSnapshot
    incident: Optional[Incident]
    attestation: Optional[Dict[str, Any]] = None

    def to_dict(self, project: Optional[Dict] = None) -> Dict[str, Any]:
        return {
            "project": {
                "id": (project or {}).get("id"),
                "name": (project or {}).get("name"),
            },
            "reserves": {
                "primary": self.readings.primary.to_dict() if self.readings.primary else None,
                "secondary": self.readings.secondary.to_dict() if self.readings.secondary else None,
            },
            "onchain": self.snapshot.to_dict(),
            "incident": self.incident.to_dict() if self.incident else None,
            "derived": self.derived.to_dict(),
            "attestation": self.attestation,
            "operator": {"recommendedActions": recommended_actions(self.derived)},
        }


def attestation_preview(
    derived: DerivedStatus,
    snapshot: EnforcementSnapshot,
    version: str = ATTESTATION_VERSION,
) -> Optional[Dict[str, Any]]:
    """
    Attestation the write side would broadcast for this tick.

    None unless a reading was selected and the liability supply and minimum
    coverage are both known. ``matchesOnchain`` compares against the
    receiver's ``lastAttestationHash`` (None when that is unknown).
    """
    reading = derived.resolution.selected
    min_bps = derived.coverage.min_coverage_bps
    if reading is None or min_bps is None:
        return None
    if not snapshot.available or snapshot.liability_supply is None:
        return None

    attestation = build_attestation(reading, snapshot.liability_supply, min_bps)
    digest = attestation_hash(attestation, version)
    matches = None
    if snapshot.last_attestation_hash:
        matches = digest == snapshot.last_attestation_hash.lower()
    return {
        "version": version,
        "values": attestation.to_dict(),
        "hash": digest,
        "matchesOnchain": matches,
    }


class ReserveMonitor:
    """
    Poll both reserve sources and the chain, then evaluate.

    The three fetches run concurrently and are all joined before evaluation.
    Each tick is evaluated from scratch; the only state carried between ticks
    is the previous on-chain snapshot, used for transition detection.
    """

    def __init__(
        self,
        project: Dict,
        buffer: Optional[StatusBuffer] = None,
        reader: Optional[OnchainReader] = None,
        incidents: IncidentRegistry = INCIDENTS,
        poll_seconds: float = POLL_INTERVAL_S,
        fetch_timeout: float = SOURCE_FETCH_TIMEOUT_S,
        session: Optional[requests.Session] = None,
        on_transition: Optional[TransitionHandler] = None,
        attestation_version: str = ATTESTATION_VERSION,
    ):
        self.project = project
        self.project_id = str(project.get("id") or "default")
        # Raises ConfigurationError on a malformed policy
        self.policy = ConsensusPolicy.from_mapping(project.get("policy"))
        self.buffer = buffer if buffer is not None else StatusBuffer(maxlen=STATUS_HISTORY_SIZE)
        self.session = session or requests.Session()
        self.reader = reader or OnchainReader.from_project(
            project.get("onchain") or {}, session=self.session
        )
        self.incidents = incidents
        self.poll_seconds = poll_seconds
        self.fetch_timeout = fetch_timeout
        self.on_transition = on_transition
        self.attestation_version = attestation_version

        self._previous_snapshot: Optional[EnforcementSnapshot] = None
        self._lock = Lock()

    @property
    def connectors(self) -> Dict:
        return self.project.get("connectors") or {}

    def last_tick(self) -> Optional[MonitorTick]:
        return self.buffer.latest()

    def _join_source(self, future: Future, role: str) -> SourceResult:
        try:
            return future.result()
        except Exception as exc:
            logger.error("%s reserve fetch crashed: %s", role, exc, exc_info=True)
            return SourceResult.absent(str(exc))

    def _join_snapshot(self, future: Future) -> EnforcementSnapshot:
        try:
            return future.result()
        except Exception as exc:
            logger.error("On-chain read crashed: %s", exc, exc_info=True)
            return EnforcementSnapshot.unavailable(str(exc))

    def fetch(self) -> tuple:
        """Fetch both sources and the on-chain snapshot concurrently."""
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="reservewatch") as pool:
            primary_f = pool.submit(
                fetch_connector,
                self.connectors.get("primary"),
                "primary",
                timeout=self.fetch_timeout,
                session=self.session,
            )
            secondary_f = pool.submit(
                fetch_connector,
                self.connectors.get("secondary"),
                "secondary",
                timeout=self.fetch_timeout,
                session=self.session,
            )
            onchain_f = pool.submit(self.reader.read_snapshot)

            readings = ReadingPair(
                primary=self._join_source(primary_f, "primary"),
                secondary=self._join_source(secondary_f, "secondary"),
            )
            snapshot = self._join_snapshot(onchain_f)
        return readings, snapshot

    def step(self, now: Optional[int] = None) -> MonitorTick:
        """Run one fetch + evaluate cycle and record the result."""
        readings, snapshot = self.fetch()
        incident = self.incidents.get(self.project_id) if self.incidents is not None else None

        derived = evaluate(readings, self.policy, snapshot, incident=incident, now=now)
        tick = MonitorTick(
            derived=derived,
            readings=readings,
            snapshot=snapshot,
            incident=incident,
            attestation=attestation_preview(derived, snapshot, self.attestation_version),
        )

        self.buffer.append(tick)
        with self._lock:
            previous = self._previous_snapshot
            if snapshot.available:
                self._previous_snapshot = snapshot

        transition = detect_enforcement_transition(previous, snapshot)
        if transition is not None:
            self._emit_transition(transition)

        logger.info(
            "Status %s for %s reasons=%s buffer=%d",
            derived.status.value,
            self.project_id,
            sorted(r.value for r in derived.reasons) or "[]",
            len(self.buffer),
        )
        return tick

    def _emit_transition(self, transition: EnforcementTransition) -> None:
        logger.warning(
            "Enforcement state changed for %s: mintingPaused %s -> %s, mintingEnabled %s -> %s",
            self.project_id,
            transition.minting_paused_before,
            transition.minting_paused,
            transition.minting_enabled_before,
            transition.minting_enabled,
        )
        if self.on_transition is not None:
            try:
                self.on_transition(self.project_id, transition)
            except Exception as exc:  # pragma: no cover - resilience path
                logger.error("Transition handler failed: %s", exc, exc_info=True)

    def run(self, stop_event: Optional[Event] = None, max_ticks: Optional[int] = None) -> None:
        """Run the polling loop until stopped."""
        stop_event = stop_event or Event()
        logger.info(
            "Starting ReserveMonitor for %s (poll=%.2fs, mode=%s)",
            self.project_id,
            self.poll_seconds,
            self.policy.mode.value,
        )
        ticks = 0
        try:
            while not stop_event.is_set():
                try:
                    self.step()
                except Exception as exc:  # pragma: no cover - resilience path
                    logger.error("Monitor tick failed: %s", exc, exc_info=True)
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                stop_event.wait(self.poll_seconds)
        except KeyboardInterrupt:
            logger.info("ReserveMonitor stopped by user")

    def history(self, n: Optional[int] = None, since: Optional[int] = None) -> List[DerivedStatus]:
        return self.buffer.statuses(n, since)
