"""
In-memory ReserveWatch state: status ring buffer, incidents and live monitor.
"""

from .status_buffer import StatusBuffer
from .incidents import INCIDENTS, IncidentRegistry
from .monitor import MonitorTick, ReserveMonitor

__all__ = [
    "StatusBuffer",
    "INCIDENTS",
    "IncidentRegistry",
    "MonitorTick",
    "ReserveMonitor",
]
