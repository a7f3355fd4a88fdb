"""
NominaHub - Audit Trail Recorder

Append-only log scoped to a single payroll calculation. The trail travels
with the calculation result and is never written anywhere else, so
concurrent calculations cannot interleave entries.

Timestamps derive from one wall-clock reading plus a monotonic offset, so
they never go backwards within a trail.
"""

import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Type

from nominahub.models.payroll import AuditEntry


class AuditTrail:
    """Write-only audit log for one calculation run."""

    def __init__(self):
        self._entries: List[AuditEntry] = []
        self._origin_wall = datetime.now(timezone.utc)
        self._origin_perf = time.perf_counter()
        self._frozen = False

    def _now(self) -> datetime:
        return self._origin_wall + timedelta(seconds=time.perf_counter() - self._origin_perf)

    def record(
        self,
        phase: str,
        action: str,
        duration_ms: Optional[float] = None,
        level: str = "info",
        details: Optional[Mapping[str, Any]] = None,
    ) -> AuditEntry:
        if self._frozen:
            raise RuntimeError("Audit trail is frozen")
        entry = AuditEntry(
            phase=phase,
            action=action,
            timestamp=self._now(),
            duration_ms=duration_ms,
            level=level,
            details=dict(details) if details else None,
        )
        self._entries.append(entry)
        return entry

    def warn(
        self,
        phase: str,
        action: str,
        category: Type[Warning] = UserWarning,
        details: Optional[Mapping[str, Any]] = None,
    ) -> AuditEntry:
        """Record a non-fatal condition, tagged with its warning class."""
        return self.record(
            phase,
            action,
            level="warning",
            details={"warning": category.__name__, **(details or {})},
        )

    @contextmanager
    def phase(self, name: str, action: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        """
        Time a phase and emit one entry when it ends.

        The yielded dict becomes the entry's details. If the phase raises,
        an error entry is emitted instead and the exception propagates.
        """
        details: Dict[str, Any] = {}
        start = time.perf_counter()
        try:
            yield details
        except Exception as exc:
            elapsed = (time.perf_counter() - start) * 1000
            self.record(
                name,
                f"{name} failed: {type(exc).__name__}",
                duration_ms=round(elapsed, 3),
                level="error",
                details={"error": getattr(exc, "message", None) or str(exc), **details},
            )
            raise
        elapsed = (time.perf_counter() - start) * 1000
        self.record(name, action or f"{name} completed", duration_ms=round(elapsed, 3), details=details)

    @property
    def entries(self) -> Tuple[AuditEntry, ...]:
        return tuple(self._entries)

    def warnings(self) -> List[AuditEntry]:
        return [entry for entry in self._entries if entry.level == "warning"]

    def freeze(self) -> Tuple[AuditEntry, ...]:
        """Close the trail and return its entries."""
        self._frozen = True
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
