from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class ApprovalSnapshot:
    sessions: Dict[str, int]
    previews: Dict[str, int]
    approvals: Dict[str, int]
    rejections: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "sessions": dict(self.sessions),
            "previews": dict(self.previews),
            "approvals": dict(self.approvals),
            "rejections": dict(self.rejections),
        }


class ApprovalObservabilityStore:
    """Collect approval flow telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._sessions: Dict[str, int] = defaultdict(int)
        self._previews: Dict[str, int] = defaultdict(int)
        self._approvals: Dict[str, int] = defaultdict(int)
        self._rejections: Dict[str, int] = defaultdict(int)

    def record_session_event(self, event: str) -> None:
        with self._lock:
            self._sessions[event] += 1

    def record_preview_event(self, event: str) -> None:
        with self._lock:
            self._previews[event] += 1

    def record_approval_event(self, event: str) -> None:
        with self._lock:
            self._approvals[event] += 1

    def record_rejection_event(self, event: str) -> None:
        with self._lock:
            self._rejections[event] += 1

    def snapshot(self) -> ApprovalSnapshot:
        with self._lock:
            return ApprovalSnapshot(
                sessions=dict(self._sessions),
                previews=dict(self._previews),
                approvals=dict(self._approvals),
                rejections=dict(self._rejections),
            )

    def reset(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._previews.clear()
            self._approvals.clear()
            self._rejections.clear()


_STORE = ApprovalObservabilityStore()


def get_approval_store() -> ApprovalObservabilityStore:
    return _STORE


__all__ = ["ApprovalObservabilityStore", "ApprovalSnapshot", "get_approval_store"]
