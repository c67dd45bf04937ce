"""Run-state types shared by the scheduler, node executor and recorder."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeStatus:
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class ExecutionStatus:
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    # Bookkeeping could not be persisted; the in-memory record is still served.
    PERSISTENCE_ERROR = "persistence_error"


class ErrorType:
    GRAPH = "graph_error"
    BUILD = "build_error"
    DECRYPTION = "decryption_error"
    DISPATCH = "dispatch_error"
    HTTP = "http_error"
    UPSTREAM = "upstream_failed"
    CANCELLED = "run_cancelled"
    INTERNAL = "internal_error"


@dataclass(frozen=True)
class NodeResult:
    """Recorded outcome of one node within one run.  Never mutated once appended."""

    node_id: str
    status: str
    started_at: datetime
    finished_at: datetime
    output: Any = None
    error: str | None = None
    error_type: str | None = None

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @classmethod
    def skipped(cls, node_id: str, reason: str, error_type: str = ErrorType.UPSTREAM) -> "NodeResult":
        now = utcnow()
        return cls(
            node_id=node_id,
            status=NodeStatus.SKIPPED,
            started_at=now,
            finished_at=now,
            error=reason,
            error_type=error_type,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "status": self.status,
            "output": self.output,
            "error": self.error,
            "error_type": self.error_type,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


@dataclass
class ExecutionRecord:
    """In-memory view of one Execution; mirrors what is persisted."""

    job_id: str
    workflow_id: str
    status: str = ExecutionStatus.RUNNING
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    error: str | None = None
    node_results: list[NodeResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "workflow_id": self.workflow_id,
            "status": self.status,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "error": self.error,
            "node_results": [r.to_dict() for r in self.node_results],
        }
