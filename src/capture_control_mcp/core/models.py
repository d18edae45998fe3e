from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

SUCCESS = "success"
FAILED = "failed"

FILTER_OK = "ok"
FILTER_KO = "ko"


class CoordinatorState(str, Enum):
    IDLE = "Idle"
    CAPTURING = "Capturing"


@dataclass
class AgentOutcome:
    """
    Result of one remote start or stop call.

    agent
      Registered agent identity.

    status
      "success" or "failed". Failures are data, they never abort a broadcast.

    error
      Error message for failed calls, None otherwise.
    """

    agent: str
    status: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"agent": self.agent, "status": self.status}
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class FilterResult:
    """
    Tagged outcome of one filter run.

    status
      "ok" with the decoded filtered record, or "ko" with an error.

    error_kind
      On "ko", either ToolInvocationFailed (the filter or decode step failed)
      or FilterOutputMissing (the filter ran but left nothing to decode).
    """

    status: str
    expression: str = ""
    record: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == FILTER_OK

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"filter_status": self.status, "filter_expression": self.expression}
        if self.ok:
            out["filtered_record"] = self.record
        else:
            out["error"] = self.error
            out["error_kind"] = self.error_kind
        return out


@dataclass
class AuditEvent:
    ts: float
    event: str
    detail: str
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
