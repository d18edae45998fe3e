from __future__ import annotations

from typing import Any, Dict, Optional


class CaptureControlError(Exception):
    """
    Base error for coordinator level failures.

    kind
      Stable error name returned to MCP clients, for example NoAgentsRegistered.

    details
      Extra structured context, merged into the error payload of a tool.
    """

    kind = "CaptureControlError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": False, "error": self.kind, "message": self.message}
        out.update(self.details)
        return out


class NoAgentsRegistered(CaptureControlError):
    kind = "NoAgentsRegistered"


class NoCapturesToMerge(CaptureControlError):
    kind = "NoCapturesToMerge"


class ToolInvocationFailed(CaptureControlError):
    kind = "ToolInvocationFailed"


class DecodeFailed(ToolInvocationFailed):
    kind = "DecodeFailed"


class FilterOutputMissing(CaptureControlError):
    kind = "FilterOutputMissing"


class StorageIOFailed(CaptureControlError):
    kind = "StorageIOFailed"
