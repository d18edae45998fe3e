"""
Coordinator core: registry, store, dispatcher and audit log.

Keep external tool invocation out of this package, it lives in pipeline.
Coordinator and server depend on pipeline, import them by module path.
"""

from .registry import AgentRegistry
from .store import CaptureStore
from .dispatcher import Dispatcher
from .audit import AuditLog

__all__ = ["AgentRegistry", "CaptureStore", "Dispatcher", "AuditLog"]
