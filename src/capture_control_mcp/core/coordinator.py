from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from capture_control_mcp.pipeline.capture_pipeline import CapturePipeline
from capture_control_mcp.pipeline.filter_compiler import compile_filter

from .audit import AuditSink, null_audit
from .dispatcher import Dispatcher
from .errors import CaptureControlError, NoAgentsRegistered, StorageIOFailed
from .models import FILTER_KO, AgentOutcome, CoordinatorState, FilterResult
from .registry import AgentRegistry

logger = logging.getLogger(__name__)


def _outcomes(results: List[AgentOutcome]) -> List[Dict[str, Any]]:
    return [r.to_dict() for r in results]


class Coordinator:
    """
    Capture round state machine.

    Idle -> Capturing on start (any registered agent, whatever the agents answer)
    Capturing -> Idle on stop (whatever merge, decode and filter return)

    The state is advisory. Nothing here tracks agent liveness.

    start, stop, submit_config and reset are serialized by one lock so two
    rounds never write merged.pcap or filtered.pcap at the same time.
    Registration is lock free, the registry only grows.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        dispatcher: Dispatcher,
        pipeline: CapturePipeline,
        grace_seconds: float = 5.0,
        log: Optional[Callable[[str], None]] = None,
        audit: AuditSink = null_audit,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.pipeline = pipeline
        self.store = pipeline.store
        self.grace_seconds = float(grace_seconds)
        self.state = CoordinatorState.IDLE
        self._lock = asyncio.Lock()
        self._log = log or logger.info
        self._audit = audit

    def register(self, identity: str) -> Dict[str, Any]:
        added = self.registry.register(identity)
        if added:
            self._log(f"agent registered: {identity}")
        else:
            self._log(f"agent already registered: {identity}")
        self._audit("register", identity, True)
        return {"ok": True, "received": identity, "added": added}

    def _require_agents(self, action: str) -> List[str]:
        agents = self.registry.list()
        if not agents:
            err = NoAgentsRegistered(f"no agents registered to {action}")
            self._audit(action, err.message, False)
            raise err
        return agents

    async def _refilter(self, config: Mapping[str, Any]) -> FilterResult:
        try:
            expression = compile_filter(config)
        except (TypeError, ValueError) as e:
            logger.error("filter config does not compile: %s", e)
            self._audit("filter", f"config does not compile: {e}", False)
            return FilterResult(
                status=FILTER_KO, error=f"config does not compile: {e}", error_kind="InvalidFilterConfig"
            )
        return await asyncio.to_thread(self.pipeline.filter, expression)

    async def start(self) -> Dict[str, Any]:
        """
        Clear the previous round and tell every agent to start capturing.
        Does not wait for, or check, that any agent actually began.
        """
        async with self._lock:
            agents = self._require_agents("start")
            try:
                await asyncio.to_thread(self.pipeline.clear_capture_artifacts)
            except CaptureControlError as e:
                self._audit("start", e.message, False)
                raise

            results = await self.dispatcher.broadcast_start(agents)
            self.state = CoordinatorState.CAPTURING
            ok = sum(1 for r in results if r.ok)
            self._audit("start", f"{ok}/{len(results)} agents started", True)
            return {"ok": True, "message": "Start signal sent to all agents.", "results": _outcomes(results)}

    async def stop(self) -> Dict[str, Any]:
        """
        Stop every agent, wait for their files, then merge, decode and
        filter with the last submitted config if there is one.

        A merge failure fails the whole call, with the agent outcomes
        attached to the error. Decode and filter failures come back as a
        degraded success.
        """
        async with self._lock:
            agents = self._require_agents("stop")
            results = await self.dispatcher.broadcast_stop(agents)
            self.state = CoordinatorState.IDLE

            # agents flush their capture file shortly after answering
            await asyncio.sleep(self.grace_seconds)

            out: Dict[str, Any] = {
                "ok": True,
                "message": "Stop signal sent to all agents.",
                "results": _outcomes(results),
            }

            try:
                await asyncio.to_thread(self.pipeline.merge)
            except CaptureControlError as e:
                e.details.setdefault("results", _outcomes(results))
                self._audit("stop", e.message, False)
                raise

            try:
                out["record"] = await asyncio.to_thread(
                    self.pipeline.decode, self.store.merged_path, self.store.decoded_path
                )
            except CaptureControlError as e:
                out.update({"error": e.message, "error_kind": e.kind})
                self._audit("stop", e.message, False)
                return out

            try:
                config = self.store.load_config()
            except StorageIOFailed as e:
                out.update({"error": e.message, "error_kind": e.kind})
                self._audit("stop", e.message, False)
                return out

            if config is not None:
                fr = await self._refilter(config)
                out.update(fr.to_dict())
                if fr.ok:
                    del out["record"]

            self._audit("stop", f"aggregated captures from {len(results)} agents", True)
            return out

    async def submit_config(self, config: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Persist config as the only config, replacing the previous one, and
        re-filter the merged capture if one exists. Never raises.
        """
        cfg = dict(config or {})
        async with self._lock:
            try:
                self.store.save_config(cfg)
            except StorageIOFailed as e:
                self._audit("config", e.message, False)
                return {"ok": False, "persisted": False, "error": e.message, "error_kind": e.kind}

            out: Dict[str, Any] = {"ok": True, "persisted": True}
            if not self.store.has_merged():
                self._audit("config", "persisted, no merged capture to filter", True)
                return out

            fr = await self._refilter(cfg)
            out.update(fr.to_dict())
            self._audit("config", f"persisted, filter {fr.status}", True)
            return out

    async def reset(self) -> Dict[str, Any]:
        """
        Forget the filter config and the filtered artifacts.
        Raw and merged captures stay.
        """
        async with self._lock:
            try:
                self.store.delete_config()
                for p in self.store.filtered_artifacts():
                    self.store.remove(p)
            except StorageIOFailed as e:
                self._audit("reset", e.message, False)
                raise
            self._audit("reset", "filter config and filtered artifacts removed", True)
            return {"ok": True, "cleaned": True}

    def current_config(self) -> Dict[str, Any]:
        return self.store.load_config() or {}

    def status(self) -> Dict[str, Any]:
        """
        Quick snapshot. Must be fast and side effect free.
        """
        return {
            "state": self.state.value,
            "agents": self.registry.list(),
            "busy": self._lock.locked(),
            "raw_captures": [p.name for p in self.store.raw_captures()],
            "merged": self.store.has_merged(),
            "filtered": self.store.filtered_path.is_file(),
            "config_present": self.store.config_path.is_file(),
            "config": self.store.load_config() or {},
        }
