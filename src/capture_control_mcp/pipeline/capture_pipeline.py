from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from capture_control_mcp.core.audit import AuditSink, null_audit
from capture_control_mcp.core.errors import (
    CaptureControlError,
    DecodeFailed,
    FilterOutputMissing,
    NoCapturesToMerge,
    ToolInvocationFailed,
)
from capture_control_mcp.core.models import FILTER_KO, FILTER_OK, FilterResult
from capture_control_mcp.core.store import CaptureStore

from .executor import CommandRunner

logger = logging.getLogger(__name__)


class CapturePipeline:
    """
    Merge, decode and filter steps over the capture store.

    Tools:
      mergecap  chronological merge of every RawCapture
      tshark    decode to JSON (-T json) and display filter (-Y ... -w ...)

    All calls are blocking. The coordinator runs them off the event loop
    and never runs two of them at the same time.
    """

    def __init__(
        self,
        store: CaptureStore,
        runner: CommandRunner,
        mergecap_path: str = "mergecap",
        tshark_path: str = "tshark",
        tool_timeout_s: float = 120.0,
        log: Optional[Callable[[str], None]] = None,
        audit: AuditSink = null_audit,
    ):
        self.store = store
        self.runner = runner
        self.mergecap_path = mergecap_path
        self.tshark_path = tshark_path
        self.tool_timeout_s = float(tool_timeout_s)
        self._log = log or logger.info
        self._audit = audit

    def clear_capture_artifacts(self) -> int:
        """
        Delete every RawCapture and every derived artifact.
        Returns the number of files deleted, zero on an empty store.
        The filter config and the audit log are kept.
        """
        try:
            targets = self.store.raw_captures() + self.store.derived_artifacts()
            removed = sum(1 for p in targets if self.store.remove(p))
        except CaptureControlError as e:
            self._audit("clear", e.message, False)
            raise
        self._log(f"cleared {removed} capture artifacts from {self.store.root}")
        self._audit("clear", f"removed {removed} files", True)
        return removed

    def merge(self) -> Path:
        """
        Merge all RawCapture files present right now into merged.pcap.
        """
        try:
            self.store.remove(self.store.merged_path)
            raw = self.store.raw_captures()
            if not raw:
                raise NoCapturesToMerge(f"no capture files found to merge in {self.store.root}")

            args = [self.mergecap_path, "-w", str(self.store.merged_path)] + [str(p) for p in raw]
            r = self.runner.run(args, timeout_s=self.tool_timeout_s)
            if r.returncode != 0:
                raise ToolInvocationFailed(
                    "mergecap failed",
                    {"tool": "mergecap", "returncode": r.returncode, "stderr": r.stderr.strip()},
                )
            if not self.store.has_merged():
                raise ToolInvocationFailed("mergecap produced no merged capture", {"tool": "mergecap"})
        except CaptureControlError as e:
            # never leave a partial merge behind
            self.store.remove(self.store.merged_path)
            logger.error("merge failed: %s", e.message)
            self._audit("merge", e.message, False)
            raise

        self._log(f"merged {len(raw)} capture files into {self.store.merged_path.name}")
        self._audit("merge", f"merged {len(raw)} files", True)
        return self.store.merged_path

    def decode(self, capture: Path, output: Path) -> Any:
        """
        Decode capture with tshark -T json, keep the JSON text in output,
        and return the parsed record.
        """
        try:
            self.store.remove(output)
            r = self.runner.run(
                [self.tshark_path, "-r", str(capture), "-T", "json"],
                timeout_s=self.tool_timeout_s,
            )
            if r.returncode != 0:
                raise DecodeFailed(
                    f"tshark could not decode {capture.name}",
                    {"tool": "tshark", "returncode": r.returncode, "stderr": r.stderr.strip()},
                )
            if not r.stdout.strip():
                raise DecodeFailed(f"tshark produced no output for {capture.name}", {"tool": "tshark"})

            self.store.write_text(output, r.stdout)
            try:
                record = json.loads(r.stdout)
            except json.JSONDecodeError as e:
                raise DecodeFailed(f"tshark output for {capture.name} is not JSON: {e}", {"tool": "tshark"}) from e
        except CaptureControlError as e:
            logger.error("decode failed: %s", e.message)
            self._audit("decode", e.message, False)
            raise

        self._audit("decode", f"decoded {capture.name}", True)
        return record

    def _discard_filtered(self) -> None:
        for p in self.store.filtered_artifacts():
            try:
                self.store.remove(p)
            except CaptureControlError as e:
                logger.warning("could not remove %s: %s", p.name, e.message)

    def filter(self, expression: str) -> FilterResult:
        """
        Filter merged.pcap into filtered.pcap and decode the result.

        An empty expression copies merged.pcap unchanged.
        Never raises, failures come back as a "ko" FilterResult.
        """
        try:
            for p in self.store.filtered_artifacts():
                self.store.remove(p)

            if not self.store.has_merged():
                raise FilterOutputMissing("no merged capture to filter")

            if not expression:
                self.store.copy(self.store.merged_path, self.store.filtered_path)
            else:
                r = self.runner.run(
                    [
                        self.tshark_path,
                        "-r",
                        str(self.store.merged_path),
                        "-Y",
                        expression,
                        "-w",
                        str(self.store.filtered_path),
                    ],
                    timeout_s=self.tool_timeout_s,
                )
                if r.returncode != 0:
                    raise ToolInvocationFailed(
                        f"tshark filter failed: {r.stderr.strip() or 'exit ' + str(r.returncode)}",
                        {"tool": "tshark", "returncode": r.returncode},
                    )

            if not self.store.filtered_path.is_file():
                raise FilterOutputMissing("filter produced no capture file")

            try:
                record = self.decode(self.store.filtered_path, self.store.filtered_decoded_path)
            except DecodeFailed as e:
                raise FilterOutputMissing(f"filtered capture is not decodable: {e.message}") from e
        except CaptureControlError as e:
            self._discard_filtered()
            logger.error("filter failed: %s", e.message)
            self._audit("filter", e.message, False)
            return FilterResult(status=FILTER_KO, expression=expression, error=e.message, error_kind=e.kind)

        self._log(f"filtered merged capture with expression {expression!r}")
        self._audit("filter", expression or "<match all>", True)
        return FilterResult(status=FILTER_OK, expression=expression, record=record)
