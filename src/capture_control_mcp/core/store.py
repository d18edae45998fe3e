from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import StorageIOFailed

RAW_PREFIX = "dumpfile_"
RAW_SUFFIX = ".pcap"

MERGED_FILE = "merged.pcap"
DECODED_FILE = "output.json"
FILTERED_FILE = "filtered.pcap"
FILTERED_DECODED_FILE = "filtered_output.json"
CONFIG_FILE = "filter_config.json"
AUDIT_FILE = "audit.log"


class CaptureStore:
    """
    Filesystem area shared between the agents and the coordinator.

    Write partition:
      Agents write their own RawCapture files, dumpfile_<agent>.pcap.
      The coordinator only writes derived artifacts and the filter config.
      Nobody else touches the other side's files, so no locking is needed.

    Every OSError other than "file is already gone" becomes StorageIOFailed.
    """

    def __init__(self, root: str):
        self.root = Path(root)

    @property
    def merged_path(self) -> Path:
        return self.root / MERGED_FILE

    @property
    def decoded_path(self) -> Path:
        return self.root / DECODED_FILE

    @property
    def filtered_path(self) -> Path:
        return self.root / FILTERED_FILE

    @property
    def filtered_decoded_path(self) -> Path:
        return self.root / FILTERED_DECODED_FILE

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILE

    @property
    def audit_path(self) -> Path:
        return self.root / AUDIT_FILE

    def raw_capture_path(self, agent: str) -> Path:
        """
        Deterministic RawCapture location for one agent.
        """
        return self.root / f"{RAW_PREFIX}{agent}{RAW_SUFFIX}"

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOFailed(f"cannot create capture store {self.root}: {e}") from e

    def raw_captures(self) -> List[Path]:
        """
        RawCapture files currently present, sorted by name.
        Derived .pcap artifacts never match the dumpfile_ prefix.
        """
        if not self.root.exists():
            return []
        try:
            return sorted(
                p for p in self.root.iterdir()
                if p.is_file() and p.name.startswith(RAW_PREFIX) and p.name.endswith(RAW_SUFFIX)
            )
        except OSError as e:
            raise StorageIOFailed(f"cannot list capture store {self.root}: {e}") from e

    def has_merged(self) -> bool:
        return self.merged_path.is_file()

    def remove(self, path: Path) -> bool:
        """
        Delete path if present. True means something was deleted.
        """
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOFailed(f"cannot delete {path}: {e}") from e

    def derived_artifacts(self) -> List[Path]:
        return [self.merged_path, self.decoded_path, self.filtered_path, self.filtered_decoded_path]

    def filtered_artifacts(self) -> List[Path]:
        return [self.filtered_path, self.filtered_decoded_path]

    def copy(self, src: Path, dst: Path) -> None:
        try:
            shutil.copyfile(src, dst)
        except OSError as e:
            raise StorageIOFailed(f"cannot copy {src} to {dst}: {e}") from e

    def write_text(self, path: Path, text: str) -> None:
        """
        Write through a temp file and rename so readers never see half a file.
        """
        self.ensure_root()
        tmp = path.with_name(path.name + ".tmp")
        try:
            tmp.write_text(text, encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StorageIOFailed(f"cannot write {path}: {e}") from e

    def read_text(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageIOFailed(f"cannot read {path}: {e}") from e

    def save_config(self, config: Dict[str, Any]) -> None:
        try:
            text = json.dumps(config, indent=2, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise StorageIOFailed(f"filter config is not serializable: {e}") from e
        self.write_text(self.config_path, text)

    def load_config(self) -> Optional[Dict[str, Any]]:
        """
        Latest persisted FilterConfig, or None if nothing was ever submitted.
        """
        if not self.config_path.is_file():
            return None
        raw = self.read_text(self.config_path)
        try:
            obj = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageIOFailed(f"corrupt filter config {self.config_path}: {e}") from e
        if not isinstance(obj, dict):
            raise StorageIOFailed(f"corrupt filter config {self.config_path}: not a mapping")
        return obj

    def delete_config(self) -> bool:
        return self.remove(self.config_path)
