"""JSON snapshot of the in-memory store."""

import json
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from wa_operator.store.memory import Store


class SnapshotStore:
    """Load the store at boot and write it back periodically and on shutdown."""

    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _read(self) -> dict[str, Any]:
        try:
            if self.path.exists():
                raw = self.path.read_text(encoding="utf-8")
                parsed = json.loads(raw)
                if isinstance(parsed, dict):
                    return parsed
        except (OSError, json.JSONDecodeError):
            return {}
        return {}

    def _write(self, payload: dict[str, Any]) -> bool:
        tmp_path = self.path.with_suffix(".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.path)
            return True
        except OSError:
            return False

    def load(self) -> Store:
        payload = self._read()
        if not payload:
            return Store()
        try:
            store = Store.from_dict(payload)
        except ValidationError as exc:
            logger.warning(f"Snapshot {self.path} is invalid, starting empty: {exc}")
            return Store()
        logger.info(f"Loaded snapshot {self.path}: {store.counts()}")
        return store

    def save(self, store: Store) -> bool:
        ok = self._write(store.to_dict())
        if not ok:
            logger.error(f"Failed to write snapshot {self.path}")
        return ok
