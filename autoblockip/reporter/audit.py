# AutoBlockIP - Audit logger (append-only JSONL)
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from autoblockip.models import RunReport

logger = __import__("logging").getLogger("autoblockip.audit")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditLogger:
    def __init__(self, config: dict[str, Any]) -> None:
        self.config = config
        self._enabled = config.get("enabled", True)
        self._path = Path(config.get("file") or "autoblockip-audit.jsonl")
        self._file: Any = None
        self._lock: asyncio.Lock | None = None

    @property
    def path(self) -> Path:
        return self._path

    async def start(self) -> None:
        if not self._enabled:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self._path, "a", encoding="utf-8")
        except OSError as e:
            logger.warning("Audit log disabled, cannot open %s: %s", self._path, e)
            self._file = None

    async def stop(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    async def _write(self, record: dict[str, Any]) -> None:
        if not self._file:
            return
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            self._file.write(json.dumps({"ts": _now(), **record}) + "\n")
            self._file.flush()

    async def log_run(self, report: RunReport) -> None:
        await self._write({"type": "run", "payload": report.to_dict()})

    async def log_action(self, action: str, details: dict[str, Any]) -> None:
        await self._write({"type": "action", "action": action, "details": details})


def read_audit(path: str | Path) -> list[dict[str, Any]]:
    p = Path(path)
    if not p.exists():
        return []
    lines = []
    with open(p, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                lines.append(json.loads(line))
    return lines
