# AutoBlockIP - Audit log sources: failed logon records from the security log
from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from dateutil import parser as dup

from autoblockip.errors import FeedUnavailable
from autoblockip.models import EventKind, LoginFailureRecord

logger = __import__("logging").getLogger("autoblockip.collector.eventlog")

FAILED_LOGON_EVENT_ID = 4625
AUDIT_FAILURE_KEYWORD = 0x10000000000000


@dataclass(frozen=True)
class SecurityEventSchema:
    """Named access to the positional detail fields of a failed logon event."""

    event_id: int = FAILED_LOGON_EVENT_ID
    account_field: int = 5
    address_field: int = 19

    @property
    def min_fields(self) -> int:
        return max(self.account_field, self.address_field) + 1

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "SecurityEventSchema":
        feed = config.get("feed", {})
        return cls(
            event_id=int(feed.get("event_id", FAILED_LOGON_EVENT_ID)),
            account_field=int(feed.get("account_field", 5)),
            address_field=int(feed.get("address_field", 19)),
        )

    def target_account(self, fields: Sequence[Any]) -> str:
        return _as_text(fields[self.account_field])

    def source_address(self, fields: Sequence[Any]) -> str:
        return _as_text(fields[self.address_field])

    def to_record(
        self,
        timestamp: datetime,
        fields: Sequence[Any],
        event_kind: EventKind,
    ) -> LoginFailureRecord | None:
        if len(fields) < self.min_fields:
            return None
        return LoginFailureRecord(
            timestamp=timestamp,
            target_account=self.target_account(fields),
            source_address=self.source_address(fields),
            event_kind=event_kind,
        )


def _as_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 (or other dateutil-readable) timestamp into aware UTC."""
    if isinstance(value, datetime):
        ts = value
    else:
        ts = dup.parse(str(value))
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class AuditLogSource:
    """Read-only feed of failed logon records."""

    def read_failed_logins(self, since: datetime) -> list[LoginFailureRecord]:
        raise NotImplementedError


# --- Windows Security event log (PowerShell Get-WinEvent) ---

_PS_TEMPLATE = (
    "$ErrorActionPreference = 'Stop'; "
    "try {{ "
    "$events = Get-WinEvent -FilterHashtable @{{LogName='Security';Id={event_id};"
    "StartTime=[datetime]::Parse('{since}').ToLocalTime()}}; "
    "@($events | ForEach-Object {{ [pscustomobject]@{{"
    "TimeCreated=$_.TimeCreated.ToUniversalTime().ToString('o');"
    "Keywords=[int64]$_.Keywords;"
    "Fields=@($_.Properties | ForEach-Object {{ [string]$_.Value }})}} }}) "
    "| ConvertTo-Json -Compress -Depth 3 "
    "}} catch {{ "
    "if ($_.FullyQualifiedErrorId -like 'NoMatchingEventsFound*') {{ '[]' }} else {{ throw }} "
    "}}"
)


class WindowsEventLogSource(AuditLogSource):
    def __init__(self, schema: SecurityEventSchema, timeout_sec: float = 60) -> None:
        self.schema = schema
        self._timeout = timeout_sec

    def build_script(self, since: datetime) -> str:
        since_utc = since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return _PS_TEMPLATE.format(event_id=self.schema.event_id, since=since_utc)

    def read_failed_logins(self, since: datetime) -> list[LoginFailureRecord]:
        cmd = ["powershell", "-NoProfile", "-NonInteractive", "-Command", self.build_script(since)]
        try:
            r = subprocess.run(cmd, capture_output=True, text=True, timeout=self._timeout)
        except FileNotFoundError as e:
            raise FeedUnavailable(f"PowerShell not available: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise FeedUnavailable(f"Security log read timed out after {self._timeout}s", retryable=True) from e
        if r.returncode != 0:
            raise FeedUnavailable(f"Get-WinEvent failed (exit {r.returncode}): {(r.stderr or '').strip()[:500]}")
        return self.parse_output(r.stdout)

    def parse_output(self, stdout: str) -> list[LoginFailureRecord]:
        output = (stdout or "").strip()
        if not output:
            return []
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise FeedUnavailable(f"Unreadable Get-WinEvent output: {e}") from e
        if isinstance(data, dict):
            data = [data]

        records: list[LoginFailureRecord] = []
        for entry in data:
            if not isinstance(entry, dict):
                logger.debug("Skipping non-object event %r", entry)
                continue
            fields = entry.get("Fields") or []
            if isinstance(fields, str):
                fields = [fields]
            try:
                ts = parse_timestamp(entry.get("TimeCreated", ""))
            except (ValueError, OverflowError):
                logger.debug("Skipping event with unreadable time %r", entry.get("TimeCreated"))
                continue
            keywords = int(entry.get("Keywords") or 0)
            kind = EventKind.FAILURE_AUDIT if keywords & AUDIT_FAILURE_KEYWORD else EventKind.OTHER
            rec = self.schema.to_record(ts, fields, kind)
            if rec is None:
                logger.debug("Skipping event with %d detail fields", len(fields))
                continue
            records.append(rec)
        return records


# --- Exported JSON Lines file ---


class JsonLinesEventSource(AuditLogSource):
    """One JSON object per line: timestamp, entry_type, event_id, and fields or named values."""

    def __init__(self, path: str | Path, schema: SecurityEventSchema) -> None:
        self.path = Path(path)
        self.schema = schema

    def read_failed_logins(self, since: datetime) -> list[LoginFailureRecord]:
        if not self.path.exists():
            raise FeedUnavailable(f"Feed file not found: {self.path}")
        records: list[LoginFailureRecord] = []
        try:
            # undecodable bytes end up in a line that fails to parse and is skipped
            with open(self.path, encoding="utf-8", errors="replace") as f:
                for lineno, line in enumerate(f, 1):
                    line = line.strip()
                    if not line:
                        continue
                    rec = self._parse_line(line, lineno)
                    if rec is not None and rec.timestamp >= since:
                        records.append(rec)
        except OSError as e:
            raise FeedUnavailable(f"Cannot read {self.path}: {e}") from e
        return records

    def _parse_line(self, line: str, lineno: int) -> LoginFailureRecord | None:
        try:
            entry = json.loads(line)
            ts = parse_timestamp(entry["timestamp"])
            event_id = entry.get("event_id")
            if event_id is not None and int(event_id) != self.schema.event_id:
                return None
        except (ValueError, KeyError, TypeError, OverflowError) as e:
            logger.debug("%s:%d skipped: %s", self.path, lineno, e)
            return None
        entry_type = str(entry.get("entry_type", "FailureAudit")).replace("_", "").lower()
        kind = EventKind.FAILURE_AUDIT if entry_type == "failureaudit" else EventKind.OTHER
        fields = entry.get("fields")
        if isinstance(fields, list):
            return self.schema.to_record(ts, fields, kind)
        return LoginFailureRecord(
            timestamp=ts,
            target_account=_as_text(entry.get("target_account")),
            source_address=_as_text(entry.get("source_address")),
            event_kind=kind,
        )


def build_source(config: dict[str, Any]) -> AuditLogSource:
    feed = config.get("feed", {})
    schema = SecurityEventSchema.from_config(config)
    kind = (feed.get("source") or "windows").strip().lower()
    if kind == "windows":
        return WindowsEventLogSource(schema, timeout_sec=float(feed.get("timeout_sec", 60)))
    if kind == "jsonl":
        if not feed.get("path"):
            raise FeedUnavailable("feed.path is required when feed.source is 'jsonl'")
        return JsonLinesEventSource(feed["path"], schema)
    raise FeedUnavailable(f"Unknown feed.source {kind!r}")
