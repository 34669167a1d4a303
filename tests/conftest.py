# AutoBlockIP - Shared test fixtures
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable

import pytest

from autoblockip.collector.eventlog import AuditLogSource
from autoblockip.config import get_default_config
from autoblockip.errors import FirewallReadError, FirewallWriteError
from autoblockip.models import EventKind, GatewayResult, LoginFailureRecord
from autoblockip.firewall.gateway import FirewallGateway

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


def failure(address: str, account: str = "bob", minutes_ago: float = 1, kind: EventKind = EventKind.FAILURE_AUDIT) -> LoginFailureRecord:
    return LoginFailureRecord(
        timestamp=NOW - timedelta(minutes=minutes_ago),
        target_account=account,
        source_address=address,
        event_kind=kind,
    )


class ListSource(AuditLogSource):
    def __init__(self, records: Iterable[LoginFailureRecord] = (), error: Exception | None = None) -> None:
        self.records = list(records)
        self.error = error
        self.calls: list[datetime] = []

    def read_failed_logins(self, since: datetime) -> list[LoginFailureRecord]:
        self.calls.append(since)
        if self.error is not None:
            raise self.error
        return list(self.records)


class MemoryGateway(FirewallGateway):
    def __init__(
        self,
        blocked: Iterable[str] = (),
        read_error: FirewallReadError | None = None,
        write_error: FirewallWriteError | None = None,
        write_sub_errors: list[str] | None = None,
        passthrough: Iterable[str] = (),
    ) -> None:
        self.rule_name = "AutoBlockIP"
        self.blocked = set(blocked)
        self.read_error = read_error
        self.write_error = write_error
        self.write_sub_errors = write_sub_errors or []
        self.passthrough = tuple(passthrough)
        self.writes: list[list[str]] = []
        self.passthrough_writes: list[list[str]] = []
        self.reads = 0

    def get_blocked_addresses(self) -> GatewayResult:
        self.reads += 1
        if self.read_error is not None:
            raise self.read_error
        return GatewayResult(addresses=frozenset(self.blocked), passthrough=self.passthrough)

    def set_blocked_addresses(self, addresses: Iterable[str], passthrough: Iterable[str] = ()) -> GatewayResult:
        final = list(addresses)
        self.writes.append(final)
        self.passthrough_writes.append(list(passthrough))
        if self.write_error is not None:
            raise self.write_error
        if not self.write_sub_errors:
            self.blocked = set(final)
        return GatewayResult(addresses=frozenset(final), errors=list(self.write_sub_errors))


@pytest.fixture
def config(tmp_path):
    cfg = get_default_config()
    cfg["detection"]["window_minutes"] = 10
    cfg["audit"]["file"] = str(tmp_path / "audit.jsonl")
    cfg["feed"]["retries"] = 0
    cfg["firewall"]["retries"] = 0
    return cfg
