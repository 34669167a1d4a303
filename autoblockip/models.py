# AutoBlockIP - Data models (records, policy lists, results)
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable

# --- Enums ---


class EventKind(str, Enum):
    FAILURE_AUDIT = "failure_audit"
    OTHER = "other"


class ExitCode(int, Enum):
    OK = 0
    UNEXPECTED_ERROR = 1
    FEED_UNAVAILABLE = 2
    FIREWALL_WRITE_FAILED = 3


# --- Core entities ---


@dataclass(frozen=True)
class LoginFailureRecord:
    timestamp: datetime
    target_account: str
    source_address: str
    event_kind: EventKind = EventKind.FAILURE_AUDIT


def normalize_account(name: str | None) -> str:
    return (name or "").strip().lower()


@dataclass(frozen=True)
class PolicyLists:
    """Normalized account names. The two sets are expected to be disjoint."""

    whitelist: frozenset[str] = frozenset()
    blacklist: frozenset[str] = frozenset()
    anonymous_is_blacklisted: bool = False

    @classmethod
    def build(
        cls,
        whitelist: Iterable[str] = (),
        blacklist: Iterable[str] = (),
        anonymous_is_blacklisted: bool = False,
    ) -> "PolicyLists":
        return cls(
            whitelist=frozenset(n for n in map(normalize_account, whitelist) if n),
            blacklist=frozenset(n for n in map(normalize_account, blacklist) if n),
            anonymous_is_blacklisted=bool(anonymous_is_blacklisted),
        )

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "PolicyLists":
        pol = config.get("policy", {})
        return cls.build(
            pol.get("whitelist") or [],
            pol.get("blacklist") or [],
            pol.get("anonymous_is_blacklisted", False),
        )


@dataclass(frozen=True)
class DetectionSettings:
    threshold: int = 3
    window: timedelta = timedelta(minutes=30)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "DetectionSettings":
        det = config.get("detection", {})
        return cls(
            threshold=int(det.get("threshold", 3)),
            window=timedelta(minutes=float(det.get("window_minutes", 30))),
        )


@dataclass
class GatewayResult:
    """Reply of a firewall call. `errors` holds sub-errors reported alongside a result.

    `passthrough` keeps rule entries that are not single IPv4 hosts (a subnet
    or a keyword such as LocalSubnet) verbatim so a write can carry them over.
    """

    addresses: frozenset[str] = frozenset()
    errors: list[str] = field(default_factory=list)
    passthrough: tuple[str, ...] = ()


@dataclass
class ReconciliationResult:
    final_set: frozenset[str]
    added_addresses: frozenset[str]
    applied: bool
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def final_list(self) -> list[str]:
        return sorted(self.final_set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "final_set": self.final_list,
            "added_addresses": sorted(self.added_addresses),
            "applied": self.applied,
            "errors": list(self.errors),
            "dry_run": self.dry_run,
        }


@dataclass
class RunReport:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    records_read: int = 0
    suspicious: frozenset[str] = frozenset()
    result: ReconciliationResult | None = None
    errors: list[str] = field(default_factory=list)
    exit_code: ExitCode = ExitCode.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "records_read": self.records_read,
            "suspicious": sorted(self.suspicious),
            "result": self.result.to_dict() if self.result else None,
            "errors": list(self.errors),
            "exit_code": int(self.exit_code),
        }
