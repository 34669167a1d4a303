# AutoBlockIP - Suspicious address aggregator (failed logons per source address)
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable

from autoblockip.detector.address import require_ipv4
from autoblockip.errors import ValidationError
from autoblockip.models import DetectionSettings, EventKind, LoginFailureRecord
from autoblockip.policy import PolicyMatcher

logger = __import__("logging").getLogger("autoblockip.detector.aggregator")


class SuspiciousAddressAggregator:
    """Counts failure-audit records per source address inside the tracking window.

    An address is suspicious when its count exceeds the threshold, or when any
    counted attempt from it targeted a blacklisted account. Attempts against
    whitelisted accounts are never counted.
    """

    def __init__(self, settings: DetectionSettings, policy: PolicyMatcher) -> None:
        self.settings = settings
        self.policy = policy

    def offense_counts(
        self,
        records: Iterable[LoginFailureRecord],
        window: timedelta | None = None,
        threshold: int | None = None,
        now: datetime | None = None,
    ) -> tuple[dict[str, int], set[str]]:
        """Return (counter, addresses tagged through a blacklisted account)."""
        window = self.settings.window if window is None else window
        threshold = self.settings.threshold if threshold is None else threshold
        now = now or datetime.now(timezone.utc)

        counter: dict[str, int] = {}
        tagged: set[str] = set()
        skipped_invalid = 0
        for rec in records:
            if rec.event_kind != EventKind.FAILURE_AUDIT:
                continue
            if now - rec.timestamp > window:
                continue
            try:
                address = require_ipv4(rec.source_address)
            except ValidationError:
                skipped_invalid += 1
                continue
            if self.policy.is_whitelisted(rec.target_account):
                continue
            blacklisted = self.policy.is_blacklisted(rec.target_account)
            if address in counter:
                counter[address] += 1
            elif blacklisted:
                counter[address] = threshold + 1
            else:
                counter[address] = 1
            if blacklisted:
                tagged.add(address)

        if skipped_invalid:
            logger.debug("Skipped %d record(s) with an invalid source address", skipped_invalid)
        return counter, tagged

    def compute_suspicious_addresses(
        self,
        records: Iterable[LoginFailureRecord],
        window: timedelta | None = None,
        threshold: int | None = None,
        now: datetime | None = None,
    ) -> set[str]:
        threshold = self.settings.threshold if threshold is None else threshold
        counter, tagged = self.offense_counts(records, window, threshold, now)
        suspicious = {addr for addr, count in counter.items() if count > threshold} | tagged
        for addr in sorted(suspicious):
            logger.info("Suspicious address %s...%d", addr, counter[addr])
        return suspicious
