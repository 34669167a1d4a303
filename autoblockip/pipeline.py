# AutoBlockIP - Pipeline: feed -> aggregate -> firewall read -> reconcile -> write
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from autoblockip.collector.eventlog import AuditLogSource, build_source
from autoblockip.detector.aggregator import SuspiciousAddressAggregator
from autoblockip.errors import FeedUnavailable, FirewallReadError, FirewallWriteError
from autoblockip.firewall.gateway import FirewallGateway, build_gateway
from autoblockip.models import (
    DetectionSettings,
    ExitCode,
    GatewayResult,
    LoginFailureRecord,
    PolicyLists,
    RunReport,
)
from autoblockip.policy import PolicyMatcher
from autoblockip.reconciler import BlocklistReconciler
from autoblockip.reporter.audit import AuditLogger

logger = logging.getLogger("autoblockip")


class BlockPipeline:
    """One detection and reconciliation pass. Not safe to run concurrently with itself."""

    def __init__(
        self,
        config: dict[str, Any],
        source: AuditLogSource | None = None,
        gateway: FirewallGateway | None = None,
        audit: AuditLogger | None = None,
        dry_run: bool | None = None,
    ) -> None:
        self.config = config
        feed = config.get("feed", {})
        fw = config.get("firewall", {})
        self._feed_timeout = float(feed.get("timeout_sec", 60))
        self._feed_retries = int(feed.get("retries", 1))
        self._fw_timeout = float(fw.get("timeout_sec", 30))
        self._fw_retries = int(fw.get("retries", 1))
        if dry_run is None:
            dry_run = bool(fw.get("dry_run", False))
        self.settings = DetectionSettings.from_config(config)
        self._source = source
        self._gateway = gateway
        self._audit = audit if audit is not None else AuditLogger(config.get("audit", {}))
        self._aggregator = SuspiciousAddressAggregator(self.settings, PolicyMatcher(PolicyLists.from_config(config)))
        self._reconciler = BlocklistReconciler(dry_run=dry_run)

    @property
    def source(self) -> AuditLogSource:
        if self._source is None:
            self._source = build_source(self.config)
        return self._source

    @property
    def gateway(self) -> FirewallGateway:
        if self._gateway is None:
            self._gateway = build_gateway(self.config)
        return self._gateway

    async def _call(
        self,
        func: Callable[..., Any],
        *args: Any,
        timeout: float,
        retries: int,
        error_cls: type[FeedUnavailable] | type[FirewallReadError] | type[FirewallWriteError],
        what: str,
    ) -> Any:
        """Run a blocking external call in the executor with a timeout; retry retryable failures."""
        loop = asyncio.get_running_loop()
        attempts = max(retries, 0) + 1
        for attempt in range(attempts):
            try:
                return await asyncio.wait_for(loop.run_in_executor(None, func, *args), timeout=timeout)
            except asyncio.TimeoutError as e:
                if attempt + 1 == attempts:
                    raise error_cls(f"{what} timed out after {timeout}s", retryable=True) from e
                logger.warning("%s timed out after %ss; retrying (%d/%d)", what, timeout, attempt + 1, attempts - 1)
            except error_cls as e:
                if not e.retryable or attempt + 1 == attempts:
                    raise
                logger.warning("%s failed (%s); retrying (%d/%d)", what, e, attempt + 1, attempts - 1)
        raise error_cls(f"{what} was not attempted")

    async def read_records(self, now: datetime) -> list[LoginFailureRecord]:
        since = now - self.settings.window
        return await self._call(
            self.source.read_failed_logins, since,
            timeout=self._feed_timeout, retries=self._feed_retries,
            error_cls=FeedUnavailable, what="Audit log read",
        )

    async def read_blocklist(self) -> GatewayResult:
        return await self._call(
            self.gateway.get_blocked_addresses,
            timeout=self._fw_timeout, retries=self._fw_retries,
            error_cls=FirewallReadError, what="Firewall read",
        )

    async def _write_blocklist(self, final: list[str], passthrough: tuple[str, ...] = ()) -> GatewayResult:
        return await self._call(
            self.gateway.set_blocked_addresses, final, passthrough,
            timeout=self._fw_timeout, retries=self._fw_retries,
            error_cls=FirewallWriteError, what="Firewall write",
        )

    async def scan(self, now: datetime | None = None) -> dict[str, Any]:
        """Aggregation only; no firewall access."""
        now = now or datetime.now(timezone.utc)
        records = await self.read_records(now)
        counts, tagged = self._aggregator.offense_counts(records, now=now)
        suspicious = self._aggregator.compute_suspicious_addresses(records, now=now)
        return {
            "records_read": len(records),
            "threshold": self.settings.threshold,
            "window_minutes": self.settings.window.total_seconds() / 60,
            "counts": dict(sorted(counts.items())),
            "blacklist_tagged": sorted(tagged),
            "suspicious": sorted(suspicious),
        }

    async def run(self, now: datetime | None = None) -> RunReport:
        now = now or datetime.now(timezone.utc)
        report = RunReport(started_at=now)
        await self._audit.start()
        try:
            await self._run(report, now)
        finally:
            await self._audit.log_run(report)
            await self._audit.stop()
        return report

    async def _run(self, report: RunReport, now: datetime) -> None:
        try:
            records = await self.read_records(now)
        except FeedUnavailable as e:
            logger.error("Audit log unavailable: %s", e)
            report.errors.append(str(e))
            report.exit_code = ExitCode.FEED_UNAVAILABLE
            return
        report.records_read = len(records)
        logger.info("Read %d failed logon record(s) from the last %s", len(records), self.settings.window)

        suspicious = self._aggregator.compute_suspicious_addresses(records, now=now)
        report.suspicious = frozenset(suspicious)
        if not suspicious:
            logger.info("No suspicious addresses")

        try:
            current = await self.read_blocklist()
        except FirewallReadError as e:
            # The write replaces the whole rule list, so entries blocked before this run
            # and not suspicious now are dropped from the rule.
            logger.warning("Cannot read blocklist of %s, assuming empty: %s", self.gateway.rule_name, e)
            report.errors.append(str(e))
            current = GatewayResult()
        for err in current.errors:
            logger.warning("Firewall reported: %s", err)
        report.errors.extend(current.errors)
        if current.passthrough:
            logger.info("Keeping %d non-host entries of %s unchanged", len(current.passthrough), self.gateway.rule_name)

        async def write(final: list[str]) -> GatewayResult:
            return await self._write_blocklist(final, current.passthrough)

        result = await self._reconciler.apply(current.addresses, suspicious, self.gateway, write=write)
        report.result = result
        report.errors.extend(result.errors)
        if result.applied:
            await self._audit.log_action("set_blocked_addresses", {
                "rule_name": self.gateway.rule_name,
                "added": sorted(result.added_addresses),
                "final_count": len(result.final_set),
            })
        elif result.added_addresses and not result.dry_run:
            report.exit_code = ExitCode.FIREWALL_WRITE_FAILED
