# AutoBlockIP - Blocklist reconciler: merge, diff, and apply one replace-all update
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

from autoblockip.errors import FirewallWriteError
from autoblockip.firewall.gateway import FirewallGateway
from autoblockip.models import GatewayResult, ReconciliationResult

logger = logging.getLogger("autoblockip.reconciler")

Writer = Callable[[list[str]], Awaitable[GatewayResult]]


def suspicious_ratio(suspicious: Iterable[str], currently_blocked: Iterable[str]) -> str:
    blocked = len(set(currently_blocked))
    if blocked == 0:
        return "undefined"
    return f"{len(set(suspicious)) / blocked:.2f}"


class BlocklistReconciler:
    def __init__(self, dry_run: bool = False) -> None:
        self.dry_run = dry_run

    def reconcile(self, currently_blocked: Iterable[str], suspicious: Iterable[str]) -> ReconciliationResult:
        blocked = frozenset(currently_blocked)
        final = blocked | frozenset(suspicious)
        added = final - blocked
        return ReconciliationResult(final_set=final, added_addresses=added, applied=bool(added))

    async def apply(
        self,
        currently_blocked: Iterable[str],
        suspicious: Iterable[str],
        gateway: FirewallGateway,
        write: Writer | None = None,
    ) -> ReconciliationResult:
        """Write the whole merged list when it adds anything; never writes otherwise.

        `write` defaults to gateway.set_blocked_addresses run in the default
        executor; the pipeline passes its own to add timeouts and retries.
        """
        blocked = frozenset(currently_blocked)
        suspicious = frozenset(suspicious)
        result = self.reconcile(blocked, suspicious)
        logger.debug(
            "suspicious=%d blocked=%d ratio=%s",
            len(suspicious), len(blocked), suspicious_ratio(suspicious, blocked),
        )
        if not result.added_addresses:
            logger.info("No new addresses; %s left unchanged (%d blocked)", gateway.rule_name, len(blocked))
            return result

        if self.dry_run:
            logger.info(
                "[DRY-RUN] Would set %s to %d address(es); new: %s",
                gateway.rule_name, len(result.final_set), ", ".join(sorted(result.added_addresses)),
            )
            result.applied = False
            result.dry_run = True
            return result

        if write is None:
            write = _executor_writer(gateway)
        try:
            reply = await write(result.final_list)
        except FirewallWriteError as e:
            logger.error("Blocklist update failed: %s", e)
            result.applied = False
            result.errors.append(str(e))
            return result

        for err in reply.errors:
            logger.warning("Firewall reported: %s", err)
        if reply.errors:
            result.applied = False
            result.errors.extend(reply.errors)
        else:
            logger.info(
                "Blocked %d new address(es) in %s: %s",
                len(result.added_addresses), gateway.rule_name, ", ".join(sorted(result.added_addresses)),
            )
        return result


def _executor_writer(gateway: FirewallGateway) -> Writer:
    async def write(final: list[str]) -> GatewayResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, gateway.set_blocked_addresses, final)
    return write
