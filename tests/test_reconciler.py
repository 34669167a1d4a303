# AutoBlockIP - Blocklist reconciler tests
import asyncio

from conftest import MemoryGateway

from autoblockip.errors import FirewallWriteError
from autoblockip.reconciler import BlocklistReconciler, suspicious_ratio


def test_reconcile_union_and_delta():
    r = BlocklistReconciler().reconcile({"10.0.0.2"}, {"10.0.0.1"})
    assert r.final_set == {"10.0.0.1", "10.0.0.2"}
    assert r.added_addresses == {"10.0.0.1"}
    assert r.applied is True
    assert r.final_list == ["10.0.0.1", "10.0.0.2"]


def test_reconcile_is_monotonic():
    blocked = {"1.1.1.1", "2.2.2.2"}
    suspicious = {"2.2.2.2", "3.3.3.3"}
    r = BlocklistReconciler().reconcile(blocked, suspicious)
    assert r.final_set >= blocked
    assert r.final_set >= suspicious


def test_reconcile_is_idempotent():
    rec = BlocklistReconciler()
    suspicious = {"10.0.0.1", "10.0.0.3"}
    first = rec.reconcile({"10.0.0.2"}, suspicious)
    second = rec.reconcile(first.final_set, suspicious)
    assert second.applied is False
    assert second.added_addresses == frozenset()
    assert second.final_set == first.final_set


def test_final_list_is_sorted():
    r = BlocklistReconciler().reconcile(set(), {"9.9.9.9", "10.0.0.1", "1.2.3.4"})
    assert r.final_list == sorted(["9.9.9.9", "10.0.0.1", "1.2.3.4"])


def test_apply_writes_entire_final_set():
    gw = MemoryGateway(blocked={"10.0.0.2"})
    r = asyncio.run(BlocklistReconciler().apply({"10.0.0.2"}, {"10.0.0.1"}, gw))
    assert r.applied is True
    assert gw.writes == [["10.0.0.1", "10.0.0.2"]]
    assert gw.blocked == {"10.0.0.1", "10.0.0.2"}


def test_apply_without_delta_does_not_write():
    gw = MemoryGateway(blocked={"10.0.0.1", "10.0.0.2"})
    r = asyncio.run(BlocklistReconciler().apply({"10.0.0.1", "10.0.0.2"}, {"10.0.0.1"}, gw))
    assert r.applied is False
    assert gw.writes == []


def test_apply_with_nothing_suspicious_does_not_write():
    gw = MemoryGateway()
    r = asyncio.run(BlocklistReconciler().apply(set(), set(), gw))
    assert r.applied is False
    assert r.final_set == frozenset()
    assert gw.writes == []


def test_dry_run_skips_write():
    gw = MemoryGateway()
    r = asyncio.run(BlocklistReconciler(dry_run=True).apply(set(), {"10.0.0.1"}, gw))
    assert r.applied is False
    assert r.dry_run is True
    assert r.added_addresses == {"10.0.0.1"}
    assert gw.writes == []


def test_write_error_reports_not_applied():
    gw = MemoryGateway(write_error=FirewallWriteError("access denied"))
    r = asyncio.run(BlocklistReconciler().apply(set(), {"10.0.0.1"}, gw))
    assert r.applied is False
    assert r.errors == ["access denied"]
    assert gw.blocked == set()


def test_write_sub_errors_report_not_applied():
    gw = MemoryGateway(write_sub_errors=["partial failure"])
    r = asyncio.run(BlocklistReconciler().apply(set(), {"10.0.0.1"}, gw))
    assert r.applied is False
    assert r.errors == ["partial failure"]


def test_custom_writer_is_used():
    gw = MemoryGateway()
    seen = []

    async def write(final):
        seen.append(final)
        return gw.set_blocked_addresses(final)

    r = asyncio.run(BlocklistReconciler().apply(set(), {"10.0.0.1"}, gw, write=write))
    assert r.applied is True
    assert seen == [["10.0.0.1"]]


def test_ratio_guards_empty_blocklist():
    assert suspicious_ratio({"1.1.1.1"}, set()) == "undefined"
    assert suspicious_ratio({"1.1.1.1"}, {"2.2.2.2", "3.3.3.3"}) == "0.50"
