# AutoBlockIP - Policy matcher tests
from autoblockip.config import get_default_config
from autoblockip.models import PolicyLists
from autoblockip.policy import PolicyMatcher


def test_matching_is_case_and_whitespace_insensitive():
    m = PolicyMatcher(PolicyLists.build(whitelist=["KuoAnn"], blacklist=[" Administrator "]))
    assert m.is_whitelisted("kuoann")
    assert m.is_whitelisted("  KUOANN\t")
    assert m.is_blacklisted("administrator")
    assert m.is_blacklisted("ADMINISTRATOR ")
    assert not m.is_whitelisted("administrator")
    assert not m.is_blacklisted("kuoann")


def test_empty_account_is_never_whitelisted():
    m = PolicyMatcher(PolicyLists.build(whitelist=["kuoann"]))
    assert not m.is_whitelisted("")
    assert not m.is_whitelisted("   ")
    assert not m.is_whitelisted(None)


def test_empty_account_not_blacklisted_by_default():
    m = PolicyMatcher(PolicyLists.build(blacklist=["admin"]))
    assert not m.is_blacklisted("")
    assert not m.is_blacklisted(None)


def test_empty_account_blacklisted_when_enabled():
    m = PolicyMatcher(PolicyLists.build(blacklist=["admin"], anonymous_is_blacklisted=True))
    assert m.is_blacklisted("  ")
    assert m.is_blacklisted(None)
    assert not m.is_blacklisted("bob")


def test_lists_from_config():
    cfg = get_default_config()
    cfg["policy"]["blacklist"] = ["Admin", ""]
    lists = PolicyLists.from_config(cfg)
    assert lists.whitelist == frozenset({"kuoann"})
    assert lists.blacklist == frozenset({"admin"})
    assert lists.anonymous_is_blacklisted is False
