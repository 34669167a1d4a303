# AutoBlockIP - Policy matcher: account whitelist / blacklist
from __future__ import annotations

from autoblockip.models import PolicyLists, normalize_account


class PolicyMatcher:
    def __init__(self, lists: PolicyLists) -> None:
        self.lists = lists

    def is_whitelisted(self, account: str | None) -> bool:
        name = normalize_account(account)
        return bool(name) and name in self.lists.whitelist

    def is_blacklisted(self, account: str | None) -> bool:
        name = normalize_account(account)
        if not name:
            return self.lists.anonymous_is_blacklisted
        return name in self.lists.blacklist
