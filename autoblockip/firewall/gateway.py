# AutoBlockIP - Firewall gateway: read / replace the blocklist of one firewall rule
from __future__ import annotations

import re
import subprocess
from typing import Any, Iterable

from autoblockip.detector.address import is_valid_ipv4
from autoblockip.errors import FirewallReadError, FirewallWriteError
from autoblockip.models import GatewayResult

logger = __import__("logging").getLogger("autoblockip.firewall")

DEFAULT_RULE_NAME = "AutoBlockIP"

_REMOTE_IP_LINE = re.compile(r"^\s*RemoteIP:\s*(?P<value>.*)$", re.I | re.M)
_NO_RULE = "No rules match the specified criteria"
_HOST_MASKS = ("/255.255.255.255", "/32")


class FirewallGateway:
    """Get/set access to the remote-address list of a single block rule."""

    rule_name: str = DEFAULT_RULE_NAME

    def get_blocked_addresses(self) -> GatewayResult:
        raise NotImplementedError

    def set_blocked_addresses(self, addresses: Iterable[str], passthrough: Iterable[str] = ()) -> GatewayResult:
        """Replace the rule list with `addresses` plus the untouched `passthrough` entries."""
        raise NotImplementedError


def parse_remote_ips(stdout: str) -> GatewayResult:
    """Collect IPv4 hosts from every RemoteIP line of `netsh ... show rule` output.

    Other entries are kept verbatim in `passthrough`.
    """
    addresses: set[str] = set()
    passthrough: list[str] = []
    for m in _REMOTE_IP_LINE.finditer(stdout or ""):
        value = m.group("value").strip()
        if not value or value.lower() == "any":
            continue
        for entry in value.split(","):
            raw = entry.strip()
            if not raw:
                continue
            host = raw
            for mask in _HOST_MASKS:
                if host.endswith(mask):
                    host = host[: -len(mask)]
                    break
            if is_valid_ipv4(host):
                addresses.add(host)
            elif raw not in passthrough:
                logger.debug("Keeping non-host remote address %r as is", raw)
                passthrough.append(raw)
    return GatewayResult(addresses=frozenset(addresses), passthrough=tuple(passthrough))


class NetshFirewallGateway(FirewallGateway):
    """Windows Defender Firewall via `netsh advfirewall firewall`."""

    def __init__(self, rule_name: str = DEFAULT_RULE_NAME, timeout_sec: float = 30, create_missing_rule: bool = True) -> None:
        self.rule_name = rule_name
        self._timeout = timeout_sec
        self._create_missing_rule = create_missing_rule

    def _netsh(self, args: list[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["netsh", "advfirewall", "firewall", *args],
            capture_output=True,
            text=True,
            timeout=self._timeout,
        )

    def get_blocked_addresses(self) -> GatewayResult:
        try:
            r = self._netsh(["show", "rule", f"name={self.rule_name}"])
        except FileNotFoundError as e:
            raise FirewallReadError(f"netsh not available: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise FirewallReadError(f"netsh show rule timed out after {self._timeout}s", retryable=True) from e
        if r.returncode != 0:
            raise FirewallReadError(f"netsh show rule {self.rule_name!r} failed: {_output(r)}")
        return parse_remote_ips(r.stdout)

    def set_blocked_addresses(self, addresses: Iterable[str], passthrough: Iterable[str] = ()) -> GatewayResult:
        final = sorted(set(addresses))
        if not final:
            raise FirewallWriteError("Refusing to write an empty remote address list")
        kept = [p for p in dict.fromkeys(passthrough) if p not in final]
        remote = ",".join(final + kept)
        try:
            r = self._netsh(["set", "rule", f"name={self.rule_name}", "new", f"remoteip={remote}"])
            if r.returncode != 0 and _NO_RULE in _output(r) and self._create_missing_rule:
                logger.info("Rule %s not found; creating it", self.rule_name)
                r = self._netsh([
                    "add", "rule",
                    f"name={self.rule_name}",
                    "dir=in", "action=block", "enable=yes",
                    f"remoteip={remote}",
                ])
        except FileNotFoundError as e:
            raise FirewallWriteError(f"netsh not available: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise FirewallWriteError(f"netsh set rule timed out after {self._timeout}s", retryable=True) from e
        if r.returncode != 0:
            raise FirewallWriteError(f"netsh update of {self.rule_name!r} failed: {_output(r)}")
        errors = [line for line in (r.stderr or "").splitlines() if line.strip()]
        return GatewayResult(addresses=frozenset(final), errors=errors, passthrough=tuple(kept))


def _output(r: subprocess.CompletedProcess) -> str:
    return ((r.stdout or "") + (r.stderr or "")).strip()[:500]


def build_gateway(config: dict[str, Any]) -> FirewallGateway:
    fw = config.get("firewall", {})
    return NetshFirewallGateway(
        rule_name=fw.get("rule_name") or DEFAULT_RULE_NAME,
        timeout_sec=float(fw.get("timeout_sec", 30)),
        create_missing_rule=bool(fw.get("create_missing_rule", True)),
    )
