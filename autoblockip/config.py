# AutoBlockIP - Configuration loader
from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from autoblockip.errors import ConfigError

CONFIG_ENV = "AUTOBLOCKIP_CONFIG"


def _system_config_dir() -> Path:
    program_data = os.environ.get("PROGRAMDATA")
    if program_data:
        return Path(program_data) / "AutoBlockIP"
    return Path("/etc/autoblockip")


def get_default_config_path() -> Path:
    """Where `setup` and `config set` write when no --config is given."""
    return _system_config_dir() / "config.yaml"


def _candidate_paths() -> list[Path]:
    return [
        Path.home() / ".config" / "autoblockip" / "config.yaml",
        get_default_config_path(),
    ]


def find_config_path(path: str | Path | None = None) -> Path | None:
    path = path or os.environ.get(CONFIG_ENV)
    if path:
        p = Path(path).expanduser()
        return p if p.exists() else None
    for p in _candidate_paths():
        if p.exists():
            return p
    return None


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    found = find_config_path(path)
    if found is None:
        return _default_config()
    with open(found, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return _default_config()
    return _deep_merge(_default_config(), data)


def _default_config() -> dict[str, Any]:
    data_dir = _system_config_dir()
    return {
        "detection": {
            "threshold": 3,
            "window_minutes": 30,
        },
        "policy": {
            "whitelist": ["kuoann"],
            "blacklist": [],
            "anonymous_is_blacklisted": False,
        },
        "feed": {
            "source": "windows",
            "path": "",
            "timeout_sec": 60,
            "retries": 1,
            "event_id": 4625,
            "account_field": 5,
            "address_field": 19,
        },
        "firewall": {
            "rule_name": "AutoBlockIP",
            "timeout_sec": 30,
            "retries": 1,
            "create_missing_rule": True,
            "dry_run": False,
        },
        "audit": {
            "enabled": True,
            "file": str(data_dir / "audit.jsonl"),
        },
        "logging": {
            "level": "INFO",
            "file": "",
            "max_bytes": 10_000_000,
            "backup_count": 5,
            "prefix": "",
        },
    }


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def get_default_config() -> dict[str, Any]:
    """Return the default configuration dict (no file merge)."""
    return _default_config()


def save_config(path: str | Path, data: dict[str, Any]) -> None:
    """Write config dict to YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)


def _coerce(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)
    return value


def set_config_key(data: dict[str, Any], key: str, value: Any) -> None:
    """Set a nested key using dot notation (e.g. 'detection.threshold' or 'policy.blacklist.0')."""
    parts = key.split(".")
    cur: Any = data
    for i, p in enumerate(parts[:-1]):
        nxt = parts[i + 1]
        if isinstance(cur, list):
            raise ValueError(f"Cannot set {key}: '{p}' is inside a list")
        if nxt.isdigit():
            if not isinstance(cur.get(p), list):
                cur[p] = list(cur[p]) if cur.get(p) else []
            idx = int(nxt)
            while len(cur[p]) <= idx:
                cur[p].append(None)
            cur = cur[p]
        else:
            if p not in cur:
                cur[p] = {}
            cur = cur[p]
            if not isinstance(cur, dict):
                raise ValueError(f"Cannot set {key}: '{p}' is not a dict")
    last = parts[-1]
    value = _coerce(value)
    if last.isdigit():
        if not isinstance(cur, list):
            raise ValueError(f"Cannot set {key}: parent is not a list")
        cur[int(last)] = value
    else:
        if not isinstance(cur, dict):
            raise ValueError(f"Cannot set {key}: parent is not a dict")
        cur[last] = value


def validate_config(config: dict[str, Any]) -> list[str]:
    """Validate config; return list of error messages (empty if valid)."""
    errs: list[str] = []
    det = config.get("detection") or {}
    threshold = det.get("threshold")
    if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold < 0:
        errs.append("detection.threshold must be a non-negative integer")
    window = det.get("window_minutes")
    if not isinstance(window, (int, float)) or isinstance(window, bool) or window <= 0:
        errs.append("detection.window_minutes must be a positive number")

    pol = config.get("policy") or {}
    lists: dict[str, set[str]] = {}
    for name in ("whitelist", "blacklist"):
        entries = pol.get(name) or []
        if not isinstance(entries, list):
            errs.append(f"policy.{name} must be a list")
            entries = []
        lists[name] = {str(e).strip().lower() for e in entries if e is not None and str(e).strip()}
    overlap = lists["whitelist"] & lists["blacklist"]
    if overlap:
        errs.append(f"policy.whitelist and policy.blacklist overlap: {', '.join(sorted(overlap))}")

    feed = config.get("feed") or {}
    source = str(feed.get("source", "")).lower()
    if source not in ("windows", "jsonl"):
        errs.append("feed.source must be 'windows' or 'jsonl'")
    elif source == "jsonl" and not feed.get("path"):
        errs.append("feed.path is required when feed.source is 'jsonl'")
    for field in ("account_field", "address_field"):
        v = feed.get(field)
        if not isinstance(v, int) or v < 0:
            errs.append(f"feed.{field} must be a non-negative integer")

    fw = config.get("firewall") or {}
    if not str(fw.get("rule_name") or "").strip():
        errs.append("firewall.rule_name is required")
    for section, sec in (("feed", feed), ("firewall", fw)):
        t = sec.get("timeout_sec")
        if not isinstance(t, (int, float)) or t <= 0:
            errs.append(f"{section}.timeout_sec must be a positive number")
        r = sec.get("retries")
        if not isinstance(r, int) or r < 0:
            errs.append(f"{section}.retries must be a non-negative integer")
    return errs


def check_config(config: dict[str, Any]) -> None:
    errs = validate_config(config)
    if errs:
        raise ConfigError("; ".join(errs))
