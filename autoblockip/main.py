#!/usr/bin/env python3
# AutoBlockIP - Entrypoint
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

from autoblockip.models import ExitCode

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("autoblockip")


class PrefixFilter(logging.Filter):
    """Prepend a fixed prefix to every message (e.g. host or task name)."""

    def __init__(self, prefix: str) -> None:
        super().__init__()
        self.prefix = prefix

    def filter(self, record: logging.LogRecord) -> bool:
        if self.prefix and not getattr(record, "_prefixed", False):
            record.msg = f"{self.prefix}{record.msg}"
            record._prefixed = True
        return True


def configure_logging(config: dict[str, Any], verbose: bool = False) -> None:
    log_cfg = config.get("logging", {})
    level_name = "DEBUG" if verbose else str(log_cfg.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    log_file = log_cfg.get("file")
    if log_file:
        try:
            handlers.append(RotatingFileHandler(
                log_file,
                maxBytes=int(log_cfg.get("max_bytes", 10_000_000)),
                backupCount=int(log_cfg.get("backup_count", 5)),
                encoding="utf-8",
            ))
        except OSError as e:
            print(f"Cannot open log file {log_file}: {e}", file=sys.stderr)
    prefix = log_cfg.get("prefix") or ""
    for h in handlers:
        h.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        if prefix:
            h.addFilter(PrefixFilter(prefix))
    logging.basicConfig(level=level, handlers=handlers, force=True)


def main(argv: list[str] | None = None) -> None:
    try:
        from autoblockip.cli import main as cli_main
        code = cli_main(argv)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        code = ExitCode.UNEXPECTED_ERROR
    except Exception as e:
        if not logging.getLogger().handlers:
            logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
        logger.exception("Unexpected error: %s", e)
        code = ExitCode.UNEXPECTED_ERROR
    sys.exit(int(code))


if __name__ == "__main__":
    main()
