from __future__ import annotations

import json
import logging

from app.stockledger.core.config import settings


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=(level or settings.LOG_LEVEL).upper(), format="%(message)s")


def log_json(logger: logging.Logger, payload: dict, *, level: int = logging.INFO) -> None:
    """Emit one structured event per line; non-JSON values are stringified."""
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
