"""Loguru sinks and per-run tagging for masking runs.

Every record carries an ``extra["run_id"]`` so log lines from concurrent
scenes can be told apart.  Outside a run the id is ``-``.
"""

from __future__ import annotations

import sys
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from loguru import logger

from mss_cloud_mask.config import LoggingConfig

TEXT_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | <level>{level: <8}</level> | "
    "{extra[run_id]:>8} | {name}:{function} | {message}"
)


def setup_logging(cfg: Optional[LoggingConfig] = None) -> int:
    """Replace loguru's sinks with a single stderr sink described by *cfg*.

    Args:
        cfg: The ``logging`` section of a :class:`MaskConfig`; defaults
            to INFO text output.

    Returns:
        The loguru sink id, for callers that want to remove it later.
    """
    cfg = cfg or LoggingConfig()
    logger.remove()
    logger.configure(extra={"run_id": "-"})
    if cfg.format == "json":
        return logger.add(sys.stderr, level=cfg.level.upper(), serialize=True)
    return logger.add(sys.stderr, level=cfg.level.upper(), format=TEXT_FORMAT)


def new_run_id() -> str:
    """Generate an 8-char hex run identifier."""
    return uuid.uuid4().hex[:8]


@contextmanager
def run_context(run_id: Optional[str] = None) -> Iterator[str]:
    """Tag every record logged inside the block with *run_id*.

    A fresh id is generated when *run_id* is None.  Yields the id in use.
    """
    run_id = run_id or new_run_id()
    with logger.contextualize(run_id=run_id):
        yield run_id
