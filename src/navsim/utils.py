from __future__ import annotations

import logging
import os

import pandas as pd


def get_logger(name: str = "navsim"):
    """Logger for scripts and callers; honours LOG_LEVEL (default INFO)."""
    lvl = os.getenv("LOG_LEVEL", "INFO").upper()
    logger = logging.getLogger(name)
    if not logger.handlers:
        logging.basicConfig(level=getattr(logging, lvl, logging.INFO),
                            format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return logger


def to_timestamp(d) -> pd.Timestamp:
    """Normalise a str/date/datetime to a midnight Timestamp."""
    return pd.Timestamp(d).normalize()


def add_months(d: pd.Timestamp, n: int) -> pd.Timestamp:
    # DateOffset clamps to month end (Jan 31 + 1M -> Feb 28/29)
    return d + pd.DateOffset(months=n)


def iso(d) -> str:
    return pd.Timestamp(d).strftime("%Y-%m-%d")
