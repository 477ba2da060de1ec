"""Logging setup shared by the CLI and the dashboard."""

from __future__ import annotations

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
  """Configures the root logger once at startup."""
  handlers: list = [logging.StreamHandler(sys.stdout)]
  if log_file:
    handlers.append(logging.FileHandler(log_file, mode="a"))

  logging.basicConfig(
      level=getattr(logging, level.upper(), logging.INFO),
      format=LOG_FORMAT,
      datefmt=DATE_FORMAT,
      handlers=handlers,
      force=True,
  )

  for noisy in ("matplotlib", "PIL", "kaleido", "urllib3", "watchdog"):
    logging.getLogger(noisy).setLevel(logging.WARNING)
