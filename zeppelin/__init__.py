"""Zeppelin: live topology view of a Gas Town agent fleet."""

from .app import build_app, make_diff_publisher
from .config import ZeppelinConfig

__all__ = ["ZeppelinConfig", "build_app", "make_diff_publisher"]
