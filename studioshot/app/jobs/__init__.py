"""Asynchronous effect-job tracking and result caching."""

from .cache import ResultCache, options_hash
from .tracker import JobTracker

__all__ = ["JobTracker", "ResultCache", "options_hash"]
