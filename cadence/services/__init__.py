"""Duration aggregation and consistency engine."""
from __future__ import annotations

from flask import current_app

from ..context import RequestContext, SYSTEM_CONTEXT
from .cache import StatisticsCache
from .calculator import DurationCalculator
from .consistency import ConsistencyAnalyzer, DurationReport, LevelAnalysis, has_inconsistency
from .statistics import EntityStats, StatisticsReporter
from .synchronizer import BulkSynchronizer, NodeOutcome, SyncError, SyncReport

CACHE_EXTENSION_KEY = "duration_cache"


def statistics_cache() -> StatisticsCache:
    return current_app.extensions[CACHE_EXTENSION_KEY]


def build_synchronizer(context: RequestContext = SYSTEM_CONTEXT) -> BulkSynchronizer:
    return BulkSynchronizer.from_config(
        current_app.config, context=context, cache=statistics_cache()
    )


def build_reporter(context: RequestContext = SYSTEM_CONTEXT) -> StatisticsReporter:
    return StatisticsReporter(
        ConsistencyAnalyzer(context=context), cache=statistics_cache(), context=context
    )


__all__ = [
    "BulkSynchronizer",
    "ConsistencyAnalyzer",
    "DurationCalculator",
    "DurationReport",
    "EntityStats",
    "LevelAnalysis",
    "NodeOutcome",
    "StatisticsCache",
    "StatisticsReporter",
    "SyncError",
    "SyncReport",
    "build_reporter",
    "build_synchronizer",
    "has_inconsistency",
    "statistics_cache",
]
