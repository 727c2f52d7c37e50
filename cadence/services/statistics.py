from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .. import db
from ..context import RequestContext, SYSTEM_CONTEXT, format_fields
from ..models import (
    DISPLAY_ORDER,
    NODE_TYPES,
    HierarchyNode,
    active_nodes,
    count_active,
    resolve_node_type,
)
from .cache import StatisticsCache
from .consistency import ConsistencyAnalyzer


@dataclass(frozen=True)
class EntityStats:
    total: int
    inconsistencies: int
    percentage: float
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        if self.error is None:
            payload.pop("error")
        return payload


def percentage_of(part: int, total: int) -> float:
    if total == 0:
        return 0
    return round(part / total * 100, 2)


class StatisticsReporter:
    def __init__(
        self,
        analyzer: ConsistencyAnalyzer | None = None,
        *,
        cache: StatisticsCache | None = None,
        context: RequestContext = SYSTEM_CONTEXT,
    ) -> None:
        self.analyzer = analyzer or ConsistencyAnalyzer(context=context)
        self.cache = cache
        self.context = context

    def get_entity_stats(self, level: str | type[HierarchyNode]) -> EntityStats:
        node_type = resolve_node_type(level) if isinstance(level, str) else level
        if self.cache is None:
            return self._compute(node_type)
        return self.cache.get(
            f"stats:{node_type.entity_type}", lambda: self._compute(node_type)
        )

    def get_all_stats(self) -> dict[str, EntityStats]:
        return {
            NODE_TYPES[name].plural_key: self.get_entity_stats(NODE_TYPES[name])
            for name in DISPLAY_ORDER
        }

    def _compute(self, node_type: type[HierarchyNode]) -> EntityStats:
        started = time.monotonic()
        try:
            total = count_active(node_type)
            nodes = active_nodes(node_type)
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(
                "Error calculating entity statistics: %s",
                format_fields({"entity_type": node_type.entity_type, "error": exc}),
            )
            return EntityStats(total=0, inconsistencies=0, percentage=0, error=str(exc))

        inconsistencies = sum(
            1 for node in nodes if self.analyzer.safe_analyze(node).needs_update
        )
        stats = EntityStats(
            total=total,
            inconsistencies=inconsistencies,
            percentage=percentage_of(inconsistencies, total),
        )
        current_app.logger.debug(
            "Entity statistics calculated: %s",
            format_fields(
                {
                    "entity_type": node_type.entity_type,
                    "total": stats.total,
                    "inconsistencies": stats.inconsistencies,
                    "percentage": stats.percentage,
                    "analysis_time": round(time.monotonic() - started, 3),
                }
            ),
        )
        return stats
