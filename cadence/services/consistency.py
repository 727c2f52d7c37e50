from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from flask import current_app

from ..context import RequestContext, SYSTEM_CONTEXT, format_fields
from ..models import HierarchyNode, active_nodes
from .calculator import DurationCalculator


@dataclass
class DurationReport:
    entity_type: str
    entity_id: int | None
    title: str | None
    stored: int
    computed: int
    needs_update: bool
    delta: int
    unit: str = "minutes"
    child_count: int = 0
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class LevelAnalysis:
    entity_type: str
    reports: list[DurationReport] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.reports)

    @property
    def inconsistencies(self) -> int:
        return sum(1 for report in self.reports if report.needs_update)

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0
        return round(self.inconsistencies / self.total * 100, 2)


class ConsistencyAnalyzer:
    def __init__(
        self,
        calculator: DurationCalculator | None = None,
        context: RequestContext = SYSTEM_CONTEXT,
    ) -> None:
        self.calculator = calculator or DurationCalculator()
        self.context = context

    def analyze(self, node: HierarchyNode) -> DurationReport:
        stored = node.duration_minutes or 0
        computed = self.calculator.compute_duration(node)
        delta = computed - stored
        report = DurationReport(
            entity_type=node.entity_type,
            entity_id=node.id,
            title=node.title,
            stored=stored,
            computed=computed,
            needs_update=stored != computed,
            delta=delta,
            child_count=len(node.active_children()),
        )
        current_app.logger.debug(
            "Duration comparison completed: %s",
            format_fields(
                {
                    "entity_type": report.entity_type,
                    "entity_id": report.entity_id,
                    "stored": stored,
                    "computed": computed,
                    "delta": delta,
                }
            ),
        )
        return report

    def safe_analyze(self, node: HierarchyNode) -> DurationReport:
        """Analyse ``node``, reporting it as inconsistent when analysis fails."""

        try:
            return self.analyze(node)
        except Exception as exc:
            current_app.logger.warning(
                "Failed to analyse node duration: %s",
                format_fields(
                    {
                        "entity_type": node.entity_type,
                        "entity_id": node.id,
                        "error": exc,
                        **self.context.as_log_fields(),
                    }
                ),
            )
            stored = node.duration_minutes or 0
            return DurationReport(
                entity_type=node.entity_type,
                entity_id=node.id,
                title=node.title,
                stored=stored,
                computed=stored,
                needs_update=True,
                delta=0,
                error=str(exc),
            )

    def analyze_nodes(self, entity_type: str, nodes: list[HierarchyNode]) -> LevelAnalysis:
        return LevelAnalysis(
            entity_type=entity_type,
            reports=[self.safe_analyze(node) for node in nodes],
        )

    def analyze_level(self, node_type: type[HierarchyNode]) -> LevelAnalysis:
        return self.analyze_nodes(node_type.entity_type, active_nodes(node_type))


def has_inconsistency(report: DurationReport, threshold: int = 1) -> bool:
    if report.error is not None:
        return True
    return abs(report.delta) >= max(threshold, 1)
