"""Batched, transactional reconciliation of stored durations."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from flask import current_app

from .. import db
from ..context import RequestContext, SYSTEM_CONTEXT, format_fields
from ..errors import BatchPersistenceError
from ..models import HierarchyNode, active_nodes, resolve_levels
from ..utils import chunked, parse_int
from .cache import StatisticsCache
from .calculator import DurationCalculator
from .consistency import ConsistencyAnalyzer, DurationReport


DEFAULT_BATCH_SIZE = 50
MAX_BATCH_SIZE = 1000


@dataclass(frozen=True)
class SyncError:
    entity_type: str
    entity_id: int | None
    message: str

    def __str__(self) -> str:
        return f"{self.entity_type} #{self.entity_id} : {self.message}"


@dataclass
class NodeOutcome:
    """Result of synchronising one node: a report or an error, never both."""

    report: DurationReport | None = None
    error: SyncError | None = None
    written: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncReport:
    synced_count: int = 0
    skipped_count: int = 0
    batch_count: int = 0
    dry_run: bool = False
    errors: list[SyncError] = field(default_factory=list)
    levels: dict[str, int] = field(default_factory=dict)
    changes: list[DurationReport] = field(default_factory=list)

    @property
    def error_messages(self) -> list[str]:
        return [str(error) for error in self.errors]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def as_dict(self) -> dict[str, Any]:
        return {
            "count": self.synced_count,
            "skipped": self.skipped_count,
            "batches": self.batch_count,
            "levels": dict(self.levels),
            "errors": self.error_messages,
            "dry_run": self.dry_run,
        }


class BulkSynchronizer:
    def __init__(
        self,
        calculator: DurationCalculator | None = None,
        *,
        context: RequestContext = SYSTEM_CONTEXT,
        cache: StatisticsCache | None = None,
        default_batch_size: int = DEFAULT_BATCH_SIZE,
        max_batch_size: int = MAX_BATCH_SIZE,
    ) -> None:
        self.calculator = calculator or DurationCalculator()
        self.analyzer = ConsistencyAnalyzer(self.calculator, context)
        self.context = context
        self.cache = cache
        self.default_batch_size = default_batch_size
        self.max_batch_size = max_batch_size

    @classmethod
    def from_config(
        cls,
        config,
        *,
        calculator: DurationCalculator | None = None,
        context: RequestContext = SYSTEM_CONTEXT,
        cache: StatisticsCache | None = None,
    ) -> "BulkSynchronizer":
        return cls(
            calculator,
            context=context,
            cache=cache,
            default_batch_size=config.get("DURATION_DEFAULT_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            max_batch_size=config.get("DURATION_MAX_BATCH_SIZE", MAX_BATCH_SIZE),
        )

    def normalise_batch_size(self, raw_value: object) -> int:
        """Clamp-or-default: out of range values fall back to the default size."""

        if raw_value is None or raw_value == "":
            return self.default_batch_size
        value = parse_int(raw_value)
        if value is None or value < 1 or value > self.max_batch_size:
            current_app.logger.warning(
                "Invalid batch size provided: %s",
                format_fields(
                    {
                        "provided_batch_size": raw_value,
                        "fallback": self.default_batch_size,
                        **self.context.as_log_fields(),
                    }
                ),
            )
            return self.default_batch_size
        return value

    # Single node ------------------------------------------------------
    def update(self, node: HierarchyNode) -> DurationReport:
        """Store the computed duration on ``node`` and return its new state."""

        computed = self.calculator.compute_duration(node)
        if node.duration_minutes != computed:
            node.duration_minutes = computed
        return self.analyzer.analyze(node)

    def propagate(self, node: HierarchyNode) -> list[DurationReport]:
        """Update ``node`` then every ancestor up to its formation."""

        reports = [self.update(node)]
        for ancestor in node.ancestors():
            reports.append(self.update(ancestor))
        current_app.logger.info(
            "Duration propagated: %s",
            format_fields(
                {
                    "entity_type": node.entity_type,
                    "entity_id": node.id,
                    "levels": len(reports),
                    **self.context.as_log_fields(),
                }
            ),
        )
        if self.cache is not None:
            self.cache.clear()
        return reports

    # Bulk -------------------------------------------------------------
    def sync_all(
        self,
        level_filter: str | None = "all",
        batch_size: object = None,
        *,
        only_inconsistent: bool = False,
        dry_run: bool = False,
        entity_id: int | None = None,
    ) -> SyncReport:
        """Synchronise every active node of the selected levels, leaves first.

        A single pass reads the children values stored before the pass for
        nodes of the first level processed; running ``all`` again converges
        when several levels were stale at once.
        """

        levels = resolve_levels(level_filter)
        size = self.normalise_batch_size(batch_size)
        report = SyncReport(dry_run=dry_run)
        started = time.monotonic()
        current_app.logger.info(
            "Bulk duration synchronization started: %s",
            format_fields(
                {
                    "entity_type": level_filter or "all",
                    "batch_size": size,
                    "dry_run": dry_run,
                    **self.context.as_log_fields(),
                }
            ),
        )
        try:
            for node_type in levels:
                self.sync_level(
                    node_type,
                    size,
                    report=report,
                    only_inconsistent=only_inconsistent,
                    dry_run=dry_run,
                    entity_id=entity_id,
                )
        finally:
            if self.cache is not None and not dry_run:
                self.cache.clear()

        fields = {
            "total_synchronized": report.synced_count,
            "errors": len(report.errors),
            "total_time": round(time.monotonic() - started, 3),
            **self.context.as_log_fields(),
        }
        if report.has_errors:
            current_app.logger.warning(
                "Bulk synchronization completed with errors: %s", format_fields(fields)
            )
        else:
            current_app.logger.info(
                "Bulk duration synchronization completed: %s", format_fields(fields)
            )
        return report

    def sync_level(
        self,
        node_type: type[HierarchyNode],
        batch_size: int,
        *,
        report: SyncReport | None = None,
        only_inconsistent: bool = False,
        dry_run: bool = False,
        entity_id: int | None = None,
    ) -> SyncReport:
        report = report if report is not None else SyncReport(dry_run=dry_run)
        report.levels.setdefault(node_type.entity_type, 0)
        nodes = active_nodes(node_type, entity_id)
        batches = list(chunked(nodes, batch_size))
        current_app.logger.info(
            "Entities loaded for synchronization: %s",
            format_fields(
                {
                    "entity_type": node_type.entity_type,
                    "total_entities": len(nodes),
                    "total_batches": len(batches),
                }
            ),
        )
        for index, batch in enumerate(batches, start=1):
            self._sync_batch(
                node_type,
                index,
                batch,
                report,
                only_inconsistent=only_inconsistent,
                dry_run=dry_run,
            )
        return report

    def _sync_batch(
        self,
        node_type: type[HierarchyNode],
        batch_index: int,
        batch: list[HierarchyNode],
        report: SyncReport,
        *,
        only_inconsistent: bool,
        dry_run: bool,
    ) -> None:
        entity_type = node_type.entity_type
        # Pending writes reach the database only through the flush below.
        with db.session.no_autoflush:
            outcomes = [
                self._sync_node(node, only_inconsistent=only_inconsistent, dry_run=dry_run)
                for node in batch
            ]
        failed = [outcome.error for outcome in outcomes if outcome.error is not None]
        report.errors.extend(failed)

        if not dry_run:
            try:
                db.session.flush()
                db.session.commit()
            except Exception as exc:
                db.session.rollback()
                current_app.logger.error(
                    "Batch processing failed, transaction rolled back: %s",
                    format_fields(
                        {
                            "entity_type": entity_type,
                            "batch_index": batch_index,
                            "error": exc,
                            **self.context.as_log_fields(),
                        }
                    ),
                )
                raise BatchPersistenceError(entity_type, batch_index, report, exc) from exc

        written = [outcome for outcome in outcomes if outcome.written]
        report.synced_count += len(written)
        report.levels[entity_type] = report.levels.get(entity_type, 0) + len(written)
        report.skipped_count += sum(
            1 for outcome in outcomes if outcome.ok and not outcome.written
        )
        report.changes.extend(
            outcome.report
            for outcome in written
            if outcome.report is not None and outcome.report.needs_update
        )
        report.batch_count += 1
        current_app.logger.debug(
            "Batch processed: %s",
            format_fields(
                {
                    "entity_type": entity_type,
                    "batch_index": batch_index,
                    "entities_in_batch": len(batch),
                    "errors_in_batch": len(failed),
                }
            ),
        )

    def _sync_node(
        self,
        node: HierarchyNode,
        *,
        only_inconsistent: bool,
        dry_run: bool,
    ) -> NodeOutcome:
        try:
            before = self.analyzer.analyze(node)
            if only_inconsistent and not before.needs_update:
                return NodeOutcome(report=before)
            if not dry_run and node.duration_minutes != before.computed:
                node.duration_minutes = before.computed
            return NodeOutcome(report=before, written=True)
        except Exception as exc:
            current_app.logger.warning(
                "Failed to update entity duration in batch: %s",
                format_fields(
                    {
                        "entity_type": node.entity_type,
                        "entity_id": node.id,
                        "error": exc,
                    }
                ),
            )
            return NodeOutcome(error=SyncError(node.entity_type, node.id, str(exc)))
