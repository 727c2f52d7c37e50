"""``flask duration`` maintenance commands."""
from __future__ import annotations

import csv
import io
import json

import click
from flask.cli import AppGroup

from .context import RequestContext
from .errors import BatchPersistenceError, UnknownEntityType
from .models import ALL_LEVELS, NODE_TYPES, SYNC_ORDER, resolve_levels
from .services import (
    ConsistencyAnalyzer,
    DurationReport,
    build_synchronizer,
    has_inconsistency,
)


ENTITY_CHOICES = click.Choice([*NODE_TYPES, ALL_LEVELS], case_sensitive=False)
REPORT_COLUMNS = (
    "entity_type",
    "entity_id",
    "title",
    "stored",
    "computed",
    "delta",
    "unit",
    "inconsistent",
)

duration_cli = AppGroup("duration", help="Analyse and synchronise catalogue durations.")


def _row(report: DurationReport, threshold: int) -> dict[str, object]:
    return {
        "entity_type": report.entity_type,
        "entity_id": report.entity_id,
        "title": report.title or "",
        "stored": report.stored,
        "computed": report.computed,
        "delta": report.delta,
        "unit": report.unit,
        "inconsistent": has_inconsistency(report, threshold),
    }


def _shorten(value: object, width: int = 30) -> str:
    text = str(value)
    return text if len(text) <= width else f"{text[: width - 3]}..."


def _render_table(rows: list[dict[str, object]]) -> str:
    cells = [[_shorten(row[column]) for column in REPORT_COLUMNS] for row in rows]
    widths = [
        max([len(column)] + [len(line[index]) for line in cells])
        for index, column in enumerate(REPORT_COLUMNS)
    ]
    header = "  ".join(column.ljust(widths[i]) for i, column in enumerate(REPORT_COLUMNS))
    lines = [header, "  ".join("-" * width for width in widths)]
    for line in cells:
        lines.append("  ".join(value.ljust(widths[i]) for i, value in enumerate(line)))
    return "\n".join(lines)


def _render_csv(rows: list[dict[str, object]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=REPORT_COLUMNS)
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


@duration_cli.command("analyze")
@click.argument("entity_type", type=ENTITY_CHOICES, default=ALL_LEVELS)
@click.option("--inconsistencies-only", is_flag=True, help="Only list drifting nodes.")
@click.option(
    "--threshold",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Minimum absolute difference, in minutes, reported as an inconsistency.",
)
@click.option(
    "--output-format",
    type=click.Choice(["table", "json", "csv"]),
    default="table",
    show_default=True,
)
def analyze_command(
    entity_type: str, inconsistencies_only: bool, threshold: int, output_format: str
) -> None:
    """Report stored versus computed durations."""
    analyzer = ConsistencyAnalyzer(context=RequestContext.for_cli())
    rows: list[dict[str, object]] = []
    for node_type in resolve_levels(entity_type):
        for report in analyzer.analyze_level(node_type).reports:
            rows.append(_row(report, threshold))

    total = len(rows)
    inconsistent = sum(1 for row in rows if row["inconsistent"])
    if inconsistencies_only:
        rows = [row for row in rows if row["inconsistent"]]

    if output_format == "json":
        click.echo(json.dumps(rows, ensure_ascii=False, indent=2))
    elif output_format == "csv":
        click.echo(_render_csv(rows), nl=False)
    else:
        click.echo(_render_table(rows) if rows else "Aucun résultat à afficher.")
        click.echo(f"{total} entité(s) analysée(s), {inconsistent} incohérence(s).")


@duration_cli.command("sync")
@click.argument("entity_type", type=ENTITY_CHOICES, default=ALL_LEVELS)
@click.option("--entity-id", type=int, default=None, help="Synchronise a single node.")
@click.option("--dry-run", is_flag=True, help="Show what would change without writing.")
@click.option("--force", is_flag=True, help="Rewrite nodes that are already consistent.")
@click.option("--batch-size", default="50", show_default=True, help="Nodes per transaction (1-1000).")
def sync_command(
    entity_type: str,
    entity_id: int | None,
    dry_run: bool,
    force: bool,
    batch_size: str,
) -> None:
    """Recompute stored durations, leaves first."""
    if entity_id is not None and entity_type == ALL_LEVELS:
        raise click.UsageError("--entity-id requires an explicit entity type.")
    if dry_run:
        click.echo("Simulation : aucune modification ne sera enregistrée.")

    synchronizer = build_synchronizer(RequestContext.for_cli())
    try:
        report = synchronizer.sync_all(
            entity_type,
            batch_size,
            only_inconsistent=not force,
            dry_run=dry_run,
            entity_id=entity_id,
        )
    except UnknownEntityType as exc:
        raise click.UsageError(str(exc)) from exc
    except BatchPersistenceError as exc:
        click.echo(f"{exc.report.synced_count} entité(s) synchronisée(s) avant l'échec.", err=True)
        raise click.ClickException(str(exc)) from exc

    for change in report.changes:
        click.echo(
            f"{change.entity_type} #{change.entity_id} « {change.title} » : "
            f"{change.stored} → {change.computed} min ({change.delta:+d})"
        )
    for name in SYNC_ORDER:
        if name in report.levels:
            click.echo(f"{NODE_TYPES[name].label} : {report.levels[name]} mise(s) à jour")
    for message in report.error_messages:
        click.echo(f"Erreur : {message}", err=True)
    click.echo(
        f"{report.synced_count} entité(s) synchronisée(s), "
        f"{report.skipped_count} déjà cohérente(s), {len(report.errors)} erreur(s)."
    )
    if report.has_errors:
        raise SystemExit(1)

