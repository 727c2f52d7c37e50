"""Read-only duration consistency endpoints."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, abort, fields

from ..context import RequestContext
from ..errors import UnknownEntityType
from ..models import resolve_node_type
from ..services import ConsistencyAnalyzer, build_reporter


ns = Namespace("durations", description="Duration consistency across the catalogue")

entity_stats_model = ns.model(
    "EntityStats",
    {
        "total": fields.Integer(readonly=True),
        "inconsistencies": fields.Integer(readonly=True),
        "percentage": fields.Float(readonly=True),
        "error": fields.String(readonly=True),
    },
)

statistics_model = ns.model(
    "DurationStatistics",
    {
        "formations": fields.Nested(entity_stats_model),
        "modules": fields.Nested(entity_stats_model),
        "chapters": fields.Nested(entity_stats_model),
        "courses": fields.Nested(entity_stats_model),
    },
)

report_model = ns.model(
    "DurationReport",
    {
        "entity_type": fields.String(readonly=True),
        "entity_id": fields.Integer(readonly=True),
        "title": fields.String(readonly=True),
        "stored": fields.Integer(readonly=True),
        "computed": fields.Integer(readonly=True),
        "needs_update": fields.Boolean(readonly=True),
        "delta": fields.Integer(readonly=True),
        "unit": fields.String(readonly=True),
        "child_count": fields.Integer(readonly=True),
        "error": fields.String(readonly=True),
    },
)


@ns.route("/statistics")
class DurationStatistics(Resource):
    @ns.marshal_with(statistics_model)
    def get(self) -> dict[str, Any]:
        reporter = build_reporter(RequestContext.from_request(request))
        return {key: stats.as_dict() for key, stats in reporter.get_all_stats().items()}


@ns.route("/<string:entity_type>")
class DurationAnalysis(Resource):
    @ns.marshal_list_with(report_model)
    def get(self, entity_type: str) -> list[dict[str, Any]]:
        try:
            node_type = resolve_node_type(entity_type)
        except UnknownEntityType as exc:
            abort(404, str(exc))
        analyzer = ConsistencyAnalyzer(context=RequestContext.from_request(request))
        analysis = analyzer.analyze_level(node_type)
        return [report.as_dict() for report in analysis.reports]
