from __future__ import annotations

from flask import (
    Blueprint,
    abort,
    current_app,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from . import db
from .context import RequestContext, format_fields
from .errors import BatchPersistenceError, UnknownEntityType
from .forms import DurationSyncForm
from .models import DISPLAY_ORDER, NODE_TYPES, HierarchyNode, resolve_node_type
from .services import (
    ConsistencyAnalyzer,
    build_reporter,
    build_synchronizer,
    statistics_cache,
)
from .utils import format_duration

bp = Blueprint("main", __name__)
duration_bp = Blueprint("duration", __name__)


@duration_bp.app_template_filter("duration")
def duration_filter(value: int | None, unit: str = "minutes") -> str:
    return format_duration(value, unit)


def _request_context() -> RequestContext:
    return RequestContext.from_request(request)


def _node_type_or_404(entity_type: str) -> type[HierarchyNode]:
    try:
        return resolve_node_type(entity_type)
    except UnknownEntityType:
        current_app.logger.warning(
            "Unknown entity type requested: %s",
            format_fields({"entity_type": entity_type, **_request_context().as_log_fields()}),
        )
        abort(404, description="Type d'entité invalide")


def _request_params() -> dict:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


@bp.route("/")
def home():
    return redirect(url_for("duration.index"))


@duration_bp.errorhandler(404)
def duration_not_found(error: HTTPException):
    if request.method == "POST":
        return jsonify({"success": False, "message": error.description}), 404
    return error


@duration_bp.route("/")
def index():
    context = _request_context()
    current_app.logger.info(
        "Duration management index page accessed: %s",
        format_fields(context.as_log_fields()),
    )
    return render_template(
        "duration/index.html",
        form=DurationSyncForm(),
        levels=[NODE_TYPES[name] for name in DISPLAY_ORDER],
    )


@duration_bp.route("/statistics")
def statistics():
    context = _request_context()
    current_app.logger.info(
        "Duration statistics page accessed: %s", format_fields(context.as_log_fields())
    )
    stats = build_reporter(context).get_all_stats()
    return render_template(
        "duration/statistics.html",
        stats=stats,
        labels={NODE_TYPES[name].plural_key: NODE_TYPES[name].label for name in DISPLAY_ORDER},
    )


@duration_bp.route("/analyze/<entity_type>")
def analyze(entity_type: str):
    node_type = _node_type_or_404(entity_type)
    context = _request_context()
    analysis = ConsistencyAnalyzer(context=context).analyze_level(node_type)
    current_app.logger.info(
        "Duration analysis completed: %s",
        format_fields(
            {
                "entity_type": node_type.entity_type,
                "total": analysis.total,
                "inconsistencies": analysis.inconsistencies,
                **context.as_log_fields(),
            }
        ),
    )
    return render_template(
        "duration/analyze.html",
        entity_type=node_type.entity_type,
        node_type=node_type,
        analysis=analysis,
    )


@duration_bp.route("/update/<entity_type>/<int:entity_id>", methods=["POST"])
def update_duration(entity_type: str, entity_id: int):
    node_type = _node_type_or_404(entity_type)
    node = db.get_or_404(node_type, entity_id, description="Entité introuvable")
    context = _request_context()
    synchronizer = build_synchronizer(context)
    try:
        synchronizer.propagate(node)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(
            "Failed to update entity duration: %s",
            format_fields(
                {
                    "entity_type": node_type.entity_type,
                    "entity_id": entity_id,
                    "error": exc,
                    **context.as_log_fields(),
                }
            ),
        )
        return (
            jsonify(
                {
                    "success": False,
                    "message": f"Erreur lors de la mise à jour de la durée : {exc}",
                }
            ),
            500,
        )

    stats = synchronizer.analyzer.analyze(node)
    return jsonify(
        {
            "success": True,
            "message": "Durée mise à jour avec succès",
            "stats": stats.as_dict(),
        }
    )


@duration_bp.route("/sync-all", methods=["POST"])
def sync_all():
    params = _request_params()
    entity_type = params.get("entity_type") or "all"
    context = _request_context()
    synchronizer = build_synchronizer(context)

    try:
        report = synchronizer.sync_all(entity_type, params.get("batch_size"))
    except UnknownEntityType:
        abort(404, description="Type d'entité invalide")
    except BatchPersistenceError as exc:
        return (
            jsonify(
                {
                    "success": False,
                    "message": f"Erreur critique pendant la synchronisation : {exc}",
                    "count": exc.report.synced_count,
                    "errors": exc.report.error_messages,
                    "error_code": "SYNC_CRITICAL_ERROR",
                }
            ),
            500,
        )

    if report.has_errors:
        return (
            jsonify(
                {
                    "success": False,
                    "message": f"{report.synced_count} entité(s) synchronisée(s) avec des erreurs",
                    "count": report.synced_count,
                    "errors": report.error_messages,
                }
            ),
            206,
        )
    return jsonify(
        {
            "success": True,
            "message": f"{report.synced_count} entité(s) synchronisée(s)",
            "count": report.synced_count,
        }
    )


@duration_bp.route("/clear-cache", methods=["POST"])
def clear_cache():
    context = _request_context()
    cleared = statistics_cache().clear()
    current_app.logger.info(
        "Duration caches cleared: %s",
        format_fields({"entries": cleared, **context.as_log_fields()}),
    )
    return jsonify({"success": True, "message": "Caches des durées vidés avec succès"})
