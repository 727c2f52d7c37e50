"""REST API definition using Flask-RESTX."""
from __future__ import annotations

from flask import Blueprint
from flask_restx import Api

from .durations import ns as durations_ns
from .health import ns as health_ns


api_bp = Blueprint("api", __name__)
api = Api(api_bp, version="0.1.0", title="Cadence API", doc="/docs")


def register_namespaces(api: Api) -> None:
    """Register all API namespaces."""
    api.add_namespace(health_ns, path="/health")
    api.add_namespace(durations_ns, path="/durations")


register_namespaces(api)
