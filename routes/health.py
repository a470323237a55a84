from flask import Blueprint, jsonify

from services.deps import connection_cache
from services.errors import PersistenceError

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    try:
        connection_cache().get()
    except PersistenceError as err:
        return jsonify(status="degraded", database=err.message), 503
    return jsonify(status="ok", database="connected"), 200
