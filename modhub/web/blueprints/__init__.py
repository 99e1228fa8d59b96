"""HTTP API Blueprints"""

from modhub.web.blueprints.catalog_bp import catalog_bp
from modhub.web.blueprints.loader_bp import loader_bp
from modhub.web.blueprints.sessions_bp import sessions_bp

__all__ = ["catalog_bp", "loader_bp", "sessions_bp"]
