"""FastAPI surface"""

from triage_lib.api.app import TriageServices, build_engine, build_redis_services, create_app
from triage_lib.api.routes import create_router

__all__ = ["TriageServices", "build_engine", "build_redis_services", "create_app", "create_router"]
