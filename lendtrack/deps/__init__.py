from .auth import require_actor, require_admin
from .services import get_history_log, get_lifecycle_service

__all__ = ["get_history_log", "get_lifecycle_service", "require_actor", "require_admin"]
