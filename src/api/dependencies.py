"""FastAPI dependencies for injection."""
from fastapi import Depends

from core.auth import get_current_user
from core.config import Settings, get_settings
from db.session import get_async_session
from services.version_pruner import prune_dispatcher
from services.version_service import VersionService


def get_version_service(settings: Settings = Depends(get_settings)) -> VersionService:
    """Version service configured with the application's version policy."""
    return VersionService(policy=settings.version_policy, pruner=prune_dispatcher)


__all__ = [
    "get_async_session",
    "get_current_user",
    "get_settings",
    "get_version_service",
]
