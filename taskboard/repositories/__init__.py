"""
Repository Layer Package.

Provides data-access abstractions over the Supabase Directory Service.
All Directory operations flow through repositories; services never touch
``db.supabase`` directly.

Usage:
    from taskboard.repositories.profile_repository import ProfileRepository
    from taskboard.repositories.task_repository import TaskRepository
"""

from taskboard.repositories.base_repository import BaseRepository
from taskboard.repositories.profile_repository import ProfileRepository
from taskboard.repositories.task_repository import TaskRepository

__all__ = [
    "BaseRepository",
    "ProfileRepository",
    "TaskRepository",
]
