"""
Хранилища каталога вопросов и расписания
"""

from .session_catalog import SessionCatalog
from .schedule_registry import ScheduleRegistry

__all__ = [
    'SessionCatalog',
    'ScheduleRegistry',
]
