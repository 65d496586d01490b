#state.py
import asyncio
import logging
from typing import Dict, Any, List, Optional, TYPE_CHECKING

from handlers.quiz.quiz_types import Question, ScheduleDescriptor

if TYPE_CHECKING:
    from app_config import AppConfig
    from telegram.ext import Application
    from data_manager import DataManager

logger = logging.getLogger(__name__)


class BotState:
    """Общее состояние процесса: каталог вопросов, расписание и статистика"""

    def __init__(self, app_config: 'AppConfig'):
        self.app_config: 'AppConfig' = app_config
        self.application: Optional['Application'] = None
        self.data_manager: Optional['DataManager'] = None

        # session_key -> упорядоченный список вопросов
        self.quiz_catalog: Dict[str, List[Question]] = {}
        # Порядок записей сохраняется при записи в schedule.json
        self.schedules: List[ScheduleDescriptor] = []
        # user_id (str) -> {"name", "score", "sessions"}
        self.user_scores: Dict[str, Dict[str, Any]] = {}

        # Грубая блокировка на изменения каталога и расписания
        self.storage_lock: asyncio.Lock = asyncio.Lock()

    def get_schedule(self, session_key: str) -> Optional[ScheduleDescriptor]:
        return next((s for s in self.schedules if s.session_key == session_key), None)
