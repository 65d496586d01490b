# storage/session_catalog.py
import logging
from typing import List, Optional, TYPE_CHECKING

from handlers.quiz.quiz_types import Question

if TYPE_CHECKING:
    from state import BotState
    from data_manager import DataManager

logger = logging.getLogger(__name__)


class SessionCatalog:
    """Каталог наборов вопросов по ключу сессии"""

    def __init__(self, state: 'BotState', data_manager: 'DataManager'):
        self.state = state
        self.data_manager = data_manager

    def get_questions(self, session_key: str) -> Optional[List[Question]]:
        questions = self.state.quiz_catalog.get(session_key)
        if questions is None:
            return None
        return list(questions)

    def put(self, session_key: str, questions: List[Question]) -> None:
        if session_key in self.state.quiz_catalog:
            logger.info(f"Сессия '{session_key}' уже есть в каталоге и будет перезаписана.")
        self.state.quiz_catalog[session_key] = list(questions)

    def delete(self, session_key: str) -> bool:
        removed = self.state.quiz_catalog.pop(session_key, None)
        if removed is None:
            logger.debug(f"Сессия '{session_key}' не найдена в каталоге при удалении.")
            return False
        logger.info(f"Сессия '{session_key}' удалена из каталога ({len(removed)} вопросов).")
        return True

    def keys(self) -> List[str]:
        return list(self.state.quiz_catalog.keys())

    def persist(self) -> bool:
        saved = self.data_manager.save_sessions()
        if not saved:
            logger.error("Не удалось сохранить каталог сессий. Данные в памяти остаются актуальными.")
        return saved
