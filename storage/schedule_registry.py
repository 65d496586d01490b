# storage/schedule_registry.py
import logging
from typing import List, Optional, TYPE_CHECKING

from handlers.quiz.quiz_types import ScheduleDescriptor

if TYPE_CHECKING:
    from state import BotState
    from data_manager import DataManager

logger = logging.getLogger(__name__)


class ScheduleRegistry:
    """Реестр записей расписания. Изменяется сканером и движком."""

    def __init__(self, state: 'BotState', data_manager: 'DataManager'):
        self.state = state
        self.data_manager = data_manager

    def get(self, session_key: str) -> Optional[ScheduleDescriptor]:
        return self.state.get_schedule(session_key)

    def all(self) -> List[ScheduleDescriptor]:
        return list(self.state.schedules)

    def list_pending(self) -> List[ScheduleDescriptor]:
        return [s for s in self.state.schedules if s.is_pending]

    def add(self, descriptor: ScheduleDescriptor) -> None:
        """Добавляет запись; запись с тем же ключом заменяется"""
        existing = self.get(descriptor.session_key)
        if existing is not None:
            if existing.flags.started:
                logger.warning(f"Запись '{descriptor.session_key}' уже запущена, замена отклонена.")
                return
            self.state.schedules.remove(existing)
            logger.info(f"Запись расписания '{descriptor.session_key}' заменена.")
        self.state.schedules.append(descriptor)

    def _require(self, session_key: str) -> Optional[ScheduleDescriptor]:
        descriptor = self.get(session_key)
        if descriptor is None:
            logger.warning(f"Запись расписания '{session_key}' не найдена.")
        return descriptor

    def mark_notice_sent(self, session_key: str) -> None:
        descriptor = self._require(session_key)
        if descriptor:
            descriptor.flags.notice_sent = True

    def mark_discussion_opened(self, session_key: str) -> None:
        descriptor = self._require(session_key)
        if descriptor:
            descriptor.flags.discussion_opened = True

    def mark_started(self, session_key: str) -> None:
        descriptor = self._require(session_key)
        if descriptor:
            descriptor.flags.started = True

    def mark_expired(self, session_key: str) -> None:
        descriptor = self._require(session_key)
        if descriptor and not descriptor.flags.started:
            descriptor.flags.expired = True

    def remove(self, session_key: str) -> bool:
        before = len(self.state.schedules)
        self.state.schedules = [s for s in self.state.schedules if s.session_key != session_key]
        removed = len(self.state.schedules) != before
        if removed:
            logger.info(f"Запись расписания '{session_key}' удалена.")
        return removed

    def persist(self) -> bool:
        saved = self.data_manager.save_schedule()
        if not saved:
            logger.error("Не удалось сохранить расписание. Данные в памяти остаются актуальными.")
        return saved
