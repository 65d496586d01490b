"""
Сканер расписания викторин
Периодически проверяет записи расписания: объявление, открытие обсуждения и запуск
"""

from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Optional, Tuple, TYPE_CHECKING

import pytz
from telegram.ext import ContextTypes, Job, JobQueue

from .quiz_types import ScheduleDescriptor
from modules.telegram_utils import bounded_call
from utils import get_current_utc_time

if TYPE_CHECKING:
    from app_config import AppConfig
    from state import BotState
    from storage import ScheduleRegistry
    from modules.telegram_utils import TelegramDispatchSink
    from .quiz_engine import SessionEngine

logger = logging.getLogger(__name__)

SCANNER_JOB_NAME = "schedule_scanner"


class QuizScheduler:
    """Сканер расписания: каждое срабатывание проверяет все ожидающие записи"""

    def __init__(
        self,
        app_config: 'AppConfig',
        registry: 'ScheduleRegistry',
        engine: 'SessionEngine',
        state: 'BotState',
        sink: 'TelegramDispatchSink',
        job_queue: JobQueue,
    ):
        self.app_config = app_config
        self.registry = registry
        self.engine = engine
        self.state = state
        self.sink = sink
        self.job_queue = job_queue
        self.timezone = pytz.timezone(app_config.timezone_name)
        self._job: Optional[Job] = None

    def start(self) -> Job:
        """Регистрирует периодическую задачу сканирования"""
        for job in self.job_queue.get_jobs_by_name(SCANNER_JOB_NAME):
            job.schedule_removal()
        self._job = self.job_queue.run_repeating(
            self._scan_job,
            interval=self.app_config.scan_interval_seconds,
            first=1,
            name=SCANNER_JOB_NAME,
        )
        logger.info(f"📅 Сканер расписания запущен (интервал {self.app_config.scan_interval_seconds} сек).")
        return self._job

    def stop(self) -> None:
        if self._job is not None:
            self._job.schedule_removal()
            self._job = None

    async def _scan_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.scan_once()

    def to_local(self, moment: datetime) -> datetime:
        return moment.astimezone(self.timezone)

    async def scan_once(self, now: Optional[datetime] = None) -> None:
        """
        Один проход по расписанию.

        Флаги выставляются под storage_lock до побочных эффектов, поэтому
        каждый эффект срабатывает не более одного раза. Запуск помечается
        только если движок принял сессию.
        """
        now = now or get_current_utc_time()
        notices: List[Tuple[str, int]] = []
        discussions: List[str] = []

        async with self.state.storage_lock:
            pending = sorted(self.registry.list_pending(), key=lambda d: d.trigger_at)
            for descriptor in pending:
                remaining = (descriptor.trigger_at - now).total_seconds()
                if remaining > 0:
                    self._check_windows(descriptor, remaining, notices, discussions)
                    continue
                await self._check_start(descriptor, overdue=-remaining)

            self.registry.persist()

        for session_key in discussions:
            await self._open_discussion(session_key)
        for session_key, remaining_seconds in notices:
            await bounded_call(
                f"объявление о викторине '{session_key}'",
                self.sink.send_notice(session_key, remaining_seconds),
                self.app_config.send_timeout_seconds,
            )

    def _check_windows(
        self,
        descriptor: ScheduleDescriptor,
        remaining: float,
        notices: List[Tuple[str, int]],
        discussions: List[str],
    ) -> None:
        key = descriptor.session_key
        if not descriptor.flags.notice_sent and remaining <= self.app_config.notice_window_seconds:
            self.registry.mark_notice_sent(key)
            notices.append((key, int(remaining)))
            logger.info(f"Объявление о '{key}' (старт в {self.to_local(descriptor.trigger_at):%H:%M %Z}).")

        if not descriptor.flags.discussion_opened and remaining <= self.app_config.discussion_window_seconds:
            # Во время чужой викторины группу не открываем, повторим на следующем проходе
            if not self.engine.is_idle:
                logger.debug(f"Обсуждение перед '{key}' отложено: идет викторина.")
                return
            self.registry.mark_discussion_opened(key)
            discussions.append(key)

    async def _check_start(self, descriptor: ScheduleDescriptor, overdue: float) -> None:
        key = descriptor.session_key
        if overdue > self.app_config.start_grace_seconds:
            self.registry.mark_expired(key)
            logger.warning(
                f"Викторина '{key}' пропущена: просрочена на {int(overdue)} сек "
                f"(допустимо {self.app_config.start_grace_seconds} сек)."
            )
            return

        if await self.engine.start(key):
            self.registry.mark_started(key)
            logger.info(f"Запись расписания '{key}' отмечена как запущенная.")
        else:
            logger.debug(f"Викторина '{key}' не запущена на этом проходе, повтор на следующем.")

    async def _open_discussion(self, session_key: str) -> None:
        timeout = self.app_config.send_timeout_seconds
        await bounded_call("открытие группы для обсуждения", self.sink.set_audience_muted(False), timeout)
        await bounded_call(
            "объявление об обсуждении",
            self.sink.announce(f"💬 Discussion opened\n📘 Next quiz: {session_key}"),
            timeout,
        )
        logger.info(f"Обсуждение перед '{session_key}' открыто.")
