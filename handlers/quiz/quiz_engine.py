"""
Движок запланированных викторин
Единственный слот живой сессии: IDLE -> ACTIVE -> DRAINING -> IDLE

Опросы отправляются по одному, следующий планируется через JobQueue.
Ответы принимаются, пока сессия ACTIVE или DRAINING.
"""

from __future__ import annotations
import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Dict, Optional, TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from telegram.ext import ContextTypes, JobQueue

from .quiz_types import AnswerEvent, EngineState, LiveSession, OpenPoll
from modules.logger_config import log_quiz_event
from modules.score_manager import compile_leaderboard, format_leaderboard
from modules.telegram_utils import bounded_call
from utils import get_current_utc_time, schedule_job_unique

if TYPE_CHECKING:
    from app_config import AppConfig
    from state import BotState
    from storage import SessionCatalog, ScheduleRegistry
    from modules.score_manager import ScoreManager
    from modules.telegram_utils import TelegramDispatchSink

logger = logging.getLogger(__name__)

DISPATCH_JOB_NAME = "quiz_dispatch"
DRAIN_JOB_NAME = "quiz_drain"
REMUTE_JOB_NAME = "quiz_post_discussion_remute"


class SessionEngine:
    """Движок викторин: запуск, отправка вопросов, прием ответов и подведение итогов"""

    def __init__(
        self,
        app_config: 'AppConfig',
        catalog: 'SessionCatalog',
        registry: 'ScheduleRegistry',
        state: 'BotState',
        sink: 'TelegramDispatchSink',
        job_queue: JobQueue,
        score_manager: Optional['ScoreManager'] = None,
    ):
        self.app_config = app_config
        self.catalog = catalog
        self.registry = registry
        self.state = state
        self.sink = sink
        self.job_queue = job_queue
        self.score_manager = score_manager

        self._lock = asyncio.Lock()
        self._engine_state = EngineState.IDLE
        self._live: Optional[LiveSession] = None
        self._generation = 0

    @property
    def engine_state(self) -> EngineState:
        return self._engine_state

    @property
    def is_idle(self) -> bool:
        return self._engine_state is EngineState.IDLE

    @property
    def live_session(self) -> Optional[LiveSession]:
        return self._live

    def get_status(self) -> Dict[str, Any]:
        """Снимок состояния для /status"""
        live = self._live
        status: Dict[str, Any] = {"state": self._engine_state.value}
        if live is not None:
            status.update({
                "session_key": live.session_key,
                "dispatched": min(live.question_index, live.total_questions),
                "total": live.total_questions,
                "participants": len(live.answered),
                "started_at": live.started_at,
            })
        return status

    # ===== Запуск =====

    async def start(self, session_key: str) -> bool:
        """
        Запускает сессию по ключу каталога.

        Returns:
            True, если сессия стала живой. False, если движок занят
            или у ключа нет вопросов; запись расписания остается ожидающей.
        """
        questions = self.catalog.get_questions(session_key)

        async with self._lock:
            if self._engine_state is not EngineState.IDLE:
                current_key = self._live.session_key if self._live else "?"
                logger.info(f"Запуск '{session_key}' отклонен: идет викторина '{current_key}'.")
                return False
            if not questions:
                logger.warning(f"Запуск '{session_key}' отменен: в каталоге нет вопросов для этой сессии.")
                return False

            self._generation += 1
            live = LiveSession(
                session_key=session_key,
                questions=questions,
                generation=self._generation,
                started_at=get_current_utc_time(),
            )
            self._live = live
            self._engine_state = EngineState.ACTIVE
            generation = live.generation
            self._cancel_jobs_by_name(REMUTE_JOB_NAME)

        log_quiz_event(
            logger, "start", f"Викторина '{session_key}' запущена ({len(questions)} вопросов).",
            chat_id=self.app_config.quiz_group_id, quiz_id=session_key,
        )

        await self._call_sink("закрытие группы", self.sink.set_audience_muted(True))
        await self._call_sink(
            "объявление о старте",
            self.sink.announce(f"🟢 Quiz Started\n📘 {session_key}\n❓ {len(questions)} questions"),
        )

        async with self._lock:
            live = self._current(generation, EngineState.ACTIVE)
            if live is not None:
                live.pending_job = schedule_job_unique(
                    self.job_queue, DISPATCH_JOB_NAME, self._dispatch_job,
                    timedelta(seconds=self.app_config.start_delay_seconds), data=generation,
                )
            else:
                logger.info(f"Викторина '{session_key}' остановлена до отправки первого вопроса.")
        return True

    # ===== Цикл отправки =====

    async def _dispatch_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.dispatch_next(context.job.data)

    async def dispatch_next(self, generation: int) -> None:
        """Отправляет очередной вопрос. Неудачная отправка пропускает вопрос."""
        while True:
            async with self._lock:
                live = self._current(generation, EngineState.ACTIVE)
                if live is None:
                    logger.debug(f"Устаревшая задача отправки (поколение {generation}) проигнорирована.")
                    return
                live.pending_job = None

                if live.is_exhausted:
                    self._engine_state = EngineState.DRAINING
                    live.pending_job = schedule_job_unique(
                        self.job_queue, DRAIN_JOB_NAME, self._drain_job,
                        timedelta(seconds=self.app_config.settle_delay_seconds), data=generation,
                    )
                    logger.info(
                        f"Все вопросы '{live.session_key}' отправлены. "
                        f"Итоги через {self.app_config.settle_delay_seconds} сек."
                    )
                    return

                index = live.question_index
                live.question_index += 1
                question = live.questions[index]
                total = live.total_questions
                session_key = live.session_key

            poll_id = await self._call_sink(
                f"отправка вопроса {index + 1}/{total}",
                self.sink.send_poll(question, index, total, self.app_config.poll_open_seconds),
            )

            async with self._lock:
                live = self._current(generation, EngineState.ACTIVE)
                if live is None:
                    logger.info(f"Сессия '{session_key}' остановлена во время отправки вопроса {index + 1}. Опрос не учитывается.")
                    return
                if not poll_id:
                    log_quiz_event(
                        logger, "skip", f"Вопрос {index + 1}/{total} сессии '{session_key}' пропущен.",
                        chat_id=self.app_config.quiz_group_id, quiz_id=session_key, level='warning',
                    )
                    continue

                live.open_polls[poll_id] = OpenPoll(correct_index=question.correct_index, question_index=index)
                delay = self.app_config.poll_open_seconds + self.app_config.dispatch_buffer_seconds
                live.pending_job = schedule_job_unique(
                    self.job_queue, DISPATCH_JOB_NAME, self._dispatch_job,
                    timedelta(seconds=delay), data=generation,
                )
                logger.info(f"Вопрос {index + 1}/{total} сессии '{session_key}' отправлен (poll_id={poll_id}).")
                return

    # ===== Подведение итогов =====

    async def _drain_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.finish(context.job.data)

    async def finish(self, generation: int) -> None:
        """Публикует рейтинг и очищает каталог, расписание и слот сессии"""
        async with self._lock:
            live = self._current(generation, EngineState.DRAINING)
            if live is None or live.finishing:
                logger.debug(f"Устаревшая задача подведения итогов (поколение {generation}) проигнорирована.")
                return
            live.pending_job = None
            live.finishing = True
            leaderboard = compile_leaderboard(
                live.session_key, live.scores, live.display_names,
                live.total_questions, limit=self.app_config.leaderboard_limit,
            )
            # Ответы после подсчета уже ни на что не влияют
            live.open_polls.clear()
            session_key = live.session_key

        await self._call_sink("публикация рейтинга", self.sink.announce(format_leaderboard(leaderboard)))

        if self.score_manager is not None:
            self.score_manager.record_session_results(leaderboard)

        async with self.state.storage_lock:
            self.catalog.delete(session_key)
            self.registry.remove(session_key)
            self.catalog.persist()
            self.registry.persist()

        await self._call_sink("открытие группы", self.sink.set_audience_muted(False))

        async with self._lock:
            if self._live is live:
                self._live = None
                self._engine_state = EngineState.IDLE

        log_quiz_event(
            logger, "finish",
            f"Викторина '{session_key}' завершена. Участников: {len(leaderboard.full_ranking)}.",
            chat_id=self.app_config.quiz_group_id, quiz_id=session_key,
        )
        self._schedule_remute()

    # ===== Остановка =====

    async def stop(self, force: bool = True) -> bool:
        """
        Останавливает живую сессию без рейтинга.

        Args:
            force: False не прерывает сессию, которая уже ждет итогов (DRAINING)

        Returns:
            Была ли остановлена сессия. Каталог и расписание не меняются.
        """
        async with self._lock:
            live = self._live
            if live is None or self._engine_state is EngineState.IDLE:
                logger.info("Остановка: нет активной викторины.")
                return False
            if live.finishing:
                logger.info(f"Остановка '{live.session_key}' отклонена: итоги уже публикуются.")
                return False
            if not force and self._engine_state is EngineState.DRAINING:
                logger.info(f"Остановка '{live.session_key}' без force отклонена: сессия ждет итогов.")
                return False

            if live.pending_job is not None:
                try:
                    live.pending_job.schedule_removal()
                except JobLookupError:
                    # Задача уже сработала и ждет блокировку; поколение сделает ее пустой
                    logger.debug(f"Задача '{live.pending_job.name}' уже снята планировщиком.")
                live.pending_job = None
            self._live = None
            self._engine_state = EngineState.IDLE
            session_key = live.session_key
            dispatched = min(live.question_index, live.total_questions)

        log_quiz_event(
            logger, "stop",
            f"Викторина '{session_key}' остановлена после {dispatched}/{live.total_questions} вопросов.",
            chat_id=self.app_config.quiz_group_id, quiz_id=session_key, level='warning',
        )
        await self._call_sink("открытие группы", self.sink.set_audience_muted(False))
        return True

    # ===== Прием ответов =====

    async def handle_answer(self, event: AnswerEvent) -> bool:
        """Учитывает ответ. Returns: True, если ответ засчитан как первый на этот вопрос."""
        async with self._lock:
            live = self._live
            if live is None or self._engine_state not in (EngineState.ACTIVE, EngineState.DRAINING):
                logger.debug(f"Ответ на опрос {event.poll_id} вне активной викторины проигнорирован.")
                return False

            open_poll = live.open_polls.get(event.poll_id)
            if open_poll is None:
                logger.debug(f"Ответ на неизвестный опрос {event.poll_id} проигнорирован.")
                return False
            if event.chosen_option_index is None:
                logger.debug(f"Пользователь {event.user_id} отозвал голос в опросе {event.poll_id}.")
                return False

            answered = live.get_or_init_answered(event.user_id)
            if open_poll.question_index in answered:
                logger.debug(f"Повторный ответ пользователя {event.user_id} на вопрос {open_poll.question_index + 1} проигнорирован.")
                return False

            answered.add(open_poll.question_index)
            live.display_names[event.user_id] = event.display_name
            live.get_or_init_score(event.user_id)
            is_correct = event.chosen_option_index == open_poll.correct_index
            if is_correct:
                live.scores[event.user_id] += 1

        logger.debug(
            f"Ответ {event.display_name} ({event.user_id}) на вопрос {open_poll.question_index + 1}: "
            f"{'✓' if is_correct else '✗'}"
        )
        return True

    # ===== Окно обсуждения после викторины =====

    def _schedule_remute(self) -> None:
        seconds = self.app_config.post_quiz_discussion_seconds
        if seconds <= 0:
            return
        schedule_job_unique(self.job_queue, REMUTE_JOB_NAME, self._remute_job, timedelta(seconds=seconds))
        logger.info(f"Обсуждение открыто на {seconds} сек, затем группа будет закрыта.")

    async def _remute_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.close_discussion()

    async def close_discussion(self) -> bool:
        """Закрывает группу после обсуждения, если викторина не идет и не открыто обсуждение следующей"""
        if not self.is_idle:
            logger.debug("Группа не закрыта: идет викторина.")
            return False
        if any(d.flags.discussion_opened for d in self.registry.list_pending()):
            logger.info("Группа не закрыта: открыто обсуждение перед следующей викториной.")
            return False
        await self._call_sink("закрытие группы после обсуждения", self.sink.set_audience_muted(True))
        return True

    # ===== Вспомогательные =====

    def _current(self, generation: int, expected: EngineState) -> Optional[LiveSession]:
        if self._live is None or self._live.generation != generation:
            return None
        if self._engine_state is not expected:
            return None
        return self._live

    def _cancel_jobs_by_name(self, job_name: str) -> None:
        for job in self.job_queue.get_jobs_by_name(job_name):
            job.schedule_removal()

    async def _call_sink(self, description: str, call: Awaitable[Any]) -> Any:
        return await bounded_call(description, call, self.app_config.send_timeout_seconds)
