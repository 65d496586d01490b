#utils.py
from typing import Any, Callable, Coroutine, Optional, Union
from datetime import datetime, timedelta, timezone

from telegram import User as TelegramUser
from telegram.ext import Job, JobQueue

from modules.logger_config import get_logger

logger = get_logger(__name__)


def get_current_utc_time() -> datetime:
    return datetime.now(timezone.utc)


def get_username_or_firstname(user: Optional[TelegramUser]) -> str:
    if user:
        # Приоритет у полного имени, username только как запасной вариант
        if user.first_name:
            if user.last_name:
                return f"{user.first_name} {user.last_name}"
            return user.first_name
        elif user.username:
            return f"@{user.username}"
        else:
            return f"User {user.id}"
    return "Unknown user"


def format_seconds_to_human_readable_time(total_seconds: Optional[Union[int, float]]) -> str:
    """
    Форматирует секунды в человекочитаемый формат (X min Y sec или Z sec).
    Возвращает "N/A" если входные данные некорректны.
    """
    if total_seconds is None or isinstance(total_seconds, bool) or not isinstance(total_seconds, (int, float)) or total_seconds < 0:
        return "N/A"

    total_seconds_int = int(total_seconds)

    if total_seconds_int < 60:
        return f"{total_seconds_int} sec"

    hours, remainder = divmod(total_seconds_int, 3600)
    minutes, seconds = divmod(remainder, 60)

    parts = []
    if hours:
        parts.append(f"{hours} h")
    if minutes:
        parts.append(f"{minutes} min")
    if seconds:
        parts.append(f"{seconds} sec")
    return " ".join(parts)


def schedule_job_unique(
    job_queue: JobQueue,
    job_name: str,
    callback: Callable[..., Coroutine[Any, Any, None]],
    when: Union[timedelta, float, datetime],
    data: Any = None,
) -> Job:
    """Планирует одноразовую задачу, снимая прежние задачи с тем же именем"""
    current_jobs = job_queue.get_jobs_by_name(job_name)
    if current_jobs:
        logger.debug(f"Найдены существующие задачи ({len(current_jobs)}) с именем '{job_name}'. Удаляем...")
        for job in current_jobs:
            job.schedule_removal()

    new_job = job_queue.run_once(callback, when, data=data, name=job_name)

    when_display = when
    if isinstance(when, (float, int)): when_display = f"{when} сек"
    elif isinstance(when, datetime): when_display = when.isoformat()
    elif isinstance(when, timedelta): when_display = f"через {when}"

    logger.debug(f"Задача '{job_name}' запланирована на {when_display}.")
    return new_job
