#!/usr/bin/env python3
"""
Безопасные утилиты для работы с Telegram API

Включает:
- Декоратор для безопасного вызова Telegram API с retry
- Единообразная обработка ошибок Telegram API
- TelegramDispatchSink: отправка опросов, объявлений и управление правами группы
"""

import logging
import asyncio
from functools import wraps
from typing import Optional, Union, Callable, Any, Awaitable, TYPE_CHECKING

from telegram import (
    Bot, Message, Poll, ChatPermissions,
    InlineKeyboardMarkup, InlineKeyboardButton,
)
from telegram.error import (
    BadRequest, Forbidden, NetworkError, RetryAfter,
    TimedOut, TelegramError
)

from handlers.quiz.quiz_types import Question

if TYPE_CHECKING:
    from app_config import AppConfig

logger = logging.getLogger(__name__)

# Максимальная длина сообщения для Telegram
MAX_MESSAGE_LENGTH = 4096


class TelegramMessageError(Exception):
    """Базовое исключение для ошибок отправки сообщений"""
    pass

class MessageTooLongError(TelegramMessageError):
    """Сообщение слишком длинное для Telegram"""
    pass

class UserBlockedError(TelegramMessageError):
    """Пользователь заблокировал бота"""
    pass

class ChatNotFoundError(TelegramMessageError):
    """Чат не найден"""
    pass


def safe_telegram_call(
    max_retries: int = 1,
    base_delay: float = 0.1,
    max_delay: float = 0.5,
    exponential_base: float = 1.5
):
    """
    Декоратор для безопасного вызова Telegram API с retry

    Args:
        max_retries: Количество повторов после первой попытки
        base_delay: Базовая задержка между попытками (секунды)
        max_delay: Максимальная задержка между попытками (секунды)
        exponential_base: База для экспоненциального backoff
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            last_exception: Optional[Exception] = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except RetryAfter as e:
                    # Telegram просит подождать
                    wait_time = e.retry_after
                    wait_seconds = wait_time.total_seconds() if hasattr(wait_time, "total_seconds") else float(wait_time)
                    logger.warning(f"Telegram API просит подождать {wait_seconds} секунд (попытка {attempt + 1}/{max_retries + 1})")
                    last_exception = e
                    if attempt < max_retries:
                        await asyncio.sleep(wait_seconds)

                except (NetworkError, TimedOut) as e:
                    # BadRequest наследуется от NetworkError, его не повторяем
                    if isinstance(e, BadRequest):
                        raise _map_bad_request(e) from e
                    last_exception = e
                    if attempt < max_retries:
                        delay = min(base_delay * (exponential_base ** attempt), max_delay)
                        logger.warning(f"Сетевая ошибка, повтор через {delay:.1f}с (попытка {attempt + 1}/{max_retries + 1}): {e}")
                        await asyncio.sleep(delay)
                    else:
                        logger.error(f"Исчерпаны попытки после сетевых ошибок: {e}")

                except Forbidden as e:
                    logger.error(f"Бот не авторизован или заблокирован: {e}")
                    raise UserBlockedError(f"Проблема с авторизацией бота: {e}") from e

                except TelegramError as e:
                    logger.error(f"Ошибка Telegram API: {e}")
                    raise TelegramMessageError(f"Ошибка Telegram API: {e}") from e

            raise TelegramMessageError(
                f"Операция не удалась после {max_retries + 1} попыток. Последняя ошибка: {last_exception}"
            )

        return wrapper
    return decorator


def _map_bad_request(error: BadRequest) -> TelegramMessageError:
    error_message = str(error).lower()
    if "chat not found" in error_message:
        logger.warning(f"Чат не найден: {error}")
        return ChatNotFoundError(f"Чат не найден: {error}")
    if "message is too long" in error_message:
        logger.warning(f"Сообщение слишком длинное: {error}")
        return MessageTooLongError("Сообщение слишком длинное для Telegram")
    logger.error(f"Ошибка запроса Telegram API: {error}")
    return TelegramMessageError(f"Ошибка запроса: {error}")


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."


def build_chat_permissions(can_talk: bool) -> ChatPermissions:
    return ChatPermissions(
        can_send_messages=can_talk,
        can_send_audios=can_talk,
        can_send_documents=can_talk,
        can_send_photos=can_talk,
        can_send_videos=can_talk,
        can_send_video_notes=can_talk,
        can_send_voice_notes=can_talk,
        can_send_polls=can_talk,
        can_send_other_messages=can_talk,
        can_add_web_page_previews=can_talk,
    )


class TelegramDispatchSink:
    """Исходящие побочные эффекты викторины в группу и канал"""

    def __init__(self, bot: Bot, app_config: 'AppConfig'):
        self.bot = bot
        self.app_config = app_config

    @property
    def group_id(self) -> Union[int, str]:
        if self.app_config.quiz_group_id is None:
            raise ChatNotFoundError("QUIZ_GROUP_ID не задан")
        return self.app_config.quiz_group_id

    @safe_telegram_call(max_retries=0)
    async def send_poll(self, question: Question, index: int, total: int, open_seconds: int) -> str:
        """Отправляет вопрос как quiz-опрос. Возвращает poll_id."""
        poll_text = _truncate(f"Q{index + 1}. {question.text}", 300)
        sent_poll_msg: Message = await self.bot.send_poll(
            chat_id=self.group_id,
            question=poll_text,
            options=[_truncate(opt, 100) for opt in question.options],
            type=Poll.QUIZ,
            correct_option_id=question.correct_index,
            is_anonymous=False,
            open_period=open_seconds,
        )
        if not sent_poll_msg or not sent_poll_msg.poll:
            raise TelegramMessageError("Сообщение с опросом не содержит опрос")
        logger.debug(f"Опрос {sent_poll_msg.poll.id} отправлен (вопрос {index + 1}/{total}).")
        return sent_poll_msg.poll.id

    @safe_telegram_call(max_retries=2)
    async def announce(self, text: str) -> None:
        await self.bot.send_message(chat_id=self.group_id, text=_truncate(text, MAX_MESSAGE_LENGTH))

    @safe_telegram_call(max_retries=2)
    async def set_audience_muted(self, muted: bool) -> None:
        await self.bot.set_chat_permissions(
            chat_id=self.group_id,
            permissions=build_chat_permissions(can_talk=not muted),
        )
        logger.info(f"Группа {self.group_id}: {'закрыта для сообщений' if muted else 'открыта для сообщений'}.")

    @safe_telegram_call(max_retries=2)
    async def send_notice(self, session_key: str, starts_in_seconds: int) -> None:
        """Объявление о скором старте в канал (или в группу, если канал не задан)"""
        minutes = max(1, round(starts_in_seconds / 60))
        text = f"🚨 Quiz Alert\n📘 {session_key}\n⏳ Starts in {minutes} min"
        reply_markup = None
        if self.app_config.group_invite_link:
            reply_markup = InlineKeyboardMarkup([[
                InlineKeyboardButton("🚀 Join Quiz Group", url=self.app_config.group_invite_link)
            ]])
        target_chat = self.app_config.quiz_channel_id or self.group_id
        await self.bot.send_message(chat_id=target_chat, text=text, reply_markup=reply_markup)


def format_error_message(error: Exception, context: str = "") -> str:
    """Форматирует сообщение об ошибке для логов"""
    prefix = f"{context}: " if context else ""
    if isinstance(error, asyncio.TimeoutError):
        return f"{prefix}превышено время ожидания"
    if isinstance(error, UserBlockedError):
        return f"{prefix}бот заблокирован или не имеет прав"
    if isinstance(error, ChatNotFoundError):
        return f"{prefix}чат не найден"
    if isinstance(error, TelegramMessageError):
        return f"{prefix}ошибка Telegram: {error}"
    return f"{prefix}{type(error).__name__}: {error}"


async def bounded_call(description: str, call: Awaitable[Any], timeout: float) -> Any:
    """
    Выполняет побочный эффект с ограничением по времени.

    Ошибка или таймаут логируются и считаются временными: возвращается None.
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error(format_error_message(e, description))
    except Exception as e:
        logger.error(format_error_message(e, description), exc_info=True)
    return None


# Экспортируем основные функции
__all__ = [
    'safe_telegram_call',
    'bounded_call',
    'build_chat_permissions',
    'format_error_message',
    'TelegramDispatchSink',
    'TelegramMessageError',
    'MessageTooLongError',
    'UserBlockedError',
    'ChatNotFoundError'
]
