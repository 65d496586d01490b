#!/usr/bin/env python3
"""
Централизованная конфигурация логирования для бота викторин

Включает:
- Цветной вывод в консоль
- Файлы логов с суточной ротацией (общий и только ошибки)
- Хелперы для событий викторины и действий администраторов
"""

import copy
import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-28s | %(funcName)-20s | %(lineno)-4d | %(message)s'


class ColoredFormatter(logging.Formatter):
    """Форматтер с цветным выводом для консоли"""

    # ANSI цветовые коды
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        # Копия записи: остальные обработчики должны видеть уровень без ANSI-кодов
        colored_record = copy.copy(record)
        color = self.COLORS.get(record.levelname)
        if color:
            colored_record.levelname = f"{color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(colored_record)


class StructuredFormatter(logging.Formatter):
    """Форматтер для файлов логов с контекстом викторины"""

    CONTEXT_FIELDS = ('event_type', 'quiz_id', 'chat_id', 'user_id')

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).isoformat(timespec='seconds')
        context = " ".join(
            f"{name}={getattr(record, name)}"
            for name in self.CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        )
        line = (
            f"{timestamp} | {record.levelname:8} | {record.name:28} | "
            f"{record.funcName:20} | {record.lineno:4} | {record.getMessage()}"
        )
        if context:
            line = f"{line} | {context}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    log_level: str = "INFO",
    log_dir: Union[str, Path] = "logs",
    backup_count: int = 3,
    console_output: bool = True,
    file_output: bool = True
) -> None:
    """
    Настраивает логирование для всего процесса

    Args:
        log_level: Уровень логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Директория для логов
        backup_count: Сколько суточных файлов хранить
        console_output: Включить вывод в консоль
        file_output: Включить вывод в файл
    """
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt='%H:%M:%S'))
        root_logger.addHandler(console_handler)

    log_path = Path(log_dir)
    if file_output:
        log_path.mkdir(parents=True, exist_ok=True)
        file_formatter = StructuredFormatter()

        file_handler = logging.handlers.TimedRotatingFileHandler(
            log_path / "bot.log",
            when='midnight',
            interval=1,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

        error_handler = logging.handlers.TimedRotatingFileHandler(
            log_path / "errors.log",
            when='midnight',
            interval=1,
            backupCount=backup_count,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        root_logger.addHandler(error_handler)

    # Сторонние библиотеки слишком разговорчивы на INFO
    logging.getLogger('telegram').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Логирование настроено: уровень={logging.getLevelName(level)}, консоль={console_output}, файл={file_output}")
    if file_output:
        logger.info(f"Директория логов: {log_path.absolute()}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    user_id: Optional[int] = None,
    chat_id: Optional[Union[int, str]] = None,
    quiz_id: Optional[str] = None,
    **kwargs
) -> None:
    """
    Логирует сообщение с дополнительным контекстом в extra

    Args:
        logger: Логгер для записи
        level: Уровень логирования
        message: Сообщение
        user_id: ID пользователя (опционально)
        chat_id: ID чата (опционально)
        quiz_id: Ключ сессии викторины (опционально)
        **kwargs: Дополнительные поля контекста
    """
    extra = {}
    if user_id is not None:
        extra['user_id'] = user_id
    if chat_id is not None:
        extra['chat_id'] = chat_id
    if quiz_id is not None:
        extra['quiz_id'] = quiz_id
    extra.update(kwargs)

    log_method = getattr(logger, level.lower())
    if extra:
        log_method(message, extra=extra)
    else:
        log_method(message)


def log_quiz_event(
    logger: logging.Logger,
    event_type: str,
    message: str,
    chat_id: Optional[Union[int, str]] = None,
    quiz_id: Optional[str] = None,
    level: str = 'info',
    **kwargs
) -> None:
    """Событие жизненного цикла викторины: start, finish, stop, skip, expired"""
    log_with_context(
        logger=logger,
        level=level,
        message=f"[QUIZ:{event_type.upper()}] {message}",
        chat_id=chat_id,
        quiz_id=quiz_id,
        event_type=event_type,
        **kwargs
    )


def log_user_action(
    logger: logging.Logger,
    action: str,
    message: str,
    user_id: Optional[int],
    chat_id: Optional[int] = None,
    **kwargs
) -> None:
    """Действие пользователя: command, submission"""
    log_with_context(
        logger=logger,
        level='info',
        message=f"[USER:{action.upper()}] {message}",
        user_id=user_id,
        chat_id=chat_id,
        action_type=action,
        **kwargs
    )


__all__ = [
    'setup_logging',
    'get_logger',
    'log_with_context',
    'log_quiz_event',
    'log_user_action',
    'ColoredFormatter',
    'StructuredFormatter'
]
