"""
Modules package for Scheduled Quiz Bot

This package contains logging setup, Telegram helpers, scores and submission parsing.
"""

from .logger_config import get_logger, setup_logging
from .bot_commands_setup import setup_bot_commands
# score_manager, telegram_utils и submission_parser импортируются напрямую:
# они зависят от handlers.quiz.quiz_types

__all__ = [
    'get_logger',
    'setup_logging',
    'setup_bot_commands'
]
