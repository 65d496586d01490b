"""
Ядро запланированных викторин
Типы, валидация, движок сессии, сканер расписания и команды администратора
"""

from .quiz_types import (
    Question, ScheduleDescriptor, ScheduleFlags,
    LiveSession, AnswerEvent, EngineState, Leaderboard
)
from .quiz_validator import QuizValidator

# quiz_engine, quiz_scheduler и quiz_commands импортируются напрямую из модулей:
# они зависят от modules.*, который сам импортирует quiz_types

__all__ = [
    'Question', 'ScheduleDescriptor', 'ScheduleFlags',
    'LiveSession', 'AnswerEvent', 'EngineState', 'Leaderboard',
    'QuizValidator'
]
