"""
Валидация данных для запланированных викторин
Содержит проверки вопросов и ключей сессий
"""

from __future__ import annotations
import logging
import re
from typing import List, Optional, Sequence

from .quiz_types import Question

logger = logging.getLogger(__name__)


class QuizValidator:
    """Валидатор данных викторин"""

    # Ограничения Telegram для опросов
    MAX_QUESTION_TEXT_LENGTH = 300
    MAX_OPTION_TEXT_LENGTH = 100

    # Диапазон вариантов ответа по умолчанию
    DEFAULT_MIN_OPTIONS = 2
    DEFAULT_MAX_OPTIONS = 4

    SESSION_KEY_PATTERN = re.compile(r'^[\w\-.: ]{1,100}$')

    @classmethod
    def validate_question_fields(
        cls,
        text: Optional[str],
        options: Optional[Sequence[str]],
        correct_index: Optional[int],
        min_options: int = DEFAULT_MIN_OPTIONS,
        max_options: int = DEFAULT_MAX_OPTIONS,
    ) -> List[str]:
        """Валидировать поля вопроса до создания Question"""
        errors = []

        # Валидация текста вопроса
        if not text or not isinstance(text, str) or not text.strip():
            errors.append("Текст вопроса не может быть пустым")
        elif len(text) > cls.MAX_QUESTION_TEXT_LENGTH:
            errors.append(f"Текст вопроса слишком длинный (макс. {cls.MAX_QUESTION_TEXT_LENGTH} символов)")

        # Валидация вариантов ответа
        if not options or not isinstance(options, (list, tuple)):
            errors.append("Варианты ответа обязательны")
        elif len(options) < min_options:
            errors.append(f"Минимум {min_options} варианта ответа")
        elif len(options) > max_options:
            errors.append(f"Максимум {max_options} вариантов ответа")
        else:
            for i, option in enumerate(options):
                if not isinstance(option, str) or not option.strip():
                    errors.append(f"Вариант {i+1} не может быть пустым")
                elif len(option) > cls.MAX_OPTION_TEXT_LENGTH:
                    errors.append(f"Вариант {i+1} слишком длинный (макс. {cls.MAX_OPTION_TEXT_LENGTH} символов)")

        # Валидация правильного ответа
        if not isinstance(correct_index, int) or isinstance(correct_index, bool):
            errors.append("Индекс правильного ответа должен быть целым числом")
        elif correct_index < 0:
            errors.append("Индекс правильного ответа не может быть отрицательным")
        elif options and correct_index >= len(options):
            errors.append("Индекс правильного ответа выходит за пределы вариантов")

        return errors

    @classmethod
    def validate_question(
        cls,
        question: Question,
        min_options: int = DEFAULT_MIN_OPTIONS,
        max_options: int = DEFAULT_MAX_OPTIONS,
    ) -> List[str]:
        return cls.validate_question_fields(
            question.text, list(question.options), question.correct_index,
            min_options=min_options, max_options=max_options,
        )

    @classmethod
    def build_question(
        cls,
        text: Optional[str],
        options: Optional[Sequence[str]],
        correct_index: Optional[int],
        min_options: int = DEFAULT_MIN_OPTIONS,
        max_options: int = DEFAULT_MAX_OPTIONS,
    ) -> Optional[Question]:
        """Создать Question, если поля валидны, иначе вернуть None"""
        errors = cls.validate_question_fields(text, options, correct_index, min_options, max_options)
        if errors:
            logger.debug(f"Вопрос отклонен ({'; '.join(errors)}): {str(text)[:50]}")
            return None
        return Question(
            text=text.strip(),
            options=tuple(opt.strip() for opt in options),
            correct_index=correct_index,
        )

    @classmethod
    def validate_session_key(cls, session_key: str) -> List[str]:
        errors = []
        if not session_key or not isinstance(session_key, str):
            errors.append("Ключ сессии обязателен")
        elif not cls.SESSION_KEY_PATTERN.match(session_key):
            errors.append("Ключ сессии содержит недопустимые символы")
        return errors
