# modules/submission_parser.py
"""
Разбор заявок администратора с вопросами викторин.

Формат сообщения:

    DATE: 2026-10-20
    SESSION: Morning
    TIME: 09:30

    Q1. Столица Франции?
    A) Берлин
    B) Париж
    C) Рим
    D) Мадрид
    ANS: B

Каждый блок DATE/SESSION дает ключ сессии "{date}_{session}" и время запуска
в часовом поясе бота. Вопросы отделяются пустой строкой.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import pytz

from handlers.quiz.quiz_types import Question
from handlers.quiz.quiz_validator import QuizValidator

logger = logging.getLogger(__name__)

QUESTION_LINE_RE = re.compile(r"^Q\d*\s*[.:)]\s*(.*)$")
OPTION_LINE_RE = re.compile(r"^([A-Z])\)\s*(.*)$")
ANSWER_LINE_RE = re.compile(r"^ANS\s*:\s*([A-Za-z])\b")
BLOCK_SEPARATOR_RE = re.compile(r"\n\s*\n")


@dataclass
class ParsedSession:
    session_key: str
    trigger_at: datetime
    questions: List[Question]
    skipped: int = 0


@dataclass
class SubmissionResult:
    sessions: List[ParsedSession] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.sessions


class SubmissionParser:
    def __init__(self, timezone_name: str, min_options: int = 2, max_options: int = 4):
        self.timezone = pytz.timezone(timezone_name)
        self.min_options = min_options
        self.max_options = max_options

    def looks_like_submission(self, text: Optional[str]) -> bool:
        return bool(text) and any(line.strip().startswith("DATE:") for line in text.splitlines())

    def parse(self, text: str) -> SubmissionResult:
        result = SubmissionResult()
        date_str: Optional[str] = None
        session_name: Optional[str] = None
        time_str: Optional[str] = None
        buffer: List[str] = []

        def flush() -> None:
            nonlocal buffer
            if date_str and session_name and time_str and any(line for line in buffer):
                parsed = self._build_session(date_str, session_name, time_str, buffer, result.errors)
                if parsed:
                    result.sessions.append(parsed)
            elif any(line for line in buffer):
                result.errors.append("Block without DATE / SESSION / TIME ignored")
            buffer = []

        for raw_line in text.splitlines():
            line = raw_line.strip()
            if line.startswith("DATE:"):
                flush()
                date_str = line[len("DATE:"):].strip()
            elif line.startswith("SESSION:"):
                flush()
                session_name = line[len("SESSION:"):].strip()
            elif line.startswith("TIME:"):
                time_str = line[len("TIME:"):].strip()
            else:
                buffer.append(line)
        flush()

        logger.info(
            f"Разобрана заявка: сессий {len(result.sessions)}, "
            f"вопросов {sum(len(s.questions) for s in result.sessions)}, ошибок {len(result.errors)}."
        )
        return result

    def _build_session(
        self,
        date_str: str,
        session_name: str,
        time_str: str,
        lines: List[str],
        errors: List[str],
    ) -> Optional[ParsedSession]:
        session_key = f"{date_str}_{session_name}"
        if QuizValidator.validate_session_key(session_key):
            errors.append(f"{session_key}: invalid session name")
            return None

        try:
            naive_moment = datetime.strptime(f"{date_str} {time_str}", "%Y-%m-%d %H:%M")
        except ValueError:
            errors.append(f"{session_key}: expected DATE: YYYY-MM-DD and TIME: HH:MM")
            return None
        trigger_at = self.timezone.localize(naive_moment)

        questions: List[Question] = []
        skipped = 0
        for block in BLOCK_SEPARATOR_RE.split("\n".join(lines)):
            if not block.strip():
                continue
            question = self._parse_question_block(block)
            if question is None:
                skipped += 1
                continue
            questions.append(question)

        if not questions:
            errors.append(f"{session_key}: no valid questions")
            return None
        if skipped:
            errors.append(f"{session_key}: {skipped} invalid question(s) skipped")
        return ParsedSession(session_key=session_key, trigger_at=trigger_at, questions=questions, skipped=skipped)

    def _parse_question_block(self, block: str) -> Optional[Question]:
        text_lines: List[str] = []
        options: List[str] = []
        answer_letter: Optional[str] = None

        for raw_line in block.split("\n"):
            line = raw_line.strip()
            if not line:
                continue
            answer_match = ANSWER_LINE_RE.match(line)
            if answer_match:
                answer_letter = answer_match.group(1).upper()
                continue
            option_match = OPTION_LINE_RE.match(line)
            if option_match:
                expected_letter = chr(ord("A") + len(options))
                if option_match.group(1) != expected_letter:
                    logger.debug(f"Вариант '{line}' вне порядка (ожидался {expected_letter}).")
                    return None
                options.append(option_match.group(2))
                continue
            question_match = QUESTION_LINE_RE.match(line)
            if question_match and not text_lines:
                text_lines.append(question_match.group(1))
            elif text_lines and not options:
                # Продолжение многострочного вопроса
                text_lines.append(line)

        if not text_lines or answer_letter is None:
            return None
        correct_index = ord(answer_letter) - ord("A")
        return QuizValidator.build_question(
            "\n".join(text_lines), options, correct_index,
            min_options=self.min_options, max_options=self.max_options,
        )
