"""
Типы данных для запланированных викторин
Содержит все структуры данных, используемые ядром викторин
"""

from __future__ import annotations
from typing import Dict, List, Optional, Any, Set
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class EngineState(Enum):
    """Состояния движка викторин"""
    IDLE = "idle"
    ACTIVE = "active"
    DRAINING = "draining"


@dataclass(frozen=True)
class Question:
    """Вопрос викторины (неизменяем после разбора)"""
    text: str
    options: tuple
    correct_index: int

    def __post_init__(self):
        """Валидация после создания"""
        if not self.text.strip():
            raise ValueError("Текст вопроса не может быть пустым")
        if len(self.options) < 2:
            raise ValueError("Вопрос должен иметь минимум 2 варианта ответа")
        if self.correct_index < 0 or self.correct_index >= len(self.options):
            raise ValueError("Индекс правильного ответа выходит за пределы вариантов")

    def to_dict(self) -> Dict[str, Any]:
        return {"question": self.text, "options": list(self.options), "correct": self.correct_index}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        return cls(
            text=data["question"],
            options=tuple(data["options"]),
            correct_index=int(data["correct"]),
        )


@dataclass
class ScheduleFlags:
    """Флаги переходов запланированной викторины"""
    notice_sent: bool = False
    started: bool = False
    discussion_opened: bool = False
    expired: bool = False


@dataclass
class ScheduleDescriptor:
    """Запись расписания: ключ сессии, время запуска и флаги"""
    session_key: str
    trigger_at: datetime
    flags: ScheduleFlags = field(default_factory=ScheduleFlags)

    @property
    def is_pending(self) -> bool:
        return not self.flags.started and not self.flags.expired

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session_key,
            "trigger_at": self.trigger_at.isoformat(),
            "notice": self.flags.notice_sent,
            "started": self.flags.started,
            "discussion": self.flags.discussion_opened,
            "expired": self.flags.expired,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleDescriptor":
        trigger_at = datetime.fromisoformat(data["trigger_at"])
        if trigger_at.tzinfo is None:
            raise ValueError(f"trigger_at без часового пояса: {data['trigger_at']}")
        return cls(
            session_key=data["session"],
            trigger_at=trigger_at,
            flags=ScheduleFlags(
                notice_sent=bool(data.get("notice", False)),
                started=bool(data.get("started", False)),
                discussion_opened=bool(data.get("discussion", False)),
                expired=bool(data.get("expired", False)),
            ),
        )


@dataclass(frozen=True)
class OpenPoll:
    """Привязка отправленного опроса к вопросу"""
    correct_index: int
    question_index: int


@dataclass(frozen=True)
class AnswerEvent:
    """Ответ участника на опрос"""
    poll_id: str
    user_id: int
    display_name: str
    chosen_option_index: Optional[int]


@dataclass
class LiveSession:
    """Состояние текущей (единственной) викторины"""
    session_key: str
    questions: List[Question]
    generation: int
    question_index: int = 0
    open_polls: Dict[str, OpenPoll] = field(default_factory=dict)
    scores: Dict[int, int] = field(default_factory=dict)
    display_names: Dict[int, str] = field(default_factory=dict)
    answered: Dict[int, Set[int]] = field(default_factory=dict)
    pending_job: Optional[Any] = None
    started_at: Optional[datetime] = None
    # Рейтинг уже подсчитан, идет публикация и очистка
    finishing: bool = False

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def is_exhausted(self) -> bool:
        return self.question_index >= len(self.questions)

    def get_or_init_score(self, user_id: int) -> int:
        return self.scores.setdefault(user_id, 0)

    def get_or_init_answered(self, user_id: int) -> Set[int]:
        return self.answered.setdefault(user_id, set())


@dataclass(frozen=True)
class LeaderboardEntry:
    """Строка итогового рейтинга"""
    rank: int
    user_id: int
    display_name: str
    score: int
    total: int


@dataclass(frozen=True)
class Leaderboard:
    """Итоговый рейтинг викторины"""
    session_key: str
    total_questions: int
    entries: List[LeaderboardEntry]
    full_ranking: List[LeaderboardEntry]

    @property
    def is_empty(self) -> bool:
        """Никто не ответил ни на один вопрос"""
        return not self.full_ranking
