#poll_answer_handler.py
import logging
from typing import Optional, TYPE_CHECKING

from telegram import Update, PollAnswer, User as TelegramUser
from telegram.ext import ContextTypes, PollAnswerHandler as PTBPollAnswerHandler

from handlers.quiz.quiz_types import AnswerEvent
from utils import get_username_or_firstname

if TYPE_CHECKING:
    from handlers.quiz.quiz_engine import SessionEngine

logger = logging.getLogger(__name__)


def to_answer_event(poll_answer: PollAnswer) -> Optional[AnswerEvent]:
    """Преобразует PollAnswer в AnswerEvent. Ответы от имени чата (без user) не учитываются."""
    user: Optional[TelegramUser] = poll_answer.user
    if user is None:
        return None
    # В quiz-опросе ровно один вариант; пустой список означает отзыв голоса
    chosen = poll_answer.option_ids[0] if poll_answer.option_ids else None
    return AnswerEvent(
        poll_id=poll_answer.poll_id,
        user_id=user.id,
        display_name=get_username_or_firstname(user),
        chosen_option_index=chosen,
    )


class CustomPollAnswerHandler:
    def __init__(self, engine: 'SessionEngine'):
        self.engine = engine

    async def handle_poll_answer(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.poll_answer:
            logger.debug("handle_poll_answer: update.poll_answer is None, игнорируется.")
            return

        event = to_answer_event(update.poll_answer)
        if event is None:
            logger.debug(f"Анонимный ответ на опрос {update.poll_answer.poll_id} проигнорирован.")
            return

        await self.engine.handle_answer(event)

    def get_handler(self) -> PTBPollAnswerHandler:
        return PTBPollAnswerHandler(self.handle_poll_answer)
