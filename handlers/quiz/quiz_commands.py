"""
Обработчики команд викторин
Команды администратора (/status, /stop, /deleteschedule) и прием заявок с вопросами в личке
"""

from __future__ import annotations
import logging
from typing import List, TYPE_CHECKING

import pytz
from telegram import Update
from telegram.ext import BaseHandler, CommandHandler, ContextTypes, MessageHandler, filters

from .quiz_types import ScheduleDescriptor
from modules.logger_config import log_user_action
from modules.submission_parser import SubmissionParser
from modules.telegram_utils import bounded_call
from utils import format_seconds_to_human_readable_time, get_current_utc_time

if TYPE_CHECKING:
    from app_config import AppConfig
    from state import BotState
    from storage import SessionCatalog, ScheduleRegistry
    from modules.score_manager import ScoreManager
    from modules.telegram_utils import TelegramDispatchSink
    from .quiz_engine import SessionEngine

logger = logging.getLogger(__name__)


class QuizCommands:
    """Обработчики команд викторин"""

    def __init__(
        self,
        app_config: 'AppConfig',
        state: 'BotState',
        catalog: 'SessionCatalog',
        registry: 'ScheduleRegistry',
        engine: 'SessionEngine',
        sink: 'TelegramDispatchSink',
        score_manager: 'ScoreManager',
    ):
        self.app_config = app_config
        self.state = state
        self.catalog = catalog
        self.registry = registry
        self.engine = engine
        self.sink = sink
        self.score_manager = score_manager
        self.parser = SubmissionParser(app_config.timezone_name, app_config.min_options, app_config.max_options)
        self.timezone = pytz.timezone(app_config.timezone_name)

    def _is_admin_update(self, update: Update) -> bool:
        user = update.effective_user
        if not user or not self.app_config.is_admin(user.id):
            logger.debug(f"Команда от не-администратора {user.id if user else None} проигнорирована.")
            return False
        return True

    async def start_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        await update.message.reply_text("👋 Quiz Bot Active")

    async def admin_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not self._is_admin_update(update):
            return
        cmds = self.app_config.commands
        await update.message.reply_text(
            "🛠 Admin Commands\n"
            f"/{cmds.status} - quiz and schedule status\n"
            f"/{cmds.stop} - stop the running quiz\n"
            f"/{cmds.delete_schedule} SESSION_KEY - cancel a scheduled quiz\n"
            f"/{cmds.top} - overall rating\n\n"
            "Send questions here in a private message:\n"
            "DATE: YYYY-MM-DD\nSESSION: name\nTIME: HH:MM\n\n"
            "Q1. Question\nA) ...\nB) ...\nC) ...\nD) ...\nANS: B"
        )

    async def status_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not self._is_admin_update(update):
            return
        await update.message.reply_text(self.format_status())

    def format_status(self) -> str:
        status = self.engine.get_status()
        lines = [f"⚙️ Engine: {status['state']}"]
        if "session_key" in status:
            lines.append(f"📘 Live: {status['session_key']}")
            lines.append(f"❓ Sent: {status['dispatched']}/{status['total']}")
            lines.append(f"👥 Participants: {status['participants']}")
            if status.get("started_at"):
                elapsed = (get_current_utc_time() - status["started_at"]).total_seconds()
                lines.append(f"⏱ Running for {format_seconds_to_human_readable_time(elapsed)}")

        descriptors = sorted(self.registry.all(), key=lambda d: d.trigger_at)
        lines.append("")
        if not descriptors:
            lines.append("📅 No scheduled quizzes.")
        else:
            lines.append("📅 Schedule:")
            for descriptor in descriptors:
                lines.append(self._format_descriptor(descriptor))
        return "\n".join(lines)

    def _format_descriptor(self, descriptor: ScheduleDescriptor) -> str:
        local_time = descriptor.trigger_at.astimezone(self.timezone)
        questions = self.catalog.get_questions(descriptor.session_key)
        count = len(questions) if questions else 0
        if descriptor.flags.expired:
            marker = "⌛ expired"
        elif descriptor.flags.started:
            marker = "▶️ started"
        elif descriptor.flags.notice_sent:
            marker = "📣 notice sent"
        else:
            marker = "🕒 pending"
        return f"• {descriptor.session_key} — {local_time:%Y-%m-%d %H:%M %Z} — {count} q — {marker}"

    async def stop_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not self._is_admin_update(update):
            return
        log_user_action(logger, "command", "/stop", update.effective_user.id, update.effective_chat.id if update.effective_chat else None)

        stopped = await self.engine.stop(force=True)
        if not stopped:
            await update.message.reply_text("❌ No active quiz")
            return
        await bounded_call(
            "объявление об остановке",
            self.sink.announce("⛔ Quiz stopped by admin"),
            self.app_config.send_timeout_seconds,
        )
        if update.effective_chat and update.effective_chat.id != self.app_config.quiz_group_id:
            await update.message.reply_text("✅ Quiz stopped")

    async def delete_schedule_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not self._is_admin_update(update):
            return
        session_key = " ".join(context.args or []).strip()
        if not session_key:
            await update.message.reply_text(f"Usage: /{self.app_config.commands.delete_schedule} SESSION_KEY")
            return
        log_user_action(logger, "command", f"/deleteschedule {session_key}", update.effective_user.id)

        async with self.state.storage_lock:
            # Сканер запускает сессии под этой же блокировкой
            live = self.engine.live_session
            is_live = live is not None and live.session_key == session_key
            if is_live:
                removed_schedule = removed_questions = False
            else:
                removed_schedule = self.registry.remove(session_key)
                removed_questions = self.catalog.delete(session_key)
                if removed_schedule:
                    self.registry.persist()
                if removed_questions:
                    self.catalog.persist()

        if is_live:
            await update.message.reply_text(
                f"▶️ {session_key} is running now. Use /{self.app_config.commands.stop} first."
            )
            return
        if removed_schedule or removed_questions:
            await update.message.reply_text(f"✅ Deleted: {session_key}")
        else:
            await update.message.reply_text(f"❓ Not found: {session_key}")

    async def top_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        await update.message.reply_text(self.score_manager.format_lifetime_rating(self.app_config.leaderboard_limit))

    async def submission_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Заявка администратора с вопросами (только личный чат)"""
        message = update.message
        if not message or not message.text or not self._is_admin_update(update):
            return
        if not self.parser.looks_like_submission(message.text):
            await message.reply_text("ℹ️ Submission must start with DATE: YYYY-MM-DD")
            return

        result = self.parser.parse(message.text)
        log_user_action(
            logger, "submission", f"Заявка: сессий {len(result.sessions)}, ошибок {len(result.errors)}",
            update.effective_user.id,
        )

        saved_lines: List[str] = []
        errors = list(result.errors)
        async with self.state.storage_lock:
            for parsed in result.sessions:
                existing = self.registry.get(parsed.session_key)
                if existing is not None and existing.flags.started:
                    errors.append(f"{parsed.session_key}: already started, not replaced")
                    continue
                self.catalog.put(parsed.session_key, parsed.questions)
                self.registry.add(ScheduleDescriptor(session_key=parsed.session_key, trigger_at=parsed.trigger_at))
                saved_lines.append(
                    f"📘 {parsed.session_key} — {len(parsed.questions)} q at {parsed.trigger_at:%Y-%m-%d %H:%M %Z}"
                )
            if saved_lines:
                self.catalog.persist()
                self.registry.persist()

        reply = self._format_submission_reply(saved_lines, errors)
        await message.reply_text(reply)

    @staticmethod
    def _format_submission_reply(saved_lines: List[str], errors: List[str]) -> str:
        lines: List[str] = []
        if saved_lines:
            lines.append("✅ Quiz saved")
            lines.extend(saved_lines)
        else:
            lines.append("❌ Nothing saved")
        if errors:
            lines.append("")
            lines.append("⚠️ Problems:")
            lines.extend(f"• {error}" for error in errors)
        return "\n".join(lines)

    def get_handlers(self) -> List[BaseHandler]:
        cmds = self.app_config.commands
        return [
            CommandHandler(cmds.start, self.start_command),
            CommandHandler(cmds.admin, self.admin_command),
            CommandHandler(cmds.status, self.status_command),
            CommandHandler(cmds.stop, self.stop_command),
            CommandHandler(cmds.delete_schedule, self.delete_schedule_command),
            CommandHandler(cmds.top, self.top_command),
            MessageHandler(filters.ChatType.PRIVATE & filters.TEXT & ~filters.COMMAND, self.submission_message),
        ]
