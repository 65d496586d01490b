"""
Модуль для установки команд бота в Telegram Bot API.
Общие команды видны всем, административные только в личке и администраторам чатов.
"""

import logging
from typing import List, TYPE_CHECKING

from telegram import (
    BotCommand,
    BotCommandScopeAllPrivateChats,
    BotCommandScopeAllChatAdministrators,
)
from telegram.error import TelegramError

if TYPE_CHECKING:
    from telegram.ext import Application
    from app_config import AppConfig

logger = logging.getLogger(__name__)


def build_public_commands(app_config: "AppConfig") -> List[BotCommand]:
    return [
        BotCommand(app_config.commands.start, "🚀 Start the bot"),
        BotCommand(app_config.commands.top, "🏆 Overall rating"),
    ]


def build_admin_commands(app_config: "AppConfig") -> List[BotCommand]:
    return build_public_commands(app_config) + [
        BotCommand(app_config.commands.admin, "🛠 Admin commands"),
        BotCommand(app_config.commands.status, "📅 Quiz and schedule status"),
        BotCommand(app_config.commands.stop, "🛑 Stop the running quiz"),
        BotCommand(app_config.commands.delete_schedule, "🗑️ Cancel a scheduled quiz"),
    ]


async def setup_bot_commands(application: "Application", app_config: "AppConfig") -> None:
    """
    Устанавливает меню команд бота.
    Вызывается из post_init, до начала обработки обновлений.
    """
    public_commands = build_public_commands(app_config)
    admin_commands = build_admin_commands(app_config)
    try:
        await application.bot.set_my_commands(public_commands)
        await application.bot.set_my_commands(admin_commands, scope=BotCommandScopeAllPrivateChats())
        await application.bot.set_my_commands(admin_commands, scope=BotCommandScopeAllChatAdministrators())
        logger.info(f"✅ Команды бота установлены ({len(public_commands)} общих, {len(admin_commands)} админских).")
    except TelegramError as e_set_cmd:
        logger.error(f"❌ Не удалось установить команды бота: {e_set_cmd}", exc_info=True)
