#bot.py
import asyncio
import logging
from typing import Optional

from telegram import Update
from telegram.ext import Application, ContextTypes

# Модули приложения
from app_config import AppConfig
from state import BotState
from data_manager import DataManager
from storage import SessionCatalog, ScheduleRegistry

# Менеджеры логики
from modules.logger_config import setup_logging
from modules.score_manager import ScoreManager
from modules.telegram_utils import TelegramDispatchSink
from modules.bot_commands_setup import setup_bot_commands

# Ядро викторин и обработчики
from handlers.quiz.quiz_engine import SessionEngine
from handlers.quiz.quiz_scheduler import QuizScheduler
from handlers.quiz.quiz_commands import QuizCommands
from handlers.poll_answer_handler import CustomPollAnswerHandler

logger = logging.getLogger(__name__)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Исключение при обработке обновления:", exc_info=context.error)


def build_application(app_config: AppConfig, bot_state: BotState, data_manager: DataManager) -> Application:
    """Создает Application и связывает ядро викторин с обработчиками"""
    application = (
        Application.builder()
        .token(app_config.bot_token)
        .concurrent_updates(True)
        .read_timeout(30)
        .connect_timeout(30)
        .write_timeout(30)
        .pool_timeout(20)
        .build()
    )
    logger.info("Объект Application создан.")
    bot_state.application = application

    if application.job_queue is None:
        raise RuntimeError("JobQueue недоступен: установите python-telegram-bot[job-queue]")

    catalog = SessionCatalog(state=bot_state, data_manager=data_manager)
    registry = ScheduleRegistry(state=bot_state, data_manager=data_manager)
    score_manager = ScoreManager(app_config=app_config, state=bot_state, data_manager=data_manager)
    sink = TelegramDispatchSink(bot=application.bot, app_config=app_config)

    engine = SessionEngine(
        app_config=app_config, catalog=catalog, registry=registry, state=bot_state,
        sink=sink, job_queue=application.job_queue, score_manager=score_manager,
    )
    scheduler = QuizScheduler(
        app_config=app_config, registry=registry, engine=engine, state=bot_state,
        sink=sink, job_queue=application.job_queue,
    )
    quiz_commands = QuizCommands(
        app_config=app_config, state=bot_state, catalog=catalog, registry=registry,
        engine=engine, sink=sink, score_manager=score_manager,
    )
    poll_answer_handler = CustomPollAnswerHandler(engine=engine)

    application.bot_data['bot_state'] = bot_state
    application.bot_data['app_config'] = app_config
    application.bot_data['session_engine'] = engine
    application.bot_data['quiz_scheduler'] = scheduler

    logger.debug("Регистрация обработчиков PTB...")
    application.add_handlers(quiz_commands.get_handlers())
    application.add_handler(poll_answer_handler.get_handler())
    application.add_error_handler(error_handler)
    logger.debug("Все обработчики PTB зарегистрированы.")
    return application


async def main() -> None:
    """Main entry point for the Scheduled Quiz Bot"""
    app_config = AppConfig()
    setup_logging(log_level=app_config.log_level_str, log_dir=app_config.paths.logs_dir)
    logger.info(f"Запуск бота... (режим: {'TESTING' if app_config.debug_mode else 'PRODUCTION'})")

    if not app_config.bot_token:
        logger.critical("Токен бота не найден. Укажите BOT_TOKEN в .env.")
        return

    application: Optional[Application] = None
    bot_state = BotState(app_config=app_config)
    data_manager = DataManager(app_config=app_config, state=bot_state)
    data_manager.load_all_data()
    bot_state.data_manager = data_manager

    try:
        application = build_application(app_config, bot_state, data_manager)

        await application.initialize()
        await setup_bot_commands(application, app_config)

        if not application.updater:
            logger.error("Updater не был создан. Бот не может быть запущен.")
            return

        await application.updater.start_polling(allowed_updates=Update.ALL_TYPES)
        await application.start()
        application.bot_data['quiz_scheduler'].start()

        logger.info("Бот запущен и готов принимать обновления.")
        while application.updater.running:
            await asyncio.sleep(1)
        logger.info("Updater остановлен (внутри main).")

    except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
        logger.info("Программа прервана (в main).")
    except Exception as e:
        logger.critical(f"Критическая ошибка в функции main: {e}", exc_info=True)
    finally:
        if application:
            engine: Optional[SessionEngine] = application.bot_data.get('session_engine')
            if engine is not None and not engine.is_idle:
                logger.info("Остановка активной викторины перед завершением...")
                await engine.stop(force=True)

            if application.updater and application.updater.running:
                await application.updater.stop()
            if application.running:
                await application.stop()
            await application.shutdown()
            logger.info("Application остановлен.")

        logger.info("Сохранение данных DataManager перед завершением...")
        if not data_manager.save_all_data():
            logger.error("Не все данные удалось сохранить при завершении.")
