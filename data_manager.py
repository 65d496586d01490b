#data_manager.py
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Any, List, Optional, TYPE_CHECKING

from handlers.quiz.quiz_types import Question, ScheduleDescriptor
from handlers.quiz.quiz_validator import QuizValidator

if TYPE_CHECKING:
    from app_config import AppConfig
    from state import BotState

logger = logging.getLogger(__name__)


class DataManager:
    def __init__(self, app_config: 'AppConfig', state: 'BotState'):
        logger.debug("DataManager.__init__ НАЧАТ.")
        self.app_config = app_config
        self.paths_config = app_config.paths
        self.state = state

    def _read_json(self, file_path: Path, default: Any) -> Any:
        if not file_path.exists() or file_path.stat().st_size == 0:
            logger.info(f"{file_path} не найден или пуст. Используется пустое значение.")
            return default
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Ошибка декодирования JSON в {file_path}: {e}. Используется пустое значение.")
        except OSError as e:
            logger.error(f"Ошибка чтения {file_path}: {e}", exc_info=True)
        return default

    def _write_json(self, file_path: Path, data: Any) -> bool:
        """Пишет файл целиком через временный файл. Возвращает False при ошибке."""
        tmp_path: Optional[str] = None
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{file_path.name}.", dir=str(file_path.parent))
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, file_path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Ошибка сохранения {file_path}: {e}", exc_info=True)
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    logger.warning(f"Не удалось удалить временный файл {tmp_path}")
            return False

    def load_sessions(self) -> None:
        raw_data = self._read_json(self.paths_config.sessions_file, {})
        catalog: Dict[str, List[Question]] = {}
        if not isinstance(raw_data, dict):
            logger.error(f"{self.paths_config.sessions_file} должен содержать JSON объект (словарь сессий).")
            raw_data = {}

        skipped = 0
        for session_key, questions_list in raw_data.items():
            if not isinstance(questions_list, list):
                logger.warning(f"Сессия '{session_key}': ожидался список вопросов. Пропуск.")
                skipped += 1
                continue
            questions: List[Question] = []
            for i, q_data in enumerate(questions_list):
                if not isinstance(q_data, dict):
                    skipped += 1
                    continue
                question = QuizValidator.build_question(
                    q_data.get("question"), q_data.get("options"), q_data.get("correct"),
                    min_options=self.app_config.min_options, max_options=self.app_config.max_options,
                )
                if question is None:
                    logger.warning(f"Сессия '{session_key}': некорректный вопрос #{i+1} пропущен.")
                    skipped += 1
                    continue
                questions.append(question)
            catalog[session_key] = questions

        self.state.quiz_catalog = catalog
        total_questions = sum(len(q) for q in catalog.values())
        logger.info(f"Загружено {total_questions} вопросов в {len(catalog)} сессиях. Пропущено записей: {skipped}.")

    def save_sessions(self) -> bool:
        data_to_save = {
            key: [q.to_dict() for q in questions]
            for key, questions in self.state.quiz_catalog.items()
        }
        saved = self._write_json(self.paths_config.sessions_file, data_to_save)
        if saved:
            logger.debug(f"Каталог сессий сохранен ({len(data_to_save)} сессий).")
        return saved

    def load_schedule(self) -> None:
        raw_data = self._read_json(self.paths_config.schedule_file, [])
        schedules: List[ScheduleDescriptor] = []
        if not isinstance(raw_data, list):
            logger.error(f"{self.paths_config.schedule_file} должен содержать JSON массив.")
            raw_data = []

        seen_keys = set()
        for entry in raw_data:
            try:
                descriptor = ScheduleDescriptor.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Некорректная запись расписания пропущена ({e}): {entry}")
                continue
            if descriptor.session_key in seen_keys:
                logger.warning(f"Дубликат записи расписания '{descriptor.session_key}' пропущен.")
                continue
            seen_keys.add(descriptor.session_key)
            schedules.append(descriptor)

        self.state.schedules = schedules
        logger.info(f"Загружено {len(schedules)} записей расписания.")

    def save_schedule(self) -> bool:
        data_to_save = [s.to_dict() for s in self.state.schedules]
        saved = self._write_json(self.paths_config.schedule_file, data_to_save)
        if saved:
            logger.debug(f"Расписание сохранено ({len(data_to_save)} записей).")
        return saved

    def load_user_data(self) -> None:
        raw_data = self._read_json(self.paths_config.users_file, {})
        if not isinstance(raw_data, dict):
            logger.error(f"{self.paths_config.users_file} должен содержать JSON объект.")
            raw_data = {}
        for user_id_str, user_data in raw_data.items():
            if isinstance(user_data, dict):
                # Поля для обратной совместимости
                user_data.setdefault("name", f"Player {user_id_str}")
                user_data.setdefault("score", 0)
                user_data.setdefault("sessions", 0)
        self.state.user_scores = {k: v for k, v in raw_data.items() if isinstance(v, dict)}
        logger.info(f"Загружена статистика {len(self.state.user_scores)} пользователей.")

    def save_user_data(self) -> bool:
        return self._write_json(self.paths_config.users_file, self.state.user_scores)

    def load_all_data(self) -> None:
        logger.debug("Начало загрузки всех данных...")
        self.load_sessions()
        self.load_schedule()
        self.load_user_data()
        logger.debug("Загрузка всех данных завершена.")

    def save_all_data(self) -> bool:
        logger.info("Сохранение всех данных...")
        results = [self.save_sessions(), self.save_schedule(), self.save_user_data()]
        return all(results)
