#app_config.py
import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)
logger.debug("Модуль app_config.py начал загружаться.")

CURRENT_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = CURRENT_FILE_DIR # app_config.py лежит в корне проекта

dotenv_path = PROJECT_ROOT / '.env'
logger.debug(f"app_config.py: Путь к .env файлу: {dotenv_path}")
try:
    load_dotenv(dotenv_path=dotenv_path)
except OSError as e_dotenv:
    logger.error(f"app_config.py: Ошибка при вызове load_dotenv: {e_dotenv}", exc_info=True)


DEFAULT_QUIZ_SETTINGS: Dict[str, Any] = {
    "timezone": "Asia/Kolkata",
    "scan_interval_seconds": 15,
    "notice_window_seconds": 300,
    "discussion_window_seconds": 1800,
    "start_grace_seconds": 60,
    "poll_open_seconds": 20,
    "dispatch_buffer_seconds": 5,
    "start_delay_seconds": 3,
    "settle_delay_seconds": 3,
    "send_timeout_seconds": 10,
    "leaderboard_limit": 10,
    "min_options": 2,
    "max_options": 4,
    "post_quiz_discussion_seconds": 900,
}

# Нижние границы значений: всё, что меньше, заменяется значением по умолчанию
_MIN_VALUES: Dict[str, int] = {
    "scan_interval_seconds": 1,
    "notice_window_seconds": 0,
    "discussion_window_seconds": 0,
    "start_grace_seconds": 0,
    "poll_open_seconds": 5,
    "dispatch_buffer_seconds": 0,
    "start_delay_seconds": 0,
    "settle_delay_seconds": 0,
    "send_timeout_seconds": 1,
    "leaderboard_limit": 1,
    "min_options": 2,
    "max_options": 2,
    "post_quiz_discussion_seconds": 0,
}

DEFAULT_COMMANDS: Dict[str, str] = {
    "start": "start",
    "admin": "admin",
    "status": "status",
    "stop": "stop",
    "delete_schedule": "deleteschedule",
    "top": "top",
}


class CommandConfig:
    def __init__(self, commands_data: Dict[str, str]):
        self.start: str = commands_data.get("start", DEFAULT_COMMANDS["start"])
        self.admin: str = commands_data.get("admin", DEFAULT_COMMANDS["admin"])
        self.status: str = commands_data.get("status", DEFAULT_COMMANDS["status"])
        self.stop: str = commands_data.get("stop", DEFAULT_COMMANDS["stop"])
        self.delete_schedule: str = commands_data.get("delete_schedule", DEFAULT_COMMANDS["delete_schedule"])
        self.top: str = commands_data.get("top", DEFAULT_COMMANDS["top"])


class PathConfig:
    def __init__(self, project_root_path: Path, data_dir_name: str = "data", config_dir_name: str = "config"):
        logger.debug(f"PathConfig.__init__ начат. project_root_path: {project_root_path}")
        self.project_root: Path = project_root_path
        self.data_dir: Path = self.project_root / data_dir_name
        self.config_dir: Path = self.project_root / config_dir_name
        self.logs_dir: Path = self.project_root / "logs"

        self.sessions_file: Path = self.data_dir / "sessions.json"
        self.schedule_file: Path = self.data_dir / "schedule.json"
        self.users_file: Path = self.data_dir / "users.json"

        self.quiz_config_file: Path = self.config_dir / "quiz_config.json"

        for directory in (self.data_dir, self.config_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"PathConfig: Ошибка при создании директории {directory}: {e}", exc_info=True)


class AppConfig:
    def __init__(self, project_root: Optional[Path] = None):
        logger.debug("AppConfig.__init__ НАЧАТ.")

        self.bot_token: Optional[str] = os.getenv("BOT_TOKEN")
        self.log_level_str: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.debug_mode: bool = os.getenv("DEBUG_MODE", "False").lower() == "true"

        self.admin_ids: List[int] = self._parse_id_list(os.getenv("ADMIN_IDS", ""))
        self.quiz_group_id: Optional[int] = self._parse_int_env("QUIZ_GROUP_ID")
        self.quiz_channel_id: Optional[int] = self._parse_int_env("QUIZ_CHANNEL_ID")
        self.group_invite_link: Optional[str] = os.getenv("GROUP_INVITE_LINK") or None

        self.paths = PathConfig(project_root or PROJECT_ROOT)

        self._raw_quiz_config: Dict[str, Any] = self._load_json_config(self.paths.quiz_config_file)
        quiz_settings = self._validate_quiz_settings(self._raw_quiz_config.get("quiz_settings", {}))

        self.timezone_name: str = quiz_settings["timezone"]
        self.scan_interval_seconds: int = quiz_settings["scan_interval_seconds"]
        self.notice_window_seconds: int = quiz_settings["notice_window_seconds"]
        self.discussion_window_seconds: int = quiz_settings["discussion_window_seconds"]
        self.start_grace_seconds: int = quiz_settings["start_grace_seconds"]
        self.poll_open_seconds: int = quiz_settings["poll_open_seconds"]
        self.dispatch_buffer_seconds: int = quiz_settings["dispatch_buffer_seconds"]
        self.start_delay_seconds: int = quiz_settings["start_delay_seconds"]
        self.settle_delay_seconds: int = quiz_settings["settle_delay_seconds"]
        self.send_timeout_seconds: int = quiz_settings["send_timeout_seconds"]
        self.leaderboard_limit: int = quiz_settings["leaderboard_limit"]
        self.min_options: int = quiz_settings["min_options"]
        self.max_options: int = quiz_settings["max_options"]
        self.post_quiz_discussion_seconds: int = quiz_settings["post_quiz_discussion_seconds"]

        self.commands = CommandConfig(self._raw_quiz_config.get("commands", {}))

        if not self.bot_token:
            logger.critical("AppConfig: Токен BOT_TOKEN не найден! Проверьте .env файл.")
        if self.quiz_group_id is None:
            logger.warning("AppConfig: QUIZ_GROUP_ID не задан. Викторины некуда отправлять.")

        logger.info("AppConfig.__init__ ЗАВЕРШЕН.")

    @staticmethod
    def _parse_id_list(raw_value: str) -> List[int]:
        ids: List[int] = []
        for part in raw_value.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                ids.append(int(part))
            except ValueError:
                logger.warning(f"AppConfig: Некорректный ID администратора '{part}' пропущен.")
        return ids

    @staticmethod
    def _parse_int_env(name: str) -> Optional[int]:
        raw_value = os.getenv(name)
        if not raw_value:
            return None
        try:
            return int(raw_value)
        except ValueError:
            logger.error(f"AppConfig: Переменная {name}='{raw_value}' не является числом.")
            return None

    def _validate_quiz_settings(self, raw_settings: Dict[str, Any]) -> Dict[str, Any]:
        settings = dict(DEFAULT_QUIZ_SETTINGS)
        if not isinstance(raw_settings, dict):
            logger.warning("AppConfig: Секция 'quiz_settings' не является словарем. Используются значения по умолчанию.")
            return settings

        for key, value in raw_settings.items():
            if key not in DEFAULT_QUIZ_SETTINGS:
                logger.warning(f"AppConfig: Неизвестный ключ настроек '{key}' пропущен.")
                continue
            if key == "timezone":
                if isinstance(value, str) and value.strip():
                    settings[key] = value.strip()
                else:
                    logger.warning(f"AppConfig: Некорректный часовой пояс '{value}'. Используется {DEFAULT_QUIZ_SETTINGS[key]}.")
                continue
            if not isinstance(value, int) or isinstance(value, bool) or value < _MIN_VALUES[key]:
                logger.warning(f"AppConfig: Некорректное значение {key}={value!r}. Используется {DEFAULT_QUIZ_SETTINGS[key]}.")
                continue
            settings[key] = value

        if settings["max_options"] < settings["min_options"]:
            logger.warning(
                f"AppConfig: max_options ({settings['max_options']}) меньше min_options ({settings['min_options']}). "
                "Используется диапазон по умолчанию."
            )
            settings["min_options"] = DEFAULT_QUIZ_SETTINGS["min_options"]
            settings["max_options"] = DEFAULT_QUIZ_SETTINGS["max_options"]
        return settings

    def _load_json_config(self, file_path: Path) -> Dict[str, Any]:
        logger.debug(f"AppConfig._load_json_config: Попытка загрузить JSON из {file_path}")
        default_config_structure = {
            "quiz_settings": dict(DEFAULT_QUIZ_SETTINGS),
            "commands": dict(DEFAULT_COMMANDS),
        }
        try:
            if not file_path.exists():
                logger.warning(f"AppConfig._load_json_config: Файл {file_path} не найден! Создаю его с дефолтной структурой.")
                with open(file_path, 'w', encoding='utf-8') as f:
                    json.dump(default_config_structure, f, ensure_ascii=False, indent=4)
                return default_config_structure

            with open(file_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)

            if not isinstance(config_data, dict):
                logger.error(f"AppConfig._load_json_config: {file_path} должен содержать JSON объект.")
                return default_config_structure

            for key, default_value_section in default_config_structure.items():
                if key not in config_data or not isinstance(config_data[key], dict):
                    config_data[key] = default_value_section
                    logger.warning(f"AppConfig._load_json_config: В {file_path} отсутствует секция '{key}'. Используется значение по умолчанию.")
                    continue
                for sub_key, default_sub_value in default_value_section.items():
                    config_data[key].setdefault(sub_key, default_sub_value)
            return config_data

        except json.JSONDecodeError as e_json:
            logger.error(f"AppConfig._load_json_config: Ошибка декодирования JSON в {file_path}: {e_json}! Будет использована структура по умолчанию.")
        except OSError as e:
            logger.error(f"AppConfig._load_json_config: Ошибка чтения {file_path}: {e}. Будет использована структура по умолчанию.", exc_info=True)

        return default_config_structure

    def is_admin(self, user_id: Optional[int]) -> bool:
        return user_id is not None and user_id in self.admin_ids
