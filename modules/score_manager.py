# modules/score_manager.py
import logging
from typing import Dict, List, Any, TYPE_CHECKING

from handlers.quiz.quiz_types import Leaderboard, LeaderboardEntry

if TYPE_CHECKING:
    from app_config import AppConfig
    from state import BotState
    from data_manager import DataManager

logger = logging.getLogger(__name__)

PLACE_ICONS = ["🥇", "🥈", "🥉"]


def compile_leaderboard(
    session_key: str,
    scores: Dict[int, int],
    display_names: Dict[int, str],
    total_questions: int,
    limit: int = 10,
) -> Leaderboard:
    """
    Строит итоговый рейтинг викторины.

    Сортировка по очкам по убыванию. sorted() стабилен, поэтому при равных
    очках сохраняется порядок первого появления участника в scores.
    Места нумеруются подряд (1, 2, 3...), без общих мест для равных очков.

    Args:
        session_key: Ключ сессии
        scores: user_id -> очки (в порядке первого ответа)
        display_names: user_id -> отображаемое имя
        total_questions: Количество вопросов в сессии
        limit: Сколько строк показывать

    Returns:
        Leaderboard с усеченным списком entries и полным full_ranking
    """
    ordered_users = sorted(scores.keys(), key=lambda uid: -scores[uid])
    full_ranking = [
        LeaderboardEntry(
            rank=position,
            user_id=user_id,
            display_name=display_names.get(user_id, f"User {user_id}"),
            score=scores[user_id],
            total=total_questions,
        )
        for position, user_id in enumerate(ordered_users, start=1)
    ]
    return Leaderboard(
        session_key=session_key,
        total_questions=total_questions,
        entries=full_ranking[:max(limit, 0)],
        full_ranking=full_ranking,
    )


def format_leaderboard(leaderboard: Leaderboard) -> str:
    if leaderboard.is_empty:
        return "🏆 Leaderboard\n\nNobody answered this time. 😐"

    lines = ["🏆 Leaderboard", ""]
    for entry in leaderboard.entries:
        if entry.rank <= len(PLACE_ICONS) and entry.score > 0:
            place = PLACE_ICONS[entry.rank - 1]
        else:
            place = f"{entry.rank}."
        lines.append(f"{place} {entry.display_name} — {entry.score}/{entry.total}")

    hidden = len(leaderboard.full_ranking) - len(leaderboard.entries)
    if hidden > 0:
        lines.append("")
        lines.append(f"…and {hidden} more participants")
    return "\n".join(lines)


class ScoreManager:
    def __init__(self, app_config: 'AppConfig', state: 'BotState', data_manager: 'DataManager'):
        self.app_config = app_config
        self.state = state
        self.data_manager = data_manager

    def get_rating_icon(self, score: int) -> str:
        if score >= 500: return "🏆"
        elif score >= 100: return "👑"
        elif score >= 50: return "🔥"
        elif score >= 10: return "👍"
        elif score > 0: return "🙂"
        return "😐"

    def record_session_results(self, leaderboard: Leaderboard) -> bool:
        """Добавляет полный рейтинг сессии в накопительную статистику"""
        if leaderboard.is_empty:
            logger.info(f"Сессия '{leaderboard.session_key}' без участников, статистика не обновлена.")
            return True

        for entry in leaderboard.full_ranking:
            user_id_str = str(entry.user_id)
            user_data = self.state.user_scores.setdefault(
                user_id_str, {"name": entry.display_name, "score": 0, "sessions": 0}
            )
            user_data["name"] = entry.display_name
            user_data["score"] = user_data.get("score", 0) + entry.score
            user_data["sessions"] = user_data.get("sessions", 0) + 1

        logger.info(
            f"Статистика обновлена по итогам '{leaderboard.session_key}': "
            f"{len(leaderboard.full_ranking)} участников."
        )
        return self.data_manager.save_user_data()

    def get_lifetime_rating(self, top_n: int = 10) -> List[Dict[str, Any]]:
        # Стабильная сортировка: при равных очках порядок появления в users.json
        sorted_users = sorted(
            self.state.user_scores.items(),
            key=lambda item: -item[1].get("score", 0),
        )
        return [
            {
                "user_id": user_id_str,
                "name": data.get("name", f"User {user_id_str}"),
                "score": data.get("score", 0),
                "sessions": data.get("sessions", 0),
            }
            for user_id_str, data in sorted_users[:top_n]
        ]

    def format_lifetime_rating(self, top_n: int = 10) -> str:
        rating = self.get_lifetime_rating(top_n)
        if not rating:
            return "📊 Overall rating\n\nNo results yet."
        lines = ["📊 Overall rating", ""]
        for i, entry in enumerate(rating, start=1):
            icon = self.get_rating_icon(entry["score"])
            lines.append(f"{i}. {icon} {entry['name']} — {entry['score']} ({entry['sessions']} quizzes)")
        return "\n".join(lines)
