"""Localized vocabulary: meta-query keywords and user-facing messages."""

from __future__ import annotations

from rpg_chronicle.models import Language

META_COMMANDS: dict[str, tuple[str, ...]] = {
    "en": ("status", "inventory", "health"),
    "ru": ("статус", "инвентарь", "здоровье"),
}

STATUS_COMMAND: dict[str, str] = {
    "en": "status",
    "ru": "статус",
}

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "start_failed": "Failed to start game",
        "turn_failed": "An error occurred",
        "no_session": "No game in progress",
        "save_not_found": "Save data not found",
        "invalid_save": "Invalid save file",
        "load_failed": "Failed to load the game",
        "turn_in_progress": "The narrator is still responding",
        "gm_failed": "Failed to contact the Game Master",
        "item_failed": "Failed to get the item description",
    },
    "ru": {
        "start_failed": "Не удалось начать игру",
        "turn_failed": "Произошла ошибка",
        "no_session": "Игра не начата",
        "save_not_found": "Данные сохранения не найдены",
        "invalid_save": "Неверный файл сохранения",
        "load_failed": "Ошибка при загрузке игры",
        "turn_in_progress": "Рассказчик еще отвечает",
        "gm_failed": "Ошибка связи с Гейм-мастером",
        "item_failed": "Не удалось получить описание предмета",
    },
}


def is_meta_command(action: str) -> bool:
    """True if the action asks for a status report rather than advancing the story.

    Keywords of every language are accepted regardless of the game language.
    """
    command = action.strip().lower()
    return any(command in keywords for keywords in META_COMMANDS.values())


def message(key: str, language: Language = "en") -> str:
    return MESSAGES[language].get(key, MESSAGES["en"][key])
