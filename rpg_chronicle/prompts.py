"""Handlebars prompt templates for the narrator and image backends."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pybars

from rpg_chronicle.models import GameSettings, Language

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context)).strip()
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Game master ruleset ─────────────────────────────────

_RESPONSE_FORMAT = """
## RESPONSE FORMAT
Write the scene first: 7-20 sentences, then the turn number, location,
current objective, day and time, and finish with "What do you do?".

After the scene, append a <gamedata> block when anything below applies:
<gamedata>
<journal>One or two sentences for the journal about this turn.</journal>
<npcs>
<npc name="Name" description="Short visual description for a portrait" />
</npcs>
</gamedata>
Only list NPCs that appear for the first time.

When the player asks for "status", "inventory" or "health" (or "статус",
"инвентарь", "здоровье"), answer with a short readable summary followed by:
<gamedata>
<status>
<Health>current/max</Health>
<AnyOtherAttribute>value</AnyOtherAttribute>
</status>
<inventory>
<item name="Item name" quantity="1" />
</inventory>
<effects>
<effect name="Effect name" duration="remaining turns" />
</effects>
</gamedata>
Always list the complete inventory and all active effects.
"""

GAME_MASTER_PROMPTS: dict[str, str] = {
    "en": """
You are a world-class Game Master for a dynamic, text-based RPG.

## TURN STRUCTURE
Describe atmosphere, weather, surroundings and the character's thoughts.
Never offer a list of options; ask "What do you do?".

## PLAYER ACTIONS
Judge each action's difficulty, pick the attribute it tests
(Strength/Dexterity/Wits/Charisma), set a check difficulty between 10 and
22, roll when needed and narrate the outcome with consequences.

## RANDOM EVENTS
A counter counts down the turns until the next random event. When a
system message says it reached zero, roll for a random event this turn.
""" + _RESPONSE_FORMAT,
    "ru": """
Ты — мастер текстовой ролевой игры мирового уровня.

## СТРУКТУРА ХОДА
Опиши атмосферу, погоду, окружение и мысли персонажа. Не предлагай
вариантов действий, спрашивай: "Что вы делаете?".

## ДЕЙСТВИЯ ИГРОКА
Оцени сложность действия, выбери проверяемую характеристику
(Сила/Ловкость/Смекалка/Харизма), назначь сложность проверки от 10 до 22,
сделай бросок при необходимости и опиши последствия.

## СЛУЧАЙНЫЕ СОБЫТИЯ
Счетчик отсчитывает ходы до случайного события. Когда системное сообщение
сообщает, что он достиг нуля, сделай бросок на случайное событие.

Ответы пиши на русском языке; служебные теги ниже оставляй как есть.
""" + _RESPONSE_FORMAT,
}

_OPENING_TEMPLATES: dict[str, str] = {
    "en": """
## GAME SETTINGS
- Setting: {{{setting}}}
- Character Description: {{{description}}}
- Difficulty: {{{difficulty}}}
- Narrative Style: {{{style}}}
- Turns until random event: {{{event_timer}}}

Start the game. Generate the initial character, location and situation
according to these settings and rules. Your first response must be Turn 1.
""",
    "ru": """
## НАСТРОЙКИ ИГРЫ
- Сеттинг: {{{setting}}}
- Описание персонажа: {{{description}}}
- Сложность: {{{difficulty}}}
- Стиль повествования: {{{style}}}
- Ходов до случайного события: {{{event_timer}}}

Начни игру. Сгенерируй персонажа, локацию и ситуацию согласно этим
настройкам и правилам. Твой первый ответ должен быть Ходом 1.
""",
}

_DEFAULT_STYLE: dict[str, str] = {
    "en": "Standard GM style",
    "ru": "Стандартный стиль ГМ",
}

_DIFFICULTY_LABELS: dict[str, dict[str, str]] = {
    "en": {"normal": "Normal", "hardcore": "Hardcore"},
    "ru": {"normal": "Обычная", "hardcore": "Хардкор"},
}

RANDOM_EVENT_DIRECTIVES: dict[str, str] = {
    "en": "[SYSTEM MESSAGE: The random event counter has reached zero. "
          "Make a roll for a random event according to the rules.]",
    "ru": "[СИСТЕМНОЕ СООБЩЕНИЕ: Счетчик случайных событий достиг нуля. "
          "Сделай бросок на случайное событие согласно правилам.]",
}

# ── Images and side consultations ───────────────────────

_SCENE_TEMPLATES: dict[str, str] = {
    "en": "Create a vivid, atmospheric illustration in a digital painting style "
          "that shows the following scene: {{{scene}}}. Focus on the environment "
          "and character actions, avoid text in the image.",
    "ru": "Создай яркую, атмосферную иллюстрацию в стиле цифровой живописи, "
          "которая показывает следующую сцену: {{{scene}}}. Сконцентрируйся на "
          "окружении и действиях персонажа, избегай текста на изображении.",
}

_PORTRAIT_TEMPLATES: dict[str, str] = {
    "en": "Create a character portrait in a fantasy art style for an RPG. "
          "Character: {{{name}}}. Description: {{{description}}}. "
          "Style: realistic, detailed, focus on the face and character.",
    "ru": "Создай портрет персонажа в стиле фэнтези-арта для RPG. "
          "Персонаж: {{{name}}}. Описание: {{{description}}}. "
          "Стиль: реалистичный, детальный, фокус на лице и характере.",
}

_MAP_TEMPLATES: dict[str, str] = {
    "en": "Draw a hand-drawn fantasy world map on aged parchment for this "
          "setting: {{{setting}}}. Show regions, roads and landmarks, no modern text.",
    "ru": "Нарисуй карту мира в стиле фэнтези на старом пергаменте для этого "
          "сеттинга: {{{setting}}}. Покажи регионы, дороги и ориентиры.",
}

_ITEM_TEMPLATES: dict[str, str] = {
    "en": """
Out of character, describe the item "{{{item}}}" the character carries:
its appearance, origin and how it can be used in the current situation.
{{#if attributes}}Character sheet: {{{attributes}}}{{/if}}
Answer in 3-5 sentences. Do not advance the story and do not add a <gamedata> block.
""",
    "ru": """
Вне игры опиши предмет "{{{item}}}", который есть у персонажа: его вид,
происхождение и как его можно использовать в текущей ситуации.
{{#if attributes}}Лист персонажа: {{{attributes}}}{{/if}}
Ответь в 3-5 предложениях. Не продвигай сюжет и не добавляй блок <gamedata>.
""",
}

_GM_CONTACT_TEMPLATES: dict[str, str] = {
    "en": """
[OUT OF CHARACTER] The player is talking to you as the Game Master, not as
their character. Answer their question about the rules, the story so far or
the world honestly. Do not advance the story and do not add a <gamedata> block.

Player: {{{message}}}
""",
    "ru": """
[ВНЕ ИГРЫ] Игрок обращается к тебе как к Гейм-мастеру, а не как персонаж.
Честно ответь на вопрос о правилах, сюжете или мире. Не продвигай сюжет и
не добавляй блок <gamedata>.

Игрок: {{{message}}}
""",
}


def game_master_prompt(language: Language) -> str:
    return GAME_MASTER_PROMPTS[language].strip()


def opening_prompt(settings: GameSettings) -> str:
    """Render the first message that sets up a new game."""
    lang = settings.language
    return render_prompt(_OPENING_TEMPLATES[lang], {
        "setting": settings.setting,
        "description": settings.description,
        "difficulty": _DIFFICULTY_LABELS[lang][settings.difficulty],
        "style": settings.narrative_style or _DEFAULT_STYLE[lang],
        "event_timer": settings.event_timer,
    })


def random_event_directive(language: Language) -> str:
    return RANDOM_EVENT_DIRECTIVES[language]


def with_random_event(action: str, language: Language) -> str:
    """Append the random-event directive to an outgoing action."""
    return f"{action}\n\n{random_event_directive(language)}"


def scene_prompt(scene: str, language: Language) -> str:
    return render_prompt(_SCENE_TEMPLATES[language], {"scene": scene})


def portrait_prompt(name: str, description: str, language: Language) -> str:
    return render_prompt(_PORTRAIT_TEMPLATES[language], {"name": name, "description": description})


def map_prompt(setting: str, language: Language) -> str:
    return render_prompt(_MAP_TEMPLATES[language], {"setting": setting})


def item_description_prompt(item: str, attributes: dict[str, str], language: Language) -> str:
    summary = ", ".join(f"{k}: {v}" for k, v in attributes.items())
    return render_prompt(_ITEM_TEMPLATES[language], {"item": item, "attributes": summary})


def gm_contact_prompt(message: str, language: Language) -> str:
    return render_prompt(_GM_CONTACT_TEMPLATES[language], {"message": message})
