"""Turning provider output into reader choices.

Provider output is free text that should contain a JSON array of
`{text, description, type, consequences}` objects. Parsing is lenient:

  - the first `[...]` span in the text is taken as the array
  - unknown or missing types become "narrative"
  - entries without text or description are dropped
  - short lists are padded from the default choices
  - no array, or an unparsable one, yields the fallback set
"""

from __future__ import annotations

import json
import logging
import re

from story_engine.models import Choice, ChoiceType

logger = logging.getLogger(__name__)

_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

_DEFAULTS: list[tuple[str, str, ChoiceType]] = [
    ("Continue the story", "Move forward with the current narrative thread.", ChoiceType.NARRATIVE),
    ("Explore the area", "Take time to investigate your surroundings.", ChoiceType.EXPLORATION),
    ("Take immediate action", "Act quickly based on your instincts.", ChoiceType.ACTION),
    ("Engage in dialogue", "Speak with someone to gather information.", ChoiceType.DIALOGUE),
]

_FALLBACKS: list[Choice] = [
    Choice(
        text="Continue forward",
        description="Move ahead with the current situation and see what happens next.",
        type=ChoiceType.NARRATIVE,
        consequences="The story progresses naturally.",
    ),
    Choice(
        text="Look around carefully",
        description="Take time to observe your surroundings and gather more information.",
        type=ChoiceType.EXPLORATION,
        consequences="You might discover important details.",
    ),
    Choice(
        text="Take action",
        description="Act decisively based on your current understanding of the situation.",
        type=ChoiceType.ACTION,
        consequences="Your actions will have immediate consequences.",
    ),
    Choice(
        text="Start a conversation",
        description="Engage with someone nearby to learn more about the situation.",
        type=ChoiceType.DIALOGUE,
        consequences="You might gain valuable insights or allies.",
    ),
]


def parse_choice_type(raw: object) -> ChoiceType:
    if isinstance(raw, str):
        try:
            return ChoiceType(raw.strip().lower())
        except ValueError:
            pass
    return ChoiceType.NARRATIVE


def default_choice(index: int) -> Choice:
    """The `index`-th default choice (0-based, cycling)."""
    text, description, type_ = _DEFAULTS[index % len(_DEFAULTS)]
    return Choice(
        text=text, description=description, type=type_,
        consequences="This choice will influence the story direction.",
    )


def fallback_choices(count: int = 4) -> list[Choice]:
    """Generic choices used when provider output cannot be parsed."""
    result = [c.model_copy() for c in _FALLBACKS[:count]]
    while len(result) < count:
        result.append(default_choice(len(result)))
    return result


def parse_choices(content: str, count: int = 4) -> list[Choice]:
    """Extract exactly `count` choices from provider output."""
    match = _ARRAY_RE.search(content or "")
    if not match:
        logger.debug("no JSON array in choice output, using fallbacks")
        return fallback_choices(count)
    try:
        raw = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning("unparsable choice output: %s", e)
        return fallback_choices(count)
    if not isinstance(raw, list):
        return fallback_choices(count)

    choices: list[Choice] = []
    for item in raw:
        if len(choices) >= count:
            break
        if not isinstance(item, dict):
            continue
        text = str(item.get("text") or "").strip()
        description = str(item.get("description") or "").strip()
        if not text or not description:
            continue
        consequences = item.get("consequences")
        choices.append(Choice(
            text=text,
            description=description,
            type=parse_choice_type(item.get("type")),
            consequences=str(consequences) if consequences else None,
        ))

    while len(choices) < count:
        choices.append(default_choice(len(choices)))
    return choices


def ensure_type_coverage(choices: list[Choice], requested: list[ChoiceType]) -> list[Choice]:
    """Best effort: make every requested type appear at least once.

    Missing types are assigned to choices whose own type is either not
    requested or duplicated, so no already-covered type is lost. When there
    are fewer choices than requested types some types stay uncovered.
    """
    if not requested:
        return choices
    result = [c.model_copy() for c in choices]
    wanted = list(dict.fromkeys(requested))
    missing = [t for t in wanted if all(c.type != t for c in result)]

    for type_ in missing:
        counts: dict[ChoiceType, int] = {}
        for c in result:
            counts[c.type] = counts.get(c.type, 0) + 1
        for i, c in enumerate(result):
            if c.type not in wanted or counts[c.type] > 1:
                result[i] = c.model_copy(update={"type": type_})
                break
    return result
