"""Handlebars prompt rendering for provider calls."""

from collections.abc import Callable
from typing import Any

import pybars


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
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────


CHOICE_TEMPLATE = """\
Based on the following story content, generate exactly {{count}} meaningful and diverse choices for the reader:

Story Content: {{{content}}}

{{#if genre}}Genre: {{{genre}}}

{{/if}}{{#if types}}Preferred choice types: {{{types}}}

{{/if}}IMPORTANT: You must provide exactly {{count}} choices. Each choice should represent a different path forward in the story.

Please provide the choices in the following JSON format:
[
  {
    "text": "Short choice text (max 50 characters)",
    "description": "What this choice leads to and its implications",
    "type": "{{{allowed_types}}}",
    "consequences": "Brief description of potential consequences"
  }
]

Requirements:
- Each choice must be distinct and meaningful
- Choices should advance the story in different directions
{{#if types}}- Cover each preferred choice type at least once
{{/if}}- Return valid JSON only, no additional text"""


STORY_TEMPLATE = """\
{{#if genre}}Genre: {{{genre}}}
{{/if}}{{#if tone}}Tone: {{{tone}}}
{{/if}}{{#if length}}Length: {{{length}}}
{{/if}}{{#if context}}Story so far:
{{{context}}}

{{/if}}{{{prompt}}}"""


def build_choice_prompt(
    content: str,
    count: int,
    types: list[str] | None = None,
    genre: str | None = None,
    allowed_types: list[str] | None = None,
) -> str:
    return render_prompt(CHOICE_TEMPLATE, {
        "content": content,
        "count": count,
        "types": ", ".join(types or []),
        "genre": genre or "",
        "allowed_types": "|".join(allowed_types or []),
    })


def build_story_prompt(
    prompt: str,
    context: str | None = None,
    genre: str | None = None,
    tone: str | None = None,
    length: str | None = None,
) -> str:
    """Prefix the caller's prompt with its story hints; unchanged if there are none."""
    if not any((context, genre, tone, length)):
        return prompt
    return render_prompt(STORY_TEMPLATE, {
        "prompt": prompt,
        "context": context or "",
        "genre": genre or "",
        "tone": tone or "",
        "length": length or "",
    })
