from __future__ import annotations

from collections.abc import Iterable

from .types import Mistake, MistakeVerdict


def matches_action(mistake: Mistake, description: str) -> bool:
    """Case-insensitive containment in either direction.

    Short, generic mistake descriptions ("build failed") match broadly.
    """

    if not mistake.description.strip() or not description.strip():
        return False
    needle = mistake.description.casefold()
    haystack = description.casefold()
    return needle in haystack or haystack in needle


def check_for_mistake(mistakes: Iterable[Mistake], description: str) -> MistakeVerdict:
    for mistake in mistakes:
        if not matches_action(mistake, description):
            continue
        mistake.repeat_count += 1
        when = f"{mistake.timestamp:%Y-%m-%d}" if mistake.timestamp else "an earlier session"
        return MistakeVerdict(
            should_proceed=False,
            reason=f"I tried this on {when} and it failed: {mistake.impact}",
            alternative=mistake.fix,
            prior_mistake=mistake,
        )
    return MistakeVerdict(should_proceed=True)
