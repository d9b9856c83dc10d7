"""FormPilot Intent Matcher -- picks the option that best matches a profile value.

Cascade, first hit wins:

1. Exact match after trim + case-fold (score 1.0)
2. Containment (score 0.9): an option containing the intent, else an option
   longer than two characters that the intent contains
3. Approximate: ``difflib.SequenceMatcher`` ratio, accepted above 0.3

The matcher only reports a score.  Callers that act on the result apply
their own, stricter acceptance floor.
"""

from __future__ import annotations

import dataclasses
from difflib import SequenceMatcher

EXACT_SCORE = 1.0
CONTAINMENT_SCORE = 0.9
MIN_CONTAINED_OPTION_LENGTH = 2  # option must be strictly longer than this
FUZZY_FLOOR = 0.3  # best ratio must be strictly greater than this


@dataclasses.dataclass(frozen=True)
class MatchResult:
    """The winning option, its score in [0, 1], and its index in the input list."""

    match: str
    score: float
    index: int


def _normalize(text: str) -> str:
    return text.strip().casefold()


def find_best_match(intent: str | None, options: list[str] | None) -> MatchResult | None:
    """Return the option that best matches *intent*, or None.

    Returns None for an empty intent or an empty option list.
    """
    if not intent or not options:
        return None

    clean_intent = _normalize(intent)
    if not clean_intent:
        return None
    clean_options = [_normalize(opt) for opt in options]

    for i, opt in enumerate(clean_options):
        if opt == clean_intent:
            return MatchResult(match=options[i], score=EXACT_SCORE, index=i)

    for i, opt in enumerate(clean_options):
        if clean_intent in opt:
            return MatchResult(match=options[i], score=CONTAINMENT_SCORE, index=i)
    for i, opt in enumerate(clean_options):
        if len(opt) > MIN_CONTAINED_OPTION_LENGTH and opt in clean_intent:
            return MatchResult(match=options[i], score=CONTAINMENT_SCORE, index=i)

    best_index = -1
    best_score = 0.0
    for i, opt in enumerate(clean_options):
        score = SequenceMatcher(None, clean_intent, opt).ratio()
        if score > best_score:
            best_index, best_score = i, score

    if best_index >= 0 and best_score > FUZZY_FLOOR:
        return MatchResult(match=options[best_index], score=best_score, index=best_index)
    return None
