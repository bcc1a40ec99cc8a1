import math
from typing import List, Sequence

from schemas import ChatTurn

CHARS_PER_TOKEN = 4
DEFAULT_MAX_TOKENS = 2000


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per 4 characters, rounded up."""
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


def trim_history(turns: Sequence[ChatTurn], max_tokens: int = DEFAULT_MAX_TOKENS) -> List[ChatTurn]:
    """
    Keep the newest turns whose estimated cost fits in ``max_tokens``.

    Walks newest -> oldest and stops at the first turn that would push the
    running total over the budget. The newest turn is always kept, even when
    it alone exceeds the budget. The result is a contiguous suffix of
    ``turns`` in chronological order.
    """
    kept: List[ChatTurn] = []
    total = 0
    for turn in reversed(turns):
        cost = estimate_tokens(turn.content)
        if kept and total + cost > max_tokens:
            break
        kept.append(turn)
        total += cost
    kept.reverse()
    return kept


def build_context(
    memory: Sequence[ChatTurn],
    new_turns: Sequence[ChatTurn],
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> List[ChatTurn]:
    """Memory followed by the newly submitted turns, trimmed to the budget."""
    combined = list(memory) + list(new_turns)
    return trim_history(combined, max_tokens)
