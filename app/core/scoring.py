import math


def percentage(score: int, max_score: int) -> float | None:
    """score as a percentage of max_score; None when nothing could be scored."""
    if not max_score:
        return None
    return score / max_score * 100


def round_half_up(value: float) -> int:
    # 62.5 -> 63, not Python's banker's 62
    return int(math.floor(value + 0.5))
