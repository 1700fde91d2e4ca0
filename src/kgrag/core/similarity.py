"""Vector similarity helpers shared by the vector stores."""

from collections.abc import Callable, Sequence

EPSILON = 1e-8


class DimensionMismatchError(ValueError):
    """Raised when two vectors of different length are compared."""

    def __init__(self, left: int, right: int) -> None:
        self.left = left
        self.right = right
        super().__init__(f"Vector dimensions do not match: {left} != {right}")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity ``dot / (|a| * |b| + 1e-8)``.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    return dot / ((norm_a ** 0.5) * (norm_b ** 0.5) + EPSILON)


def mmr_select(
    candidates: list[int],
    relevance: list[float],
    k: int,
    lambda_: float,
    similarity: Callable[[int, int], float],
) -> list[int]:
    """Greedy maximal marginal relevance selection.

    Picks ``argmax lambda * rel(d) - (1 - lambda) * max sim(d, selected)`` until
    k candidates are chosen. Earlier candidates win ties.

    Args:
        candidates: Candidate ids, best relevance first
        relevance: Relevance score per candidate (same order)
        k: Number of ids to select
        lambda_: Trade-off between relevance (1.0) and diversity (0.0)
        similarity: Pairwise similarity between two candidate ids

    Returns:
        Selected ids in selection order
    """
    rel = dict(zip(candidates, relevance))
    remaining = list(candidates)
    selected: list[int] = []

    while len(selected) < k and remaining:
        best = remaining[0]
        best_score = float("-inf")
        for idx in remaining:
            diversity = max((similarity(idx, j) for j in selected), default=0.0)
            score = lambda_ * rel[idx] - (1.0 - lambda_) * diversity
            if score > best_score:
                best_score = score
                best = idx
        selected.append(best)
        remaining.remove(best)

    return selected
