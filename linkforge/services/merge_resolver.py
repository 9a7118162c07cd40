from linkforge.models.tutorial import Tutorial

DEFAULT_MERGE_THRESHOLD = 2


def shared_topic_count(topics: list[str], other: list[str]) -> int:
    return len(set(topics) & set(other))


def select_merge_target(
    candidates: list[Tutorial],
    topics: list[str],
    threshold: int = DEFAULT_MERGE_THRESHOLD,
) -> Tutorial | None:
    """
    Pick the candidate sharing the most topics with `topics`, provided it shares
    at least `threshold` of them. Ties go to the earliest candidate.
    """
    best: Tutorial | None = None
    best_count = 0
    for candidate in candidates:
        count = shared_topic_count(topics, candidate.topics)
        if count > best_count:
            best, best_count = candidate, count
    if best is None or best_count < threshold:
        return None
    return best
