from linkforge.models.tutorial import Tutorial
from linkforge.services.merge_resolver import select_merge_target, shared_topic_count


def _tutorial(tutorial_id: str, topics: list[str]) -> Tutorial:
    return Tutorial(
        id=tutorial_id,
        slug=tutorial_id,
        title=tutorial_id,
        summary="",
        body="",
        maturity_level=2,
        level_relation="level-practice",
        difficulty="intermediate",
        topics=topics,
    )


def test_shared_topic_count_ignores_duplicates():
    assert shared_topic_count(["a", "b", "b"], ["b", "c", "a"]) == 2
    assert shared_topic_count([], ["a"]) == 0


def test_no_candidates():
    assert select_merge_target([], ["a", "b"]) is None


def test_single_shared_topic_is_not_enough():
    candidate = _tutorial("t1", ["a", "x", "y"])
    assert select_merge_target([candidate], ["a", "b", "c"]) is None


def test_two_shared_topics_merge():
    candidate = _tutorial("t1", ["a", "b", "y"])
    assert select_merge_target([candidate], ["a", "b", "c"]) is candidate


def test_best_overlap_wins():
    weak = _tutorial("weak", ["a", "b"])
    strong = _tutorial("strong", ["a", "b", "c"])
    assert select_merge_target([weak, strong], ["a", "b", "c"]) is strong


def test_ties_go_to_earliest_candidate():
    first = _tutorial("first", ["a", "b"])
    second = _tutorial("second", ["b", "a"])
    assert select_merge_target([first, second], ["a", "b"]) is first


def test_threshold_is_configurable():
    candidate = _tutorial("t1", ["a"])
    assert select_merge_target([candidate], ["a"], threshold=1) is candidate
    assert select_merge_target([_tutorial("t2", ["a", "b"])], ["a", "b"], threshold=3) is None
