import asyncio

import pytest

from matchfeed.engine.likes import LikeReconciler
from matchfeed.errors import InvalidLikeError, LikeWriteError, LikesLookupError, ReconcileError


def run(coro):
    return asyncio.run(coro)


def test_one_way_like_then_reciprocal_creates_match(store):
    likes = LikeReconciler(store)

    first = run(likes.record_like("a", "b"))
    assert first.matched is False and first.duplicate is False
    assert first.like.liker_id == "a" and first.like.liked_id == "b"
    assert run(store.find_match("a", "b")) is None

    second = run(likes.record_like("b", "a"))
    assert second.matched is True and second.match_created is True

    match = run(store.find_match("a", "b"))
    assert match is not None and match.involves("a", "b")
    assert match.id == second.match.id


def test_liking_twice_is_a_duplicate_noop(store):
    likes = LikeReconciler(store)

    run(likes.record_like("a", "b"))
    again = run(likes.record_like("a", "b"))

    assert again.duplicate is True
    assert again.matched is False
    assert len(run(store.list_likes_from("a"))) == 1


def test_match_is_created_once_whatever_the_order(store):
    likes = LikeReconciler(store)
    run(likes.record_like("b", "a"))
    run(likes.record_like("a", "b"))
    repeat = run(likes.record_like("a", "b"))
    retry = run(likes.reconcile("b", "a"))

    assert repeat.duplicate and repeat.matched and not repeat.match_created
    assert retry.matched and not retry.match_created
    assert repeat.match.id == retry.match.id


def test_concurrent_mutual_likes_converge_on_one_match(store):
    likes = LikeReconciler(store)

    async def both():
        return await asyncio.gather(likes.record_like("a", "b"), likes.record_like("b", "a"))

    outcomes = run(both())

    assert any(o.matched for o in outcomes)
    assert sum(o.match_created for o in outcomes) == 1
    assert run(store.find_match("b", "a")) is not None


def test_duplicate_like_heals_a_missed_match(store):
    # both likes landed but neither client saw the other's row
    run(store.insert_like("a", "b"))
    run(store.insert_like("b", "a"))
    assert run(store.find_match("a", "b")) is None

    outcome = run(LikeReconciler(store).record_like("a", "b"))

    assert outcome.duplicate and outcome.matched and outcome.match_created
    assert run(store.find_match("a", "b")) is not None


def test_self_like_is_rejected(store):
    with pytest.raises(InvalidLikeError):
        run(LikeReconciler(store).record_like("a", "a"))


def test_insert_failure_records_nothing(store, flaky):
    with pytest.raises(LikeWriteError):
        run(LikeReconciler(flaky("insert_like")).record_like("a", "b"))
    assert run(store.find_like("a", "b")) is None


def test_reciprocity_failure_is_distinct_and_retryable(store, flaky):
    run(store.insert_like("b", "a"))

    with pytest.raises(ReconcileError) as err:
        run(LikeReconciler(flaky("find_like")).record_like("a", "b"))

    assert err.value.like is not None
    assert run(store.find_like("a", "b")) is not None
    assert run(store.find_match("a", "b")) is None

    retried = run(LikeReconciler(store).reconcile(err.value.liker_id, err.value.liked_id))
    assert retried.matched and retried.match_created
    assert len(run(store.list_likes_from("a"))) == 1


def test_match_write_failure_is_a_reconcile_error(store, flaky):
    run(store.insert_like("b", "a"))
    with pytest.raises(ReconcileError):
        run(LikeReconciler(flaky("insert_match")).record_like("a", "b"))


def test_incoming_likes_newest_first_with_names_and_photos(store, seed):
    seed("viewer")
    seed("carol", first_name="Carol", last_name="Ng")
    seed("bob", first_name="Bob", last_name="", photos=0, video=True)
    likes = LikeReconciler(store)
    run(likes.record_like("carol", "viewer"))
    run(likes.record_like("bob", "viewer"))
    run(likes.record_like("nobody", "viewer"))

    rows = run(likes.list_incoming_likes("viewer"))

    assert [r.user_id for r in rows] == ["nobody", "bob", "carol"]
    by_id = {r.user_id: r for r in rows}
    assert by_id["carol"].name == "Carol Ng"
    assert by_id["carol"].avatar_url.endswith("/carol/photo_1.jpg")
    assert by_id["bob"].name == "Bob"
    assert by_id["bob"].avatar_url is None
    assert by_id["nobody"].name == "Unknown"


def test_mutual_matches_need_both_directions(store, seed):
    for uid in ("a", "b", "c", "d"):
        seed(uid)
    likes = LikeReconciler(store)
    run(likes.record_like("a", "b")); run(likes.record_like("b", "a"))
    run(likes.record_like("c", "a"))
    run(likes.record_like("a", "d"))

    assert [r.user_id for r in run(likes.list_mutual_matches("a"))] == ["b"]
    assert [r.user_id for r in run(likes.list_mutual_matches("b"))] == ["a"]
    assert run(likes.list_mutual_matches("c")) == []


def test_mutual_matches_ordered_by_incoming_like(store):
    likes = LikeReconciler(store)
    run(likes.record_like("a", "b")); run(likes.record_like("a", "c"))
    run(likes.record_like("c", "a")); run(likes.record_like("b", "a"))

    assert [r.user_id for r in run(likes.list_mutual_matches("a"))] == ["b", "c"]


def test_outgoing_likes(store, seed):
    seed("b", first_name="Bea", last_name="")
    likes = LikeReconciler(store)
    run(likes.record_like("a", "b")); run(likes.record_like("a", "c"))

    rows = run(likes.list_outgoing_likes("a"))

    assert [r.user_id for r in rows] == ["c", "b"]
    assert rows[1].name == "Bea"


def test_outgoing_likes_carry_profile_card(store, seed):
    seed("b", video=True, interests=["hiking", "jazz", "chess"])
    seed("c", photos=0)
    likes = LikeReconciler(store)
    run(likes.record_like("a", "b")); run(likes.record_like("a", "c"))

    rows = {r.user_id: r for r in run(likes.list_outgoing_likes("a"))}

    b = rows["b"]
    assert b.city == "Lisbon" and b.country == "PT"
    assert b.media_type == "intro_video" and b.media_url.endswith("/b/intro_video.mp4")
    assert b.avatar_url.endswith("/b/photo_1.jpg")
    assert b.interests == ["hiking", "jazz"]
    assert rows["c"].media_url is None and rows["c"].interests == []


def test_outgoing_card_tolerates_interest_failure(store, seed, flaky):
    seed("b", interests=["art"])
    run(LikeReconciler(store).record_like("a", "b"))

    (row,) = run(LikeReconciler(flaky("list_interests")).list_outgoing_likes("a"))

    assert row.name == "B Tester" and row.media_type == "photo" and row.interests == []


def test_enrichment_failures_fall_back_to_neutral_values(store, seed, flaky):
    seed("b")
    run(LikeReconciler(store).record_like("b", "a"))

    (row,) = run(LikeReconciler(flaky("get_profile", "list_media")).list_incoming_likes("a"))

    assert row.user_id == "b" and row.name == "Unknown" and row.avatar_url is None


@pytest.mark.parametrize("method,view", [
    ("list_likes_to", "list_incoming_likes"),
    ("list_likes_from", "list_outgoing_likes"),
    ("list_likes_from", "list_mutual_matches"),
])
def test_like_list_failures_raise(store, flaky, method, view):
    with pytest.raises(LikesLookupError):
        run(getattr(LikeReconciler(flaky(method)), view)("a"))
