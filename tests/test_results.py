from __future__ import annotations

import itertools

from costume_contest import (
    Costume,
    UserProfile,
    Vote,
    compute_results,
    detect_first_place_tie,
    podium,
    revote_candidates,
    unvoted_users,
)

_ids = itertools.count(1)


def _costume(costume_id: str, owner: str | None = None) -> Costume:
    return Costume(id=costume_id, user_id=owner or f"owner-{costume_id}", name=f"Costume {costume_id}")


def _votes(costume_id: str, n: int, prefix: str = "v") -> list[Vote]:
    return [
        Vote(id=f"{prefix}{next(_ids)}", voter_id=f"{prefix}-voter-{next(_ids)}", costume_id=costume_id)
        for _ in range(n)
    ]


def _rows_by_id(results):
    return {row.id: row for row in results}


def test_compute_results_empty_costumes():
    assert compute_results([], _votes("A", 2), []) == ()


def test_two_way_tie_shares_first_place():
    costumes = [_costume("A"), _costume("B"), _costume("C")]
    votes = _votes("A", 3) + _votes("B", 3) + _votes("C", 1)
    out = compute_results(costumes, votes, [])
    by_id = _rows_by_id(out)

    assert {row.id for row in out[:2]} == {"A", "B"}
    assert out[2].id == "C"
    assert by_id["A"].rank == 1 and by_id["B"].rank == 1
    assert by_id["A"].is_tied and by_id["B"].is_tied
    assert by_id["C"].rank == 3
    assert by_id["C"].is_tied is False


def test_equal_counts_keep_input_order():
    costumes = [_costume("B"), _costume("A")]
    out = compute_results(costumes, _votes("A", 1) + _votes("B", 1), [])
    assert [row.id for row in out] == ["B", "A"]


def test_three_way_tie_all_flagged_and_next_rank_skips():
    costumes = [_costume(c) for c in "ABCD"]
    votes = _votes("A", 2) + _votes("B", 2) + _votes("C", 2) + _votes("D", 1)
    by_id = _rows_by_id(compute_results(costumes, votes, []))

    for cid in "ABC":
        assert by_id[cid].rank == 1
        assert by_id[cid].is_tied is True
    assert by_id["D"].rank == 4
    assert by_id["D"].is_tied is False


def test_tie_block_in_the_middle():
    costumes = [_costume(c) for c in "ABCD"]
    votes = _votes("A", 5) + _votes("B", 3) + _votes("C", 3) + _votes("D", 1)
    out = compute_results(costumes, votes, [])
    by_id = _rows_by_id(out)

    assert [row.rank for row in out] == [1, 2, 2, 4]
    assert [row.is_tied for row in out] == [False, True, True, False]
    assert by_id["A"].is_tied is False


def test_zero_vote_costumes_are_included_and_tied_last():
    costumes = [_costume("A"), _costume("B"), _costume("C")]
    out = compute_results(costumes, _votes("A", 1), [])
    by_id = _rows_by_id(out)

    assert out[0].id == "A"
    assert by_id["B"].vote_count == 0
    assert by_id["B"].rank == 2 and by_id["C"].rank == 2
    assert by_id["B"].is_tied and by_id["C"].is_tied


def test_revote_votes_are_added_to_initial_counts():
    costumes = [_costume("A"), _costume("B")]
    out = compute_results(costumes, _votes("A", 2) + _votes("B", 2), _votes("B", 1, prefix="r"))
    by_id = _rows_by_id(out)

    assert out[0].id == "B"
    assert by_id["B"].vote_count == 3
    assert by_id["B"].initial_vote_count == 2
    assert by_id["B"].revote_vote_count == 1
    assert by_id["A"].revote_vote_count == 0
    assert by_id["B"].rank == 1 and by_id["A"].rank == 2
    assert not by_id["A"].is_tied and not by_id["B"].is_tied


def test_votes_for_unknown_costumes_are_not_attributed():
    out = compute_results([_costume("A")], _votes("A", 1) + _votes("ghost", 4), [])
    assert len(out) == 1
    assert out[0].vote_count == 1


def test_result_properties_hold_for_mixed_input():
    costumes = [_costume(c) for c in "ABCDEF"]
    initial = _votes("A", 4) + _votes("B", 2) + _votes("C", 2) + _votes("E", 4) + _votes("F", 1)
    revotes = _votes("A", 1, prefix="r") + _votes("E", 1, prefix="r")
    out = compute_results(costumes, initial, revotes)

    assert sum(row.vote_count for row in out) == len(initial) + len(revotes)
    for row in out:
        assert row.vote_count == row.initial_vote_count + row.revote_vote_count
    for prev, cur in zip(out, out[1:]):
        assert prev.vote_count >= cur.vote_count
        if prev.vote_count == cur.vote_count:
            assert prev.rank == cur.rank
            assert prev.is_tied and cur.is_tied
    # Recomputing on identical inputs gives identical output.
    assert compute_results(costumes, initial, revotes) == out


def test_detect_first_place_tie():
    costumes = [_costume("A"), _costume("B"), _costume("C")]
    tied = detect_first_place_tie(compute_results(costumes, _votes("A", 2) + _votes("B", 2), []))
    assert {row.id for row in tied} == {"A", "B"}

    no_tie = detect_first_place_tie(compute_results(costumes, _votes("A", 2) + _votes("B", 1), []))
    assert no_tie == ()

    # Everybody tied at zero votes is not a first-place tie.
    assert detect_first_place_tie(compute_results(costumes, [], [])) == ()
    assert detect_first_place_tie(compute_results([_costume("A")], _votes("A", 1), [])) == ()


def test_revote_candidates_excludes_tied_owners():
    costumes = [_costume("A", "alice"), _costume("B", "bob"), _costume("C", "carol")]
    results = compute_results(costumes, _votes("A", 3) + _votes("B", 3) + _votes("C", 1), [])
    candidates = revote_candidates(results)

    assert candidates is not None
    assert set(candidates.costume_ids) == {"A", "B"}
    assert set(candidates.excluded_user_ids) == {"alice", "bob"}
    assert revote_candidates(compute_results(costumes, _votes("C", 1), [])) is None


def test_podium_includes_shared_ranks():
    costumes = [_costume(c) for c in "ABCDE"]
    votes = _votes("A", 5) + _votes("B", 4) + _votes("C", 3) + _votes("D", 3) + _votes("E", 1)
    top = podium(compute_results(costumes, votes, []))
    assert [row.id for row in top] == ["A", "B", "C", "D"]


def test_podium_place_count_is_respected():
    costumes = [_costume(c) for c in "ABCD"]
    votes = _votes("B", 3) + _votes("A", 2) + _votes("C", 1)
    results = compute_results(costumes, votes, [])
    assert [row.id for row in podium(results, 0)] == ["B"]
    assert [row.id for row in podium(results, 1)] == ["B"]
    assert [row.id for row in podium(results, None)] == ["B", "A", "C"]


def test_unvoted_users_checks_the_active_round():
    users = [UserProfile(uid="u1"), UserProfile(uid="u2"), UserProfile(uid="u3")]
    initial = [Vote(id="v1", voter_id="u1", costume_id="A")]
    revotes = [Vote(id="r1", voter_id="u2", costume_id="A")]

    assert [u.uid for u in unvoted_users(users, initial, revotes)] == ["u2", "u3"]
    assert [u.uid for u in unvoted_users(users, initial, revotes, revote_mode=True)] == ["u1", "u3"]
