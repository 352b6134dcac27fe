"""Costume result aggregation (vote tally + competition ranking with tie flags).

Single source of truth for results across voting, admin and announcement views:
- voteCount = initial votes + tie-break votes.
- Sorted by voteCount descending; equal counts keep input order.
- rank = 1 + position of the first entry sharing the same voteCount.
- isTied = another entry shares the same voteCount (and therefore the same rank).
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Sequence

from .records import Costume, CostumeResult, UserProfile, Vote


@dataclass(frozen=True)
class RevoteCandidates:
    costume_ids: tuple[str, ...]
    excluded_user_ids: tuple[str, ...]


@dataclass
class _TallyItem:
    costume: Costume
    initial: int
    revote: int

    @property
    def total(self) -> int:
        return self.initial + self.revote


def _count_by_costume(votes: Iterable[Vote]) -> Counter[str]:
    return Counter(vote.costume_id for vote in votes)


def _to_result(item: _TallyItem, rank: int, is_tied: bool) -> CostumeResult:
    return CostumeResult(
        costume=item.costume,
        vote_count=item.total,
        initial_vote_count=item.initial,
        revote_vote_count=item.revote,
        rank=rank,
        is_tied=is_tied,
    )


def compute_results(
    costumes: Sequence[Costume],
    initial_votes: Iterable[Vote],
    revote_votes: Iterable[Vote],
) -> tuple[CostumeResult, ...]:
    """
    Tally votes per costume and rank the costumes.

    Args:
      costumes: costumes currently in the contest (input order breaks ties).
      initial_votes: votes from the initial round.
      revote_votes: votes from the tie-break round.

    Votes for costumes that are not in ``costumes`` are not attributed.
    """
    initial_counts = _count_by_costume(initial_votes)
    revote_counts = _count_by_costume(revote_votes)

    items = [
        _TallyItem(
            costume=costume,
            initial=initial_counts.get(costume.id, 0),
            revote=revote_counts.get(costume.id, 0),
        )
        for costume in costumes
    ]
    # sorted() is stable: equal totals keep the incoming order.
    items = sorted(items, key=lambda item: -item.total)

    rows: list[CostumeResult] = []
    i = 0
    while i < len(items):
        current_total = items[i].total
        j = i + 1
        while j < len(items) and items[j].total == current_total:
            j += 1
        group = items[i:j]
        rank = i + 1
        is_tied = len(group) > 1
        for item in group:
            rows.append(_to_result(item, rank, is_tied))
        i = j
    return tuple(rows)


def detect_first_place_tie(results: Sequence[CostumeResult]) -> tuple[CostumeResult, ...]:
    """Rank-1 entries when two or more share first place with at least one vote."""
    if len(results) < 2:
        return ()
    first_place = tuple(row for row in results if row.rank == 1)
    if len(first_place) > 1 and first_place[0].vote_count > 0:
        return first_place
    return ()


def revote_candidates(results: Sequence[CostumeResult]) -> RevoteCandidates | None:
    tied = detect_first_place_tie(results)
    if not tied:
        return None
    owners: list[str] = []
    for row in tied:
        if row.user_id and row.user_id not in owners:
            owners.append(row.user_id)
    return RevoteCandidates(
        costume_ids=tuple(row.id for row in tied),
        excluded_user_ids=tuple(owners),
    )


def podium(results: Sequence[CostumeResult], places: int | None = 3) -> tuple[CostumeResult, ...]:
    places = 3 if places is None else max(1, int(places))
    return tuple(row for row in results if row.rank <= places)


def unvoted_users(
    users: Iterable[UserProfile],
    initial_votes: Iterable[Vote],
    revote_votes: Iterable[Vote] = (),
    revote_mode: bool = False,
) -> list[UserProfile]:
    votes_to_check = revote_votes if revote_mode else initial_votes
    voted_ids = {vote.voter_id for vote in votes_to_check}
    return [user for user in users if user.uid not in voted_ids]
