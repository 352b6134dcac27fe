"""Vote casting and eligibility rules.

A voter holds at most one vote per collection: the initial round writes to
``votes``, a tie-break round writes to ``revotes``. Re-voting moves the
existing vote instead of adding a second one; the store performs the lookup
and the write as one conditional upsert keyed by voterId.
"""
from __future__ import annotations

import logging
from datetime import datetime

from .config import ContestConfig, config as default_config
from .contest import utcnow
from .errors import StoreError, VoteRejected
from .records import ContestSettings, Costume, Vote, costume_from_doc, vote_from_doc
from .store import DocumentStore

logger = logging.getLogger(__name__)


def target_collection(settings: ContestSettings, cfg: ContestConfig | None = None) -> str:
    cfg = cfg or default_config
    return cfg.REVOTES_COLLECTION if settings.revote_mode else cfg.VOTES_COLLECTION


def check_vote_eligibility(
    costume: Costume | None,
    costume_id: str,
    voter_id: str,
    settings: ContestSettings,
) -> None:
    """Raise VoteRejected when ``voter_id`` may not vote for ``costume_id`` right now."""
    if not settings.voting_enabled:
        raise VoteRejected("Voting is currently closed", reason="voting_closed")
    if settings.revote_mode:
        if voter_id in settings.revote_excluded_user_ids:
            raise VoteRejected(
                "You are excluded from the tie-breaker vote", reason="excluded_from_revote"
            )
        if costume_id not in settings.revote_costume_ids:
            raise VoteRejected(
                "This costume is not part of the tie-breaker vote", reason="not_in_revote"
            )
    if costume is None:
        raise VoteRejected("Costume not found", reason="unknown_costume")
    if costume.user_id == voter_id and not settings.allow_self_vote:
        raise VoteRejected(
            "Voting for your own costume is not allowed", reason="self_vote_not_allowed"
        )


def can_vote(
    costume: Costume | None, voter_id: str | None, settings: ContestSettings
) -> bool:
    if not voter_id or costume is None:
        return False
    try:
        check_vote_eligibility(costume, costume.id, voter_id, settings)
    except VoteRejected:
        return False
    return True


def cast_vote(
    store: DocumentStore,
    costume_id: str,
    voter_id: str,
    settings: ContestSettings,
    *,
    cfg: ContestConfig | None = None,
    now: datetime | None = None,
) -> Vote:
    """Record ``voter_id``'s vote for ``costume_id`` in the current round.

    Raises:
        VoteRejected: the settings do not allow this vote
        StoreError: the store lookup or write failed
    """
    cfg = cfg or default_config
    costume_doc = store.get(cfg.COSTUMES_COLLECTION, costume_id)
    costume = costume_from_doc(costume_id, costume_doc) if costume_doc is not None else None
    try:
        check_vote_eligibility(costume, costume_id, voter_id, settings)
    except VoteRejected as exc:
        logger.warning(f"Vote by {voter_id} for {costume_id} rejected: {exc.reason}")
        raise

    collection = target_collection(settings, cfg)
    doc_id, doc = store.upsert_where(
        collection,
        "voterId",
        voter_id,
        {"costumeId": costume_id, "timestamp": now or utcnow()},
    )
    vote = vote_from_doc(doc_id, doc)
    if vote is None:
        raise StoreError(f"store returned a malformed vote {collection}/{doc_id}")
    logger.info(f"Recorded vote {doc_id} by {voter_id} for {costume_id} in {collection}")
    return vote


def current_vote(
    store: DocumentStore,
    voter_id: str,
    settings: ContestSettings,
    *,
    cfg: ContestConfig | None = None,
) -> Vote | None:
    collection = target_collection(settings, cfg)
    for doc_id, doc in store.find(collection, "voterId", voter_id):
        vote = vote_from_doc(doc_id, doc)
        if vote is not None:
            return vote
    return None


def remove_vote(
    store: DocumentStore,
    voter_id: str,
    settings: ContestSettings,
    *,
    cfg: ContestConfig | None = None,
) -> bool:
    """Withdraw the voter's vote in the current round; False when there was none."""
    collection = target_collection(settings, cfg)
    matches = store.find(collection, "voterId", voter_id)
    for doc_id, _ in matches:
        store.delete(collection, doc_id)
    if matches:
        logger.info(f"Removed vote by {voter_id} from {collection}")
    return bool(matches)
