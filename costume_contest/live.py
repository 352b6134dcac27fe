"""Live snapshot cache over the four subscribed collections.

Subscription callbacks are the only writers. Each callback converts the raw
snapshot into typed records, replaces its slice of the cache and recomputes
the results synchronously. A failing subscription keeps the last-known-good
snapshot.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .config import ContestConfig, config as default_config
from .records import (
    ContestSettings,
    Costume,
    CostumeResult,
    Vote,
    costumes_from_snapshot,
    settings_from_doc,
    votes_from_snapshot,
)
from .results import compute_results
from .store import DocumentStore, Snapshot, Unsubscribe

logger = logging.getLogger(__name__)

Listener = Callable[["LiveContest"], None]


class LiveContest:
    def __init__(self, cfg: ContestConfig | None = None) -> None:
        self.cfg = cfg or default_config
        self.costumes: tuple[Costume, ...] = ()
        self.votes: tuple[Vote, ...] = ()
        self.revotes: tuple[Vote, ...] = ()
        self.settings: ContestSettings = ContestSettings()
        self.settings_loaded = False
        self.results: tuple[CostumeResult, ...] = ()
        self.errors: Dict[str, Exception] = {}
        self._listeners: List[Listener] = []

    # ------------------------------------------------------- callbacks

    def on_costumes(self, snapshot: Snapshot) -> None:
        self.costumes = tuple(costumes_from_snapshot(snapshot))
        self.errors.pop(self.cfg.COSTUMES_COLLECTION, None)
        self._recompute()

    def on_votes(self, snapshot: Snapshot) -> None:
        self.votes = tuple(votes_from_snapshot(snapshot))
        self.errors.pop(self.cfg.VOTES_COLLECTION, None)
        self._recompute()

    def on_revotes(self, snapshot: Snapshot) -> None:
        self.revotes = tuple(votes_from_snapshot(snapshot))
        self.errors.pop(self.cfg.REVOTES_COLLECTION, None)
        self._recompute()

    def on_settings(self, doc: Optional[Dict[str, Any]]) -> None:
        # A missing record reads as defaults until an admin creates it.
        self.settings = settings_from_doc(doc)
        self.settings_loaded = True
        self.errors.pop(self.cfg.SETTINGS_COLLECTION, None)
        self._notify()

    def on_error(self, collection: str, exc: Exception) -> None:
        logger.error(f"Error listening to {collection}: {exc}")
        self.errors[collection] = exc
        self._notify()

    # ------------------------------------------------------ recompute

    def _recompute(self) -> None:
        self.results = compute_results(self.costumes, self.votes, self.revotes)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ---------------------------------------------------------- wiring

    def attach(self, store: DocumentStore) -> Unsubscribe:
        """Subscribe to costumes, votes, revotes and settings; returns a teardown callable."""
        cfg = self.cfg

        def error_handler(collection: str) -> Callable[[Exception], None]:
            return lambda exc: self.on_error(collection, exc)

        unsubscribers = [
            store.subscribe(
                cfg.COSTUMES_COLLECTION, self.on_costumes, error_handler(cfg.COSTUMES_COLLECTION)
            ),
            store.subscribe(cfg.VOTES_COLLECTION, self.on_votes, error_handler(cfg.VOTES_COLLECTION)),
            store.subscribe(
                cfg.REVOTES_COLLECTION, self.on_revotes, error_handler(cfg.REVOTES_COLLECTION)
            ),
            store.subscribe_doc(
                cfg.SETTINGS_COLLECTION,
                cfg.SETTINGS_DOC_ID,
                self.on_settings,
                error_handler(cfg.SETTINGS_COLLECTION),
            ),
        ]

        def unsubscribe() -> None:
            for unsub in unsubscribers:
                unsub()

        return unsubscribe

    # -------------------------------------------------------- lookups

    def user_costume(self, user_id: str) -> Costume | None:
        for costume in self.costumes:
            if costume.user_id == user_id:
                return costume
        return None

    def user_vote(self, user_id: str) -> Vote | None:
        votes = self.revotes if self.settings.revote_mode else self.votes
        for vote in votes:
            if vote.voter_id == user_id:
                return vote
        return None

    def result_for(self, costume_id: str) -> CostumeResult | None:
        for row in self.results:
            if row.id == costume_id:
                return row
        return None

    def revote_results(self) -> tuple[CostumeResult, ...]:
        """Results restricted to the costumes in the current tie-break round."""
        if not self.settings.revote_mode:
            return ()
        return tuple(row for row in self.results if row.id in self.settings.revote_costume_ids)
