"""Typed records for live-synced documents.

The store hands back loosely shaped dicts; everything past the subscription
boundary works with the frozen dataclasses below. All defaulting of missing
or malformed fields happens in the ``*_from_doc`` helpers of this module.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from .types import CostumeDoc, SettingsDoc, UserDoc, VoteDoc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Costume:
    id: str
    user_id: str
    name: str
    description: str = ""
    user_name: str = "Anonymous"
    image_url: str | None = None
    submitted_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class Vote:
    id: str
    voter_id: str
    costume_id: str
    timestamp: datetime | None = None


@dataclass(frozen=True)
class ContestSettings:
    voting_enabled: bool = False
    results_visible: bool = False
    allow_self_vote: bool = False
    contest_active: bool = True
    auto_revote_enabled: bool = True
    revote_mode: bool = False
    revote_costume_ids: frozenset[str] = field(default_factory=frozenset)
    revote_excluded_user_ids: frozenset[str] = field(default_factory=frozenset)
    last_reset: datetime | None = None
    last_updated: datetime | None = None

    def to_doc(self) -> dict[str, Any]:
        return {
            "votingEnabled": self.voting_enabled,
            "resultsVisible": self.results_visible,
            "allowSelfVote": self.allow_self_vote,
            "contestActive": self.contest_active,
            "autoRevoteEnabled": self.auto_revote_enabled,
            "revoteMode": self.revote_mode,
            "revoteCostumeIds": sorted(self.revote_costume_ids),
            "revoteExcludedUserIds": sorted(self.revote_excluded_user_ids),
            "lastReset": self.last_reset,
            "lastUpdated": self.last_updated,
        }


@dataclass(frozen=True)
class UserProfile:
    uid: str
    email: str = ""
    display_name: str = ""
    role: str = "user"
    email_verified: bool = False


@dataclass(frozen=True)
class CostumeResult:
    costume: Costume
    vote_count: int
    initial_vote_count: int
    revote_vote_count: int
    rank: int
    is_tied: bool

    @property
    def id(self) -> str:
        return self.costume.id

    @property
    def user_id(self) -> str:
        return self.costume.user_id

    @property
    def name(self) -> str:
        return self.costume.name


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off", ""}:
            return False
    return default


def _coerce_str(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return default
    return str(value)


def _coerce_id_set(value: Any) -> frozenset[str]:
    if not isinstance(value, (list, tuple, set, frozenset)):
        return frozenset()
    return frozenset(str(item) for item in value if isinstance(item, str) and item)


def _coerce_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    # Firestore-style Timestamp objects expose to_datetime()/toDate()
    to_datetime = getattr(value, "to_datetime", None)
    if callable(to_datetime):
        return to_datetime()
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def costume_from_doc(doc_id: str, doc: CostumeDoc | Mapping[str, Any]) -> Costume:
    image_url = doc.get("imageUrl")
    return Costume(
        id=doc_id,
        user_id=_coerce_str(doc.get("userId")),
        name=_coerce_str(doc.get("name")),
        description=_coerce_str(doc.get("description")),
        user_name=_coerce_str(doc.get("userName"), "Anonymous") or "Anonymous",
        image_url=image_url if isinstance(image_url, str) and image_url else None,
        submitted_at=_coerce_timestamp(doc.get("submittedAt")),
        updated_at=_coerce_timestamp(doc.get("updatedAt")),
    )


def vote_from_doc(doc_id: str, doc: VoteDoc | Mapping[str, Any]) -> Vote | None:
    voter_id = doc.get("voterId")
    costume_id = doc.get("costumeId")
    if not isinstance(voter_id, str) or not voter_id:
        return None
    if not isinstance(costume_id, str) or not costume_id:
        return None
    return Vote(
        id=doc_id,
        voter_id=voter_id,
        costume_id=costume_id,
        timestamp=_coerce_timestamp(doc.get("timestamp")),
    )


def settings_from_doc(doc: SettingsDoc | Mapping[str, Any] | None) -> ContestSettings:
    if not doc:
        return ContestSettings()
    return ContestSettings(
        voting_enabled=_coerce_bool(doc.get("votingEnabled"), False),
        results_visible=_coerce_bool(doc.get("resultsVisible"), False),
        allow_self_vote=_coerce_bool(doc.get("allowSelfVote"), False),
        contest_active=_coerce_bool(doc.get("contestActive"), True),
        auto_revote_enabled=_coerce_bool(doc.get("autoRevoteEnabled"), True),
        revote_mode=_coerce_bool(doc.get("revoteMode"), False),
        revote_costume_ids=_coerce_id_set(doc.get("revoteCostumeIds")),
        revote_excluded_user_ids=_coerce_id_set(doc.get("revoteExcludedUserIds")),
        last_reset=_coerce_timestamp(doc.get("lastReset")),
        last_updated=_coerce_timestamp(doc.get("lastUpdated")),
    )


def user_from_doc(doc_id: str, doc: UserDoc | Mapping[str, Any]) -> UserProfile:
    return UserProfile(
        uid=_coerce_str(doc.get("uid"), doc_id) or doc_id,
        email=_coerce_str(doc.get("email")),
        display_name=_coerce_str(doc.get("displayName")),
        role=_coerce_str(doc.get("role"), "user") or "user",
        email_verified=_coerce_bool(doc.get("emailVerified"), False),
    )


def costumes_from_snapshot(docs: Iterable[tuple[str, Mapping[str, Any]]]) -> list[Costume]:
    return [costume_from_doc(doc_id, doc) for doc_id, doc in docs]


def votes_from_snapshot(docs: Iterable[tuple[str, Mapping[str, Any]]]) -> list[Vote]:
    votes: list[Vote] = []
    for doc_id, doc in docs:
        vote = vote_from_doc(doc_id, doc)
        if vote is None:
            logger.warning(f"Skipping malformed vote document {doc_id}")
            continue
        votes.append(vote)
    return votes
