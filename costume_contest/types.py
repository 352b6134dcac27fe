"""Type definitions for raw store documents and admin commands."""
from __future__ import annotations

from typing import Any, List, Optional, TypedDict


class CostumeDoc(TypedDict, total=False):
    """A document in the ``costumes`` collection."""
    id: str
    userId: str
    userName: str
    name: str
    description: str
    imageUrl: Optional[str]
    submittedAt: Any
    updatedAt: Any


class VoteDoc(TypedDict, total=False):
    """A document in the ``votes`` or ``revotes`` collection."""
    id: str
    voterId: str
    costumeId: str
    timestamp: Any


class SettingsDoc(TypedDict, total=False):
    """
    The singleton ``appSettings/settings`` document.

    All fields are optional (total=False): older documents were written
    before revote support existed and are defaulted on read.
    """
    # Phase flags
    votingEnabled: bool
    resultsVisible: bool
    allowSelfVote: bool
    contestActive: bool
    autoRevoteEnabled: bool

    # Tie-break round scope
    revoteMode: bool
    revoteCostumeIds: List[str]
    revoteExcludedUserIds: List[str]

    # Bookkeeping
    lastReset: Any
    lastUpdated: Any


class UserDoc(TypedDict, total=False):
    """A document in the ``users`` collection."""
    uid: str
    email: str
    displayName: str
    role: str  # 'user' | 'admin'
    emailVerified: bool
    costumeSubmitted: bool
    costumeId: Optional[str]
    lastCostumeSubmission: Any


class CommandPayload(TypedDict, total=False):
    """
    TypedDict for admin commands sent to apply_command().

    Fields vary by command type.
    """
    type: str

    # SET_VOTING / SET_RESULTS / SET_SELF_VOTE / SET_AUTO_REVOTE
    enabled: Optional[bool]

    # START_REVOTE
    tiedCostumeIds: Optional[List[str]]
    excludedUserIds: Optional[List[str]]
