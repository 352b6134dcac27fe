"""Core contest phase transitions (pure, no store access).

This module implements the admin-driven phase logic for the costume contest.
All functions are deterministic and side-effect free (no I/O, no store calls).

Architecture:
- Settings are an immutable ContestSettings record (see records.py)
- Commands are plain dicts with a 'type' field (SET_VOTING, START_REVOTE, RESET_CONTEST, ...)
- apply_command() takes (settings, cmd) and returns CommandOutcome with the new settings
- Bulk store work a transition needs (clearing vote collections, deleting images)
  is returned as instructions; ContestController (admin.py) carries it out

Phases:
- submission: voting closed, results hidden
- voting: votingEnabled and not revoteMode
- revote: votingEnabled and revoteMode (tie-break round)
- results: voting closed, results visible

State transitions:
- SET_VOTING / SET_RESULTS / SET_SELF_VOTE / SET_AUTO_REVOTE: flag writes
- START_REVOTE: clears initial votes, opens a tie-break round scoped to tied costumes
- END_REVOTE: closes the tie-break round and clears its scope
- CLOSE_VOTING: closes voting and reveals results
- RESET_CONTEST: default settings with lastReset stamped; clears every collection and image
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from .records import ContestSettings
from .validation import InputSanitizer

# Logical collection names; ContestController maps them to store collections.
VOTES = "votes"
REVOTES = "revotes"
COSTUMES = "costumes"

PHASE_SUBMISSION = "submission"
PHASE_VOTING = "voting"
PHASE_REVOTE = "revote"
PHASE_RESULTS = "results"


@dataclass
class CommandOutcome:
    """Result of applying an admin command."""

    settings: ContestSettings
    cmd_payload: Dict[str, Any]
    clear_collections: Tuple[str, ...] = ()
    clear_images: bool = False
    reset_user_contest_fields: bool = False


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_settings(now: datetime | None = None) -> ContestSettings:
    """Create fresh contest settings.

    Args:
        now: Timestamp stamped into lastReset/lastUpdated; current UTC time if omitted

    Returns:
        ContestSettings with voting closed, results hidden, self-votes disallowed,
        contest active, auto-revote enabled and no tie-break round.
    """
    stamp = now or utcnow()
    return ContestSettings(last_reset=stamp, last_updated=stamp)


def contest_phase(settings: ContestSettings) -> str:
    if settings.voting_enabled:
        return PHASE_REVOTE if settings.revote_mode else PHASE_VOTING
    if settings.results_visible:
        return PHASE_RESULTS
    return PHASE_SUBMISSION


def _apply_transition(
    settings: ContestSettings, cmd: Dict[str, Any], now: datetime
) -> CommandOutcome:
    """Apply a validated admin command.

    Args:
        settings: Current settings (never mutated; records are frozen)
        cmd: Command dict with 'type' field and command-specific params
        now: Timestamp for lastUpdated (and lastReset on RESET_CONTEST)

    Returns:
        CommandOutcome with the new settings, the normalized payload and
        the bulk operations the caller must run against the store.
    """
    validated = InputSanitizer.validate_admin_cmd(cmd)
    ctype = validated.type
    payload = validated.model_dump(exclude_none=True)
    clear_collections: Tuple[str, ...] = ()
    clear_images = False
    reset_users = False

    if ctype == "SET_VOTING":
        new_settings = replace(settings, voting_enabled=bool(validated.enabled))

    elif ctype == "SET_RESULTS":
        new_settings = replace(settings, results_visible=bool(validated.enabled))

    elif ctype == "SET_SELF_VOTE":
        new_settings = replace(settings, allow_self_vote=bool(validated.enabled))

    elif ctype == "SET_AUTO_REVOTE":
        new_settings = replace(settings, auto_revote_enabled=bool(validated.enabled))

    elif ctype == "START_REVOTE":
        # Initial-round votes and any earlier tie-break ballots are discarded;
        # every round starts empty.
        new_settings = replace(
            settings,
            voting_enabled=True,
            results_visible=False,
            revote_mode=True,
            revote_costume_ids=frozenset(validated.tiedCostumeIds or []),
            revote_excluded_user_ids=frozenset(validated.excludedUserIds or []),
        )
        clear_collections = (VOTES, REVOTES)

    elif ctype == "END_REVOTE":
        new_settings = replace(
            settings,
            voting_enabled=False,
            revote_mode=False,
            revote_costume_ids=frozenset(),
            revote_excluded_user_ids=frozenset(),
        )

    elif ctype == "CLOSE_VOTING":
        new_settings = replace(settings, voting_enabled=False, results_visible=True)

    else:  # RESET_CONTEST
        new_settings = default_settings(now)
        clear_collections = (VOTES, REVOTES, COSTUMES)
        clear_images = True
        reset_users = True

    new_settings = replace(new_settings, last_updated=now)
    return CommandOutcome(
        settings=new_settings,
        cmd_payload=payload,
        clear_collections=clear_collections,
        clear_images=clear_images,
        reset_user_contest_fields=reset_users,
    )


def apply_command(
    settings: ContestSettings, cmd: Dict[str, Any], *, now: datetime | None = None
) -> CommandOutcome:
    """Apply an admin command to contest settings.

    Raises:
        ContestValidationError: unknown command type or missing fields
    """
    return _apply_transition(settings, cmd, now or utcnow())


def toggle_payload(kind: str, enabled: bool) -> Dict[str, Any]:
    """Pure helper building a toggle command ('voting', 'results', 'self_vote', 'auto_revote')."""
    types = {
        "voting": "SET_VOTING",
        "results": "SET_RESULTS",
        "self_vote": "SET_SELF_VOTE",
        "auto_revote": "SET_AUTO_REVOTE",
    }
    if kind not in types:
        raise ValueError(f"unknown toggle {kind!r}")
    return {"type": types[kind], "enabled": bool(enabled)}
