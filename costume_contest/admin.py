"""Contest phase controller: admin actions carried out against the store.

Each action folds one or more pure transitions from contest.py, then writes the
settings change together with any bulk record deletion as a single batch, split
into BATCH_LIMIT sized chunks (settings write first) when it does not fit.
Image deletion runs afterwards and is best-effort: failures are logged and
reported, never rolled back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Sequence

from .config import ContestConfig, config as default_config
from .contest import COSTUMES, REVOTES, VOTES, CommandOutcome, apply_command, default_settings, utcnow
from .costumes import costume_image_path
from .errors import NotFound
from .identity import require_admin
from .records import ContestSettings, CostumeResult, UserProfile, settings_from_doc, user_from_doc
from .results import revote_candidates
from .store import DocumentStore, ObjectStore, WriteBatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResetReport:
    deleted_votes: int
    deleted_revotes: int
    deleted_costumes: int
    cleared_users: int
    deleted_images: int
    failed_images: tuple[str, ...] = ()

    @property
    def images_complete(self) -> bool:
        return not self.failed_images


@dataclass(frozen=True)
class CloseVotingResult:
    auto_revote_triggered: bool
    settings: ContestSettings
    tied_costume_ids: tuple[str, ...] = ()
    excluded_user_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class RevoteStatus:
    can_end: bool
    eligible_voters: int = 0
    voted_voters: int = 0
    remaining_voter_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class UserDeletion:
    deleted_costumes: int
    deleted_votes: int
    deleted_revote_votes: int
    deleted_images: int


@dataclass
class _ImagePass:
    deleted: int = 0
    failed: list[str] = field(default_factory=list)


class ContestController:
    """Admin-triggered phase transitions over the shared settings record."""

    def __init__(
        self,
        store: DocumentStore,
        images: ObjectStore,
        cfg: ContestConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.images = images
        self.cfg = cfg or default_config
        self.clock = clock

    # ---------------------------------------------------------- helpers

    def _collection(self, logical: str) -> str:
        return {
            VOTES: self.cfg.VOTES_COLLECTION,
            REVOTES: self.cfg.REVOTES_COLLECTION,
            COSTUMES: self.cfg.COSTUMES_COLLECTION,
        }[logical]

    def _authorize(self, actor: UserProfile | None) -> None:
        # actor=None is a trusted caller (scripts, tests); anyone else must be admin.
        if actor is not None:
            require_admin(actor, self.cfg)

    def _commit(self, ops: List[Callable[[WriteBatch], None]], label: str) -> None:
        """Commit ``ops`` in one batch, or in BATCH_LIMIT sized chunks when they do not fit."""
        limit = max(1, self.cfg.BATCH_LIMIT)
        if len(ops) > limit:
            logger.warning(f"{label}: {len(ops)} operations exceed one batch; committing in chunks")
        for start in range(0, len(ops), limit):
            batch = self.store.batch()
            for op in ops[start : start + limit]:
                op(batch)
            try:
                batch.commit()
            except Exception as exc:
                logger.error(f"Error committing {label} batch: {exc}")
                raise

    def load_settings(self) -> ContestSettings | None:
        doc = self.store.get(self.cfg.SETTINGS_COLLECTION, self.cfg.SETTINGS_DOC_ID)
        return settings_from_doc(doc) if doc is not None else None

    def ensure_settings(self) -> ContestSettings:
        """Return the settings record, creating it with defaults when absent."""
        current = self.load_settings()
        if current is not None:
            return current
        created = default_settings(self.clock())
        self.store.set(self.cfg.SETTINGS_COLLECTION, self.cfg.SETTINGS_DOC_ID, created.to_doc())
        logger.info("Created default contest settings")
        return created

    def _run(
        self, cmds: Sequence[Dict[str, Any]], actor: UserProfile | None
    ) -> tuple[ContestSettings, Dict[str, int]]:
        self._authorize(actor)
        before = self.ensure_settings()
        now = self.clock()

        settings = before
        clear: list[str] = []
        clear_images = False
        reset_users = False
        for cmd in cmds:
            outcome: CommandOutcome = apply_command(settings, cmd, now=now)
            settings = outcome.settings
            clear.extend(c for c in outcome.clear_collections if c not in clear)
            clear_images = clear_images or outcome.clear_images
            reset_users = reset_users or outcome.reset_user_contest_fields

        # The settings write leads the first chunk, so a partially committed
        # command already shows the new phase.
        new_doc = settings.to_doc()
        if clear_images:
            # Full rewrite: a reset replaces whatever the record held.
            ops: List[Callable[[WriteBatch], None]] = [
                lambda b: b.set(self.cfg.SETTINGS_COLLECTION, self.cfg.SETTINGS_DOC_ID, new_doc)
            ]
        else:
            old_doc = before.to_doc()
            changed = {k: v for k, v in new_doc.items() if old_doc.get(k) != v}
            changed["lastUpdated"] = new_doc["lastUpdated"]
            ops = [
                lambda b: b.update(self.cfg.SETTINGS_COLLECTION, self.cfg.SETTINGS_DOC_ID, changed)
            ]

        counts: Dict[str, int] = {}
        for logical in clear:
            collection = self._collection(logical)
            snapshot = self.store.list(collection)
            counts[logical] = len(snapshot)
            for doc_id, _ in snapshot:
                ops.append(lambda b, c=collection, d=doc_id: b.delete(c, d))

        if reset_users:
            users = self.store.list(self.cfg.USERS_COLLECTION)
            counts["users"] = len(users)
            for uid, _ in users:
                ops.append(
                    lambda b, u=uid: b.update(
                        self.cfg.USERS_COLLECTION,
                        u,
                        {"costumeSubmitted": False, "costumeId": None, "lastCostumeSubmission": None},
                    )
                )

        label = "+".join(str(cmd.get("type")) for cmd in cmds)
        self._commit(ops, label)
        return settings, counts

    def _apply(self, cmd: Dict[str, Any], actor: UserProfile | None) -> ContestSettings:
        settings, _ = self._run([cmd], actor)
        return settings

    # ---------------------------------------------------------- toggles

    def toggle_voting(self, enabled: bool, *, actor: UserProfile | None = None) -> ContestSettings:
        return self._apply({"type": "SET_VOTING", "enabled": enabled}, actor)

    def toggle_results(self, visible: bool, *, actor: UserProfile | None = None) -> ContestSettings:
        return self._apply({"type": "SET_RESULTS", "enabled": visible}, actor)

    def toggle_self_vote(self, allowed: bool, *, actor: UserProfile | None = None) -> ContestSettings:
        return self._apply({"type": "SET_SELF_VOTE", "enabled": allowed}, actor)

    def toggle_auto_revote(self, enabled: bool, *, actor: UserProfile | None = None) -> ContestSettings:
        return self._apply({"type": "SET_AUTO_REVOTE", "enabled": enabled}, actor)

    # ----------------------------------------------------------- revote

    def start_revote(
        self,
        tied_costume_ids: Iterable[str],
        excluded_user_ids: Iterable[str] = (),
        *,
        actor: UserProfile | None = None,
    ) -> ContestSettings:
        tied = list(tied_costume_ids)
        excluded = list(excluded_user_ids)
        settings, deleted = self._run(
            [{"type": "START_REVOTE", "tiedCostumeIds": tied, "excludedUserIds": excluded}],
            actor,
        )
        logger.info(
            f"Started revote for {len(settings.revote_costume_ids)} tied costumes, "
            f"excluded users: {len(settings.revote_excluded_user_ids)}, "
            f"cleared {deleted.get(VOTES, 0)} initial votes and {deleted.get(REVOTES, 0)} earlier revotes"
        )
        return settings

    def end_revote(self, *, actor: UserProfile | None = None) -> ContestSettings:
        settings = self._apply({"type": "END_REVOTE"}, actor)
        logger.info("Ended revote")
        return settings

    def check_revote_completion(self, users: Iterable[UserProfile] | None = None) -> RevoteStatus:
        settings = self.ensure_settings()
        if not settings.revote_mode:
            return RevoteStatus(can_end=False)
        if users is None:
            users = [user_from_doc(uid, doc) for uid, doc in self.store.list(self.cfg.USERS_COLLECTION)]
        eligible = [u.uid for u in users if u.uid not in settings.revote_excluded_user_ids]
        voted = {
            doc.get("voterId")
            for _, doc in self.store.list(self.cfg.REVOTES_COLLECTION)
            if doc.get("voterId")
        }
        remaining = tuple(uid for uid in eligible if uid not in voted)
        return RevoteStatus(
            can_end=not remaining,
            eligible_voters=len(eligible),
            voted_voters=len(voted),
            remaining_voter_ids=remaining,
        )

    def close_voting(
        self, results: Sequence[CostumeResult], *, actor: UserProfile | None = None
    ) -> CloseVotingResult:
        """Close voting and reveal results, or open a tie-break round for a first-place tie.

        A tie-break round is opened only from the initial round and only when
        autoRevoteEnabled is set; closing a tie-break round always reveals results.
        """
        settings = self.ensure_settings()
        if settings.revote_mode:
            closed, _ = self._run([{"type": "END_REVOTE"}, {"type": "CLOSE_VOTING"}], actor)
            return CloseVotingResult(auto_revote_triggered=False, settings=closed)

        candidates = revote_candidates(results) if settings.auto_revote_enabled else None
        if candidates is not None:
            started = self.start_revote(
                candidates.costume_ids, candidates.excluded_user_ids, actor=actor
            )
            return CloseVotingResult(
                auto_revote_triggered=True,
                settings=started,
                tied_costume_ids=candidates.costume_ids,
                excluded_user_ids=candidates.excluded_user_ids,
            )

        closed = self._apply({"type": "CLOSE_VOTING"}, actor)
        return CloseVotingResult(auto_revote_triggered=False, settings=closed)

    # ------------------------------------------------------------ reset

    def _delete_images(self, paths: Iterable[str]) -> _ImagePass:
        result = _ImagePass()
        for path in paths:
            try:
                self.images.delete(path)
                result.deleted += 1
            except NotFound:
                logger.info(f"Image not found (may already be deleted): {path}")
            except Exception as exc:
                logger.error(f"Error deleting image {path}: {exc}")
                result.failed.append(path)
        return result

    def reset_contest(self, *, actor: UserProfile | None = None) -> ResetReport:
        """Delete every vote, revote and costume, reset settings, then delete images."""
        logger.info("Starting contest reset...")
        _, deleted = self._run([{"type": "RESET_CONTEST"}], actor)

        try:
            paths = self.images.list(self.cfg.IMAGE_PREFIX)
        except Exception as exc:
            logger.error(f"Error listing images under {self.cfg.IMAGE_PREFIX}: {exc}")
            logger.warning("Continuing with reset despite storage error")
            image_pass = _ImagePass(failed=[self.cfg.IMAGE_PREFIX])
        else:
            image_pass = self._delete_images(paths)

        report = ResetReport(
            deleted_votes=deleted.get(VOTES, 0),
            deleted_revotes=deleted.get(REVOTES, 0),
            deleted_costumes=deleted.get(COSTUMES, 0),
            cleared_users=deleted.get("users", 0),
            deleted_images=image_pass.deleted,
            failed_images=tuple(image_pass.failed),
        )
        if report.images_complete:
            logger.info(f"Contest reset completed: {report}")
        else:
            logger.warning(f"Contest reset completed with orphaned images: {report.failed_images}")
        return report

    # ------------------------------------------------------------ users

    def delete_user(self, user_id: str, *, actor: UserProfile | None = None) -> UserDeletion:
        """Cascade delete a user: costumes, costume image, votes in both rounds, user document."""
        self._authorize(actor)
        user_doc = self.store.get(self.cfg.USERS_COLLECTION, user_id)
        if user_doc is None:
            raise NotFound("User not found")
        user = user_from_doc(user_id, user_doc)
        logger.info(f"Deleting user: {user.email or user_id}")

        costumes = self.store.find(self.cfg.COSTUMES_COLLECTION, "userId", user_id)
        votes = self.store.find(self.cfg.VOTES_COLLECTION, "voterId", user_id)
        revotes = self.store.find(self.cfg.REVOTES_COLLECTION, "voterId", user_id)

        ops: List[Callable[[WriteBatch], None]] = []
        for collection, snapshot in (
            (self.cfg.COSTUMES_COLLECTION, costumes),
            (self.cfg.VOTES_COLLECTION, votes),
            (self.cfg.REVOTES_COLLECTION, revotes),
        ):
            for doc_id, _ in snapshot:
                ops.append(lambda b, c=collection, d=doc_id: b.delete(c, d))
        # The user document goes last; the image path needs its display name.
        ops.append(lambda b: b.delete(self.cfg.USERS_COLLECTION, user_id))
        self._commit(ops, f"user {user_id} deletion")

        image_pass = self._delete_images(
            [costume_image_path(user_id, user.display_name or "user", self.cfg)]
        )
        logger.info(f"User deletion completed for: {user.email or user_id}")
        return UserDeletion(
            deleted_costumes=len(costumes),
            deleted_votes=len(votes),
            deleted_revote_votes=len(revotes),
            deleted_images=image_pass.deleted,
        )
