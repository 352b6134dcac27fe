from datetime import datetime, timezone

import pytest

from costume_contest import (
    ContestConfig,
    ContestController,
    ContestSettings,
    MemoryDocumentStore,
    MemoryObjectStore,
    NotFound,
    PermissionDenied,
    StoreError,
    UploadError,
    UserProfile,
    VoteRejected,
    cast_vote,
    compute_results,
    costume_image_path,
    submit_costume,
    upload_costume_image,
)
from costume_contest.records import costumes_from_snapshot, votes_from_snapshot

NOW = datetime(2025, 10, 31, 20, 0, tzinfo=timezone.utc)
CFG = ContestConfig(ADMIN_EMAILS="boss@example.com")
ADMIN = UserProfile(uid="admin", email="boss@example.com")
GUEST = UserProfile(uid="guest", email="guest@example.com")


class _FlakyImages(MemoryObjectStore):
    def __init__(self, broken: set[str]) -> None:
        super().__init__()
        self.broken = broken

    def delete(self, path: str) -> None:
        if path in self.broken:
            raise OSError(f"storage unavailable for {path}")
        super().delete(path)


def _controller(images=None, cfg=CFG):
    store = MemoryDocumentStore()
    images = images if images is not None else MemoryObjectStore()
    return ContestController(store, images, cfg, clock=lambda: NOW), store, images


def _seed(store, images):
    for uid, name in (("userOfA", "Ann"), ("userOfB", "Ben"), ("userOfC", "Cy"), ("third", "Tia")):
        store.set("users", uid, {"uid": uid, "email": f"{uid}@example.com", "displayName": name})
    ids = {}
    for label, uid, name in (("A", "userOfA", "Ann"), ("B", "userOfB", "Ben"), ("C", "userOfC", "Cy")):
        costume = submit_costume(store, {"name": f"Costume {label}"}, uid, name, cfg=CFG, now=NOW)
        ids[label] = costume.id
        upload_costume_image(images, uid, name, b"\x89PNG...", "image/png", cfg=CFG)
    return ids


def _results(store):
    return compute_results(
        costumes_from_snapshot(store.list("costumes")),
        votes_from_snapshot(store.list("votes")),
        votes_from_snapshot(store.list("revotes")),
    )


def test_ensure_settings_creates_defaults_once():
    controller, store, _ = _controller()
    assert controller.load_settings() is None
    created = controller.ensure_settings()
    assert created.contest_active is True
    assert store.get("appSettings", "settings")["votingEnabled"] is False
    store.update("appSettings", "settings", {"votingEnabled": True})
    assert controller.ensure_settings().voting_enabled is True


def test_toggles_persist_only_changed_fields():
    controller, store, _ = _controller()
    controller.ensure_settings()
    store.update("appSettings", "settings", {"customNote": "keep me"})

    settings = controller.toggle_voting(True, actor=ADMIN)
    assert settings.voting_enabled is True
    doc = store.get("appSettings", "settings")
    assert doc["votingEnabled"] is True
    assert doc["customNote"] == "keep me"

    controller.toggle_results(True, actor=ADMIN)
    controller.toggle_self_vote(True, actor=ADMIN)
    controller.toggle_auto_revote(False, actor=ADMIN)
    doc = store.get("appSettings", "settings")
    assert doc["resultsVisible"] is True
    assert doc["allowSelfVote"] is True
    assert doc["autoRevoteEnabled"] is False


def test_non_admin_is_rejected():
    controller, store, _ = _controller()
    with pytest.raises(PermissionDenied):
        controller.toggle_voting(True, actor=GUEST)
    with pytest.raises(PermissionDenied):
        controller.reset_contest(actor=GUEST)
    assert store.get("appSettings", "settings") is None


def test_admin_role_grants_access_without_allow_list():
    controller, _, _ = _controller()
    role_admin = UserProfile(uid="r", email="r@example.com", role="admin")
    assert controller.toggle_voting(True, actor=role_admin).voting_enabled is True


def test_revote_flow():
    controller, store, images = _controller()
    ids = _seed(store, images)
    settings = controller.toggle_voting(True, actor=ADMIN)
    cast_vote(store, ids["A"], "userOfC", settings, cfg=CFG)
    cast_vote(store, ids["B"], "third", settings, cfg=CFG)

    settings = controller.start_revote(
        [ids["A"], ids["B"]], ["userOfA", "userOfB"], actor=ADMIN
    )
    assert store.list("votes") == []
    assert settings.revote_mode is True
    assert settings.results_visible is False
    assert controller.load_settings() == settings

    with pytest.raises(VoteRejected) as excluded:
        cast_vote(store, ids["A"], "userOfA", settings, cfg=CFG)
    assert excluded.value.reason == "excluded_from_revote"
    with pytest.raises(VoteRejected) as outside:
        cast_vote(store, ids["C"], "third", settings, cfg=CFG)
    assert outside.value.reason == "not_in_revote"

    cast_vote(store, ids["A"], "third", settings, cfg=CFG)
    assert len(store.list("revotes")) == 1

    ended = controller.end_revote(actor=ADMIN)
    assert ended.revote_mode is False
    assert ended.voting_enabled is False
    assert ended.revote_costume_ids == frozenset()
    # Tie-break votes still count towards results.
    assert _results(store)[0].id == ids["A"]


def test_second_revote_starts_with_empty_ballot_box():
    controller, store, images = _controller()
    ids = _seed(store, images)
    settings = controller.start_revote([ids["A"], ids["B"]], ["userOfA", "userOfB"])
    cast_vote(store, ids["A"], "userOfC", settings, cfg=CFG)
    cast_vote(store, ids["B"], "third", settings, cfg=CFG)
    controller.close_voting(_results(store))

    settings = controller.start_revote([ids["A"], ids["B"]], ["userOfA", "userOfB"])

    assert store.list("revotes") == []
    assert settings.revote_mode is True
    status = controller.check_revote_completion()
    assert status.can_end is False
    assert status.voted_voters == 0
    assert all(row.vote_count == 0 for row in _results(store))


def test_check_revote_completion():
    controller, store, images = _controller()
    ids = _seed(store, images)
    assert controller.check_revote_completion().can_end is False

    settings = controller.start_revote([ids["A"], ids["B"]], ["userOfA", "userOfB"])
    status = controller.check_revote_completion()
    assert status.can_end is False
    assert status.eligible_voters == 2
    assert set(status.remaining_voter_ids) == {"userOfC", "third"}

    cast_vote(store, ids["A"], "userOfC", settings, cfg=CFG)
    cast_vote(store, ids["B"], "third", settings, cfg=CFG)
    status = controller.check_revote_completion()
    assert status.can_end is True
    assert status.voted_voters == 2


def test_close_voting_without_tie_reveals_results():
    controller, store, images = _controller()
    ids = _seed(store, images)
    settings = controller.toggle_voting(True)
    cast_vote(store, ids["A"], "userOfB", settings, cfg=CFG)

    outcome = controller.close_voting(_results(store), actor=ADMIN)
    assert outcome.auto_revote_triggered is False
    assert outcome.settings.voting_enabled is False
    assert outcome.settings.results_visible is True


def test_close_voting_with_tie_starts_auto_revote():
    controller, store, images = _controller()
    ids = _seed(store, images)
    settings = controller.toggle_voting(True)
    cast_vote(store, ids["A"], "userOfC", settings, cfg=CFG)
    cast_vote(store, ids["B"], "third", settings, cfg=CFG)

    outcome = controller.close_voting(_results(store), actor=ADMIN)
    assert outcome.auto_revote_triggered is True
    assert set(outcome.tied_costume_ids) == {ids["A"], ids["B"]}
    assert set(outcome.excluded_user_ids) == {"userOfA", "userOfB"}
    assert outcome.settings.revote_mode is True
    assert store.list("votes") == []


def test_close_voting_with_tie_and_auto_revote_disabled():
    controller, store, images = _controller()
    ids = _seed(store, images)
    controller.toggle_auto_revote(False)
    settings = controller.toggle_voting(True)
    cast_vote(store, ids["A"], "userOfC", settings, cfg=CFG)
    cast_vote(store, ids["B"], "third", settings, cfg=CFG)

    outcome = controller.close_voting(_results(store))
    assert outcome.auto_revote_triggered is False
    assert outcome.settings.results_visible is True
    assert len(store.list("votes")) == 2


def test_close_voting_during_revote_ends_round():
    controller, store, images = _controller()
    ids = _seed(store, images)
    settings = controller.start_revote([ids["A"], ids["B"]], ["userOfA", "userOfB"])
    cast_vote(store, ids["A"], "userOfC", settings, cfg=CFG)
    cast_vote(store, ids["B"], "third", settings, cfg=CFG)

    outcome = controller.close_voting(_results(store))
    assert outcome.auto_revote_triggered is False
    assert outcome.settings.revote_mode is False
    assert outcome.settings.voting_enabled is False
    assert outcome.settings.results_visible is True
    assert len(store.list("revotes")) == 2


def test_reset_contest_clears_everything():
    controller, store, images = _controller()
    ids = _seed(store, images)
    settings = controller.toggle_voting(True)
    cast_vote(store, ids["A"], "userOfB", settings, cfg=CFG)
    controller.start_revote([ids["A"], ids["B"]], ["userOfA", "userOfB"])
    cast_vote(store, ids["A"], "third", controller.load_settings(), cfg=CFG)
    images.put("other-prefix/keep.png", b"x", "image/png")

    report = controller.reset_contest(actor=ADMIN)

    assert store.list("costumes") == []
    assert store.list("votes") == []
    assert store.list("revotes") == []
    assert images.list(CFG.IMAGE_PREFIX) == []
    assert images.list("other-prefix") == ["other-prefix/keep.png"]
    settings = controller.load_settings()
    assert settings.contest_active is True
    assert settings.voting_enabled is False
    assert settings.results_visible is False
    assert settings.revote_mode is False
    assert settings.last_reset == NOW
    assert report.deleted_costumes == 3
    assert report.deleted_revotes == 1
    assert report.deleted_images == 3
    assert report.images_complete is True
    # User documents survive with their contest fields cleared.
    user = store.get("users", "userOfA")
    assert user["displayName"] == "Ann"
    assert user["costumeSubmitted"] is False
    assert user["costumeId"] is None


def test_reset_contest_keeps_going_when_image_deletion_fails():
    broken = costume_image_path("userOfB", "Ben", CFG)
    controller, store, images = _controller(images=_FlakyImages({broken}))
    _seed(store, images)

    report = controller.reset_contest()

    assert store.list("costumes") == []
    assert report.images_complete is False
    assert report.failed_images == (broken,)
    assert report.deleted_images == 2
    assert images.list(CFG.IMAGE_PREFIX) == [broken]


def test_reset_contest_commits_large_contests_in_chunks():
    cfg = ContestConfig(ADMIN_EMAILS="boss@example.com", BATCH_LIMIT=5)
    controller, store, _ = _controller(cfg=cfg)
    for i in range(12):
        store.set("votes", f"v{i}", {"voterId": f"u{i}", "costumeId": "A"})
    report = controller.reset_contest()
    assert report.deleted_votes == 12
    assert store.list("votes") == []


class _FailingStore(MemoryDocumentStore):
    def __init__(self, fail_on_commit: int) -> None:
        super().__init__()
        self.commits = 0
        self.fail_on_commit = fail_on_commit

    def _apply_batch(self, ops) -> None:
        self.commits += 1
        if self.commits == self.fail_on_commit:
            raise StoreError("quota exceeded")
        super()._apply_batch(ops)


def test_partial_chunked_reset_still_leaves_settings_reset():
    cfg = ContestConfig(ADMIN_EMAILS="boss@example.com", BATCH_LIMIT=5)
    store = _FailingStore(fail_on_commit=2)
    controller = ContestController(store, MemoryObjectStore(), cfg, clock=lambda: NOW)
    busy = ContestSettings(
        voting_enabled=True,
        revote_mode=True,
        revote_costume_ids=frozenset({"A", "B"}),
    )
    store.set("appSettings", "settings", busy.to_doc())
    for i in range(12):
        store.set("votes", f"v{i}", {"voterId": f"u{i}", "costumeId": "A"})

    with pytest.raises(StoreError):
        controller.reset_contest()

    settings = controller.load_settings()
    assert settings.revote_mode is False
    assert settings.voting_enabled is False
    assert settings.last_reset == NOW
    # First chunk: settings plus four deletions; the second chunk failed.
    assert len(store.list("votes")) == 8

    store.fail_on_commit = 0
    report = controller.reset_contest()
    assert report.deleted_votes == 8
    assert store.list("votes") == []


def test_delete_user_cascades():
    controller, store, images = _controller()
    ids = _seed(store, images)
    settings = controller.toggle_voting(True)
    cast_vote(store, ids["B"], "userOfA", settings, cfg=CFG)
    cast_vote(store, ids["A"], "userOfB", settings, cfg=CFG)

    result = controller.delete_user("userOfA", actor=ADMIN)

    assert result.deleted_costumes == 1
    assert result.deleted_votes == 1
    assert result.deleted_revote_votes == 0
    assert result.deleted_images == 1
    assert store.get("users", "userOfA") is None
    assert store.get("costumes", ids["A"]) is None
    assert store.find("votes", "voterId", "userOfA") == []
    assert len(store.list("votes")) == 1
    assert costume_image_path("userOfA", "Ann", CFG) not in images.list(CFG.IMAGE_PREFIX)


def test_delete_missing_user_raises():
    controller, _, _ = _controller()
    with pytest.raises(NotFound):
        controller.delete_user("ghost")


def test_upload_rejects_non_images_and_large_files():
    images = MemoryObjectStore()
    with pytest.raises(UploadError):
        upload_costume_image(images, "u1", "Ann", b"%PDF", "application/pdf", cfg=CFG)
    too_big = b"x" * (CFG.MAX_IMAGE_BYTES + 1)
    with pytest.raises(UploadError):
        upload_costume_image(images, "u1", "Ann", too_big, "image/jpeg", cfg=CFG)
    with pytest.raises(UploadError):
        upload_costume_image(images, "u1", "Ann", b"", "image/jpeg", cfg=CFG)
    assert images.list(CFG.IMAGE_PREFIX) == []
