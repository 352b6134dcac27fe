"""Costume submissions and costume images."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict

from .config import ContestConfig, config as default_config
from .contest import utcnow
from .errors import ContestValidationError, DuplicateCostume, NotFound, PermissionDenied, UploadError
from .identity import is_admin
from .records import Costume, UserProfile, costume_from_doc
from .store import DocumentStore, ObjectStore
from .validation import InputSanitizer

logger = logging.getLogger(__name__)


def costume_image_path(user_id: str, user_name: str | None, cfg: ContestConfig | None = None) -> str:
    """Storage path for a user's costume image.

    Examples:
        - ("u1", "Jane Doe") -> "costume-images/costume-jane-doe-u1"
        - ("u2", None) -> "costume-images/costume-user-u2"
    """
    cfg = cfg or default_config
    slug = InputSanitizer.slugify_user_name(user_name or "user")
    return f"{cfg.IMAGE_PREFIX.rstrip('/')}/costume-{slug}-{user_id}"


def upload_costume_image(
    images: ObjectStore,
    user_id: str,
    user_name: str | None,
    data: bytes,
    content_type: str,
    *,
    cfg: ContestConfig | None = None,
) -> str:
    """Validate and store a costume image; returns the stored object's URL."""
    cfg = cfg or default_config
    if not data:
        raise UploadError("No file selected")
    InputSanitizer.validate_image(
        content_type,
        len(data),
        max_bytes=cfg.MAX_IMAGE_BYTES,
        content_type_prefix=cfg.IMAGE_CONTENT_TYPE_PREFIX,
    )
    path = costume_image_path(user_id, user_name, cfg)
    try:
        url = images.put(path, data, content_type)
    except Exception as exc:
        logger.error(f"Error uploading costume image {path}: {exc}")
        raise UploadError(f"Upload failed: {exc}") from exc
    logger.info(f"Uploaded costume image {path} ({len(data)} bytes)")
    return url


def submit_costume(
    store: DocumentStore,
    submission: Dict[str, Any],
    user_id: str,
    user_name: str | None,
    *,
    cfg: ContestConfig | None = None,
    now: datetime | None = None,
) -> Costume:
    """Create the user's costume; a user holds at most one.

    Raises:
        DuplicateCostume: the user already submitted a costume
        ContestValidationError: invalid costume fields
    """
    cfg = cfg or default_config
    if not user_id:
        raise ContestValidationError("A signed-in user is required", reason="missing_user")
    validated = InputSanitizer.validate_costume(submission)
    if store.find(cfg.COSTUMES_COLLECTION, "userId", user_id):
        logger.warning(f"Duplicate costume submission by {user_id}")
        raise DuplicateCostume(user_id)

    stamp = now or utcnow()
    doc = {
        **validated.model_dump(),
        "userId": user_id,
        "userName": InputSanitizer.sanitize_user_name(user_name or ""),
        "submittedAt": stamp,
        "updatedAt": stamp,
    }
    costume_id = store.add(cfg.COSTUMES_COLLECTION, doc)
    if store.get(cfg.USERS_COLLECTION, user_id) is not None:
        store.update(
            cfg.USERS_COLLECTION,
            user_id,
            {"costumeSubmitted": True, "costumeId": costume_id, "lastCostumeSubmission": stamp},
        )
    logger.info(f"Costume {costume_id} submitted by {user_id}")
    return costume_from_doc(costume_id, doc)


def _load_owned(
    store: DocumentStore,
    costume_id: str,
    actor: UserProfile,
    cfg: ContestConfig,
) -> Dict[str, Any]:
    doc = store.get(cfg.COSTUMES_COLLECTION, costume_id)
    if doc is None:
        raise NotFound(f"costume {costume_id} does not exist")
    if doc.get("userId") != actor.uid and not is_admin(actor, cfg):
        raise PermissionDenied("Only the owner or an admin can change this costume")
    return doc


def update_costume(
    store: DocumentStore,
    costume_id: str,
    changes: Dict[str, Any],
    actor: UserProfile,
    *,
    cfg: ContestConfig | None = None,
    now: datetime | None = None,
) -> Costume:
    cfg = cfg or default_config
    doc = _load_owned(store, costume_id, actor, cfg)
    merged = {
        "name": doc.get("name", ""),
        "description": doc.get("description", ""),
        "imageUrl": doc.get("imageUrl"),
        **changes,
    }
    validated = InputSanitizer.validate_costume(merged)
    updates = {**validated.model_dump(), "updatedAt": now or utcnow()}
    store.update(cfg.COSTUMES_COLLECTION, costume_id, updates)
    logger.info(f"Costume {costume_id} updated by {actor.uid}")
    return costume_from_doc(costume_id, {**doc, **updates})


def delete_costume(
    store: DocumentStore,
    costume_id: str,
    actor: UserProfile,
    *,
    cfg: ContestConfig | None = None,
) -> None:
    cfg = cfg or default_config
    doc = _load_owned(store, costume_id, actor, cfg)
    store.delete(cfg.COSTUMES_COLLECTION, costume_id)
    owner_id = doc.get("userId")
    if owner_id and store.get(cfg.USERS_COLLECTION, owner_id) is not None:
        store.update(
            cfg.USERS_COLLECTION,
            owner_id,
            {"costumeSubmitted": False, "costumeId": None, "lastCostumeSubmission": None},
        )
    logger.info(f"Costume {costume_id} deleted by {actor.uid}")
