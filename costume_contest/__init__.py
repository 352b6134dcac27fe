from .admin import CloseVotingResult, ContestController, ResetReport, RevoteStatus, UserDeletion
from .config import ContestConfig
from .contest import (
    CommandOutcome,
    apply_command,
    contest_phase,
    default_settings,
    toggle_payload,
)
from .costumes import (
    costume_image_path,
    delete_costume,
    submit_costume,
    update_costume,
    upload_costume_image,
)
from .errors import (
    ContestError,
    ContestValidationError,
    DuplicateCostume,
    NotFound,
    PermissionDenied,
    StoreError,
    UploadError,
    VoteRejected,
)
from .identity import ResendLimiter, is_admin, require_admin
from .live import LiveContest
from .records import ContestSettings, Costume, CostumeResult, UserProfile, Vote
from .results import (
    RevoteCandidates,
    compute_results,
    detect_first_place_tie,
    podium,
    revote_candidates,
    unvoted_users,
)
from .store import DocumentStore, MemoryDocumentStore, MemoryObjectStore, ObjectStore
from .types import CommandPayload, CostumeDoc, SettingsDoc, UserDoc, VoteDoc
from .validation import CostumeSubmission, ImageUpload, InputSanitizer, ValidatedAdminCmd
from .voting import can_vote, cast_vote, check_vote_eligibility, remove_vote

__all__ = [
    "CloseVotingResult",
    "CommandOutcome",
    "CommandPayload",
    "ContestConfig",
    "ContestController",
    "ContestError",
    "ContestSettings",
    "ContestValidationError",
    "Costume",
    "CostumeDoc",
    "CostumeResult",
    "CostumeSubmission",
    "DocumentStore",
    "DuplicateCostume",
    "ImageUpload",
    "InputSanitizer",
    "LiveContest",
    "MemoryDocumentStore",
    "MemoryObjectStore",
    "NotFound",
    "ObjectStore",
    "PermissionDenied",
    "ResendLimiter",
    "ResetReport",
    "RevoteCandidates",
    "RevoteStatus",
    "SettingsDoc",
    "StoreError",
    "UploadError",
    "UserDeletion",
    "UserDoc",
    "UserProfile",
    "ValidatedAdminCmd",
    "Vote",
    "VoteDoc",
    "VoteRejected",
    "apply_command",
    "can_vote",
    "cast_vote",
    "check_vote_eligibility",
    "compute_results",
    "contest_phase",
    "costume_image_path",
    "default_settings",
    "delete_costume",
    "detect_first_place_tie",
    "is_admin",
    "podium",
    "remove_vote",
    "require_admin",
    "revote_candidates",
    "submit_costume",
    "toggle_payload",
    "unvoted_users",
    "update_costume",
    "upload_costume_image",
]
