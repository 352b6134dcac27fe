"""
Input validation schemas using Pydantic v2
Validates admin commands, costume submissions and image uploads
"""

import logging
import re
from typing import List, Optional, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ContestValidationError, UploadError

logger = logging.getLogger(__name__)

ADMIN_COMMAND_TYPES = {
    "SET_VOTING",
    "SET_RESULTS",
    "SET_SELF_VOTE",
    "SET_AUTO_REVOTE",
    "START_REVOTE",
    "END_REVOTE",
    "CLOSE_VOTING",
    "RESET_CONTEST",
}

TOGGLE_COMMAND_TYPES = {"SET_VOTING", "SET_RESULTS", "SET_SELF_VOTE", "SET_AUTO_REVOTE"}

DANGEROUS_PATTERNS = [
    "<script",
    "</script",
    "javascript:",
    "onerror=",
    "onclick=",
    "onload=",
    "<iframe",
    "<object",
    "<embed",
]


class ValidatedAdminCmd(BaseModel):
    """Admin command with per-type required fields"""

    type: str = Field(..., min_length=1, max_length=50, description="Command type")

    # Toggle commands
    enabled: Optional[bool] = None

    # START_REVOTE
    tiedCostumeIds: Optional[List[str]] = Field(None, description="Costumes in the revote")
    excludedUserIds: Optional[List[str]] = Field(None, description="Users barred from the revote")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Validate command type is one of allowed types"""
        if v not in ADMIN_COMMAND_TYPES:
            raise ValueError(f"type must be one of {sorted(ADMIN_COMMAND_TYPES)}, got {v}")
        return v

    @field_validator("tiedCostumeIds", "excludedUserIds")
    @classmethod
    def validate_id_list(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Strip ids, drop blanks and duplicates while keeping order"""
        if v is None:
            return v
        if len(v) > 500:
            raise ValueError("id lists cannot exceed 500 entries")
        normalized: List[str] = []
        for item in v:
            item = item.strip()
            if item and item not in normalized:
                normalized.append(item)
        return normalized

    @model_validator(mode="after")
    def validate_command_fields(self) -> Self:
        """Validate required fields based on command type"""
        if self.type in TOGGLE_COMMAND_TYPES and self.enabled is None:
            raise ValueError(f"{self.type} requires enabled")
        if self.type == "START_REVOTE":
            if not self.tiedCostumeIds or len(self.tiedCostumeIds) < 2:
                raise ValueError("START_REVOTE requires at least two tiedCostumeIds")
        return self

    model_config = ConfigDict(extra="forbid")


class CostumeSubmission(BaseModel):
    """Costume fields a user may write"""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=500)
    imageUrl: Optional[str] = Field(None, max_length=2048)

    @field_validator("name", "description")
    @classmethod
    def validate_text(cls, v: str) -> str:
        v = v.strip()
        lowered = v.lower()
        for pattern in DANGEROUS_PATTERNS:
            if pattern in lowered:
                raise ValueError(f"contains potentially dangerous pattern: {pattern}")
        return v

    @field_validator("name")
    @classmethod
    def validate_name_not_blank(cls, v: str) -> str:
        if len(v) == 0:
            raise ValueError("costume name cannot be empty")
        return v

    @field_validator("imageUrl")
    @classmethod
    def validate_image_url(cls, v: Optional[str]) -> Optional[str]:
        """Accept storage paths or http(s) URLs"""
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if v.lower().startswith("javascript:"):
            raise ValueError("imageUrl must be a storage path or http(s) URL")
        return v

    model_config = ConfigDict(extra="ignore")


def _format_limit(max_bytes: int) -> str:
    """Human readable size limit, e.g. 5MB, 512KB"""
    if max_bytes >= 1024 * 1024:
        return f"{max_bytes // (1024 * 1024)}MB"
    if max_bytes >= 1024:
        return f"{max_bytes // 1024}KB"
    return f"{max_bytes} bytes"


class ImageUpload(BaseModel):
    """Image metadata checked before anything is written to storage"""

    content_type: str = Field(..., min_length=1, max_length=100)
    size: int = Field(..., ge=1)
    max_bytes: int = Field(5 * 1024 * 1024, ge=1)
    content_type_prefix: str = "image/"

    @model_validator(mode="after")
    def validate_upload(self) -> Self:
        if not self.content_type.lower().startswith(self.content_type_prefix):
            raise ValueError("Please select an image file")
        if self.size > self.max_bytes:
            raise ValueError(f"File size must be less than {_format_limit(self.max_bytes)}")
        return self


def _first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    msg = str(errors[0].get("msg", exc))
    # pydantic prefixes ValueError messages raised from validators
    return msg.removeprefix("Value error, ")


class InputSanitizer:
    """Utility class for input sanitization"""

    @staticmethod
    def sanitize_string(value: str, max_length: int = 255) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            return str(value)[:max_length]

        value = value.strip()
        value = value[:max_length]
        value = value.replace("\0", "")
        return value

    @staticmethod
    def sanitize_user_name(name: str) -> str:
        """Sanitize display name for storage; keeps unicode letters"""
        name = InputSanitizer.sanitize_string(name or "", 100)
        dangerous_chars = r'[<>{}[\]\\|;`"\x00-\x1f\x7f]'
        name = re.sub(dangerous_chars, "", name)
        return name.strip() or "Anonymous"

    @staticmethod
    def slugify_user_name(name: str) -> str:
        """Lower-case and replace every char outside [a-z0-9] with '-'"""
        return re.sub(r"[^a-z0-9]", "-", (name or "user").lower())

    @staticmethod
    def validate_admin_cmd(cmd_dict: dict) -> ValidatedAdminCmd:
        """
        Validate admin command dictionary

        Returns:
            ValidatedAdminCmd: Validated command object

        Raises:
            ContestValidationError: If validation fails
        """
        try:
            return ValidatedAdminCmd(**cmd_dict)
        except ValidationError as e:
            logger.warning(f"Admin command validation failed: {e}")
            raise ContestValidationError(
                f"Invalid command: {_first_error_message(e)}", reason="invalid_command"
            ) from e

    @staticmethod
    def validate_costume(data: dict) -> CostumeSubmission:
        try:
            return CostumeSubmission(**data)
        except ValidationError as e:
            logger.warning(f"Costume validation failed: {e}")
            raise ContestValidationError(
                _first_error_message(e), reason="invalid_costume"
            ) from e

    @staticmethod
    def validate_image(
        content_type: str,
        size: int,
        max_bytes: int = 5 * 1024 * 1024,
        content_type_prefix: str = "image/",
    ) -> ImageUpload:
        try:
            return ImageUpload(
                content_type=content_type or "",
                size=size,
                max_bytes=max_bytes,
                content_type_prefix=content_type_prefix,
            )
        except ValidationError as e:
            logger.warning(f"Image validation failed: {e}")
            raise UploadError(_first_error_message(e)) from e


# ==================== EXPORT ====================

__all__ = [
    "ADMIN_COMMAND_TYPES",
    "ValidatedAdminCmd",
    "CostumeSubmission",
    "ImageUpload",
    "InputSanitizer",
]
