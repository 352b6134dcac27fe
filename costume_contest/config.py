from __future__ import annotations

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class ContestConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CONTEST_", env_file=".env", extra="ignore")

    APP_NAME: str = "Halloween Costume Contest"
    # Comma separated allow-list; users with these e-mails are admins.
    ADMIN_EMAILS: str = ""

    # Document store layout
    COSTUMES_COLLECTION: str = "costumes"
    VOTES_COLLECTION: str = "votes"
    REVOTES_COLLECTION: str = "revotes"
    USERS_COLLECTION: str = "users"
    SETTINGS_COLLECTION: str = "appSettings"
    SETTINGS_DOC_ID: str = "settings"
    BATCH_LIMIT: int = 500

    # Object storage
    IMAGE_PREFIX: str = "costume-images"
    MAX_IMAGE_BYTES: int = 5 * 1024 * 1024
    IMAGE_CONTENT_TYPE_PREFIX: str = "image/"

    # Account conveniences
    RESEND_COOLDOWN_S: int = 60
    RESEND_MAX_SENDS: int = 3

    @property
    def admin_email_list(self) -> List[str]:
        val = self.ADMIN_EMAILS
        if not val:
            return []
        return [v.strip().lower() for v in val.split(",") if v.strip()]


config = ContestConfig()
