"""Admin resolution and account-side helpers."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from .config import ContestConfig, config as default_config
from .errors import PermissionDenied
from .records import UserProfile

logger = logging.getLogger(__name__)


def is_admin(user: UserProfile | None, cfg: ContestConfig | None = None) -> bool:
    """Admins either carry the stored 'admin' role or are on the e-mail allow-list."""
    if user is None:
        return False
    cfg = cfg or default_config
    if user.role == "admin":
        return True
    return bool(user.email) and user.email.strip().lower() in cfg.admin_email_list


def initial_role(email: str, cfg: ContestConfig | None = None) -> str:
    """Role stored on a freshly created user document."""
    cfg = cfg or default_config
    return "admin" if email and email.strip().lower() in cfg.admin_email_list else "user"


def require_admin(user: UserProfile | None, cfg: ContestConfig | None = None) -> None:
    if not is_admin(user, cfg):
        uid = user.uid if user else None
        logger.warning(f"Rejected admin action for non-admin user {uid}")
        raise PermissionDenied("Admin privileges required")


@dataclass
class ResendLimiter:
    """Verification e-mail resend guard: fixed cooldown, capped number of sends."""

    cooldown_s: int = 60
    max_sends: int = 3
    clock: Callable[[], float] = time.monotonic
    _sent_at: list[float] = field(default_factory=list)

    @classmethod
    def from_config(cls, cfg: ContestConfig | None = None) -> "ResendLimiter":
        cfg = cfg or default_config
        return cls(cooldown_s=cfg.RESEND_COOLDOWN_S, max_sends=cfg.RESEND_MAX_SENDS)

    @property
    def sends(self) -> int:
        return len(self._sent_at)

    def seconds_until_allowed(self) -> float:
        if not self._sent_at:
            return 0.0
        elapsed = self.clock() - self._sent_at[-1]
        return max(0.0, self.cooldown_s - elapsed)

    def can_send(self) -> bool:
        return self.sends < self.max_sends and self.seconds_until_allowed() == 0.0

    def record_send(self) -> None:
        if not self.can_send():
            raise PermissionDenied("Verification e-mail resend limit reached")
        self._sent_at.append(self.clock())
