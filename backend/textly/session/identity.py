"""The authenticated user a session runs as."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from textly.domain.profiles.avatar import pick_avatar_from_metadata

SELF_FALLBACK_NAME = "Yo"


@dataclass(slots=True, frozen=True)
class Identity:
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        """``full_name`` metadata, else the email local part, else "Yo"."""
        full_name = self.user_metadata.get("full_name")
        if isinstance(full_name, str) and full_name.strip():
            return full_name.strip()
        if self.email and "@" in self.email:
            local = self.email.split("@", 1)[0]
            if local:
                return local
        return SELF_FALLBACK_NAME

    @property
    def avatar_url(self) -> Optional[str]:
        return pick_avatar_from_metadata({"avatar_url": self.user_metadata.get("avatar_url")})
