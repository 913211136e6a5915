from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

PERMISSION_ADMINISTRATOR = 0x8
PERMISSION_MANAGE_GUILD = 0x20


@dataclass(frozen=True)
class User:
    id: str
    username: str
    discriminator: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "User":
        return cls(
            id=str(payload.get("id", "")),
            username=str(payload.get("username", "")),
            discriminator=str(payload.get("discriminator") or ""),
        )

    @property
    def display_name(self) -> str:
        if self.discriminator and self.discriminator != "0":
            return f"{self.username}#{self.discriminator}"
        return self.username


@dataclass(frozen=True)
class Guild:
    id: str
    name: str
    owner: bool = False
    permissions: int = 0
    icon: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Guild":
        raw_permissions = payload.get("permissions", 0)
        try:
            permissions = int(raw_permissions)
        except (TypeError, ValueError):
            permissions = 0
        icon = payload.get("icon")
        return cls(
            id=str(payload.get("id", "")),
            name=str(payload.get("name", "")),
            owner=bool(payload.get("owner", False)),
            permissions=permissions,
            icon=icon if isinstance(icon, str) else None,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "owner": self.owner,
            "permissions": str(self.permissions),
            "icon": self.icon,
        }


@dataclass(frozen=True)
class UserGuild:
    guild: Guild
    connected: bool

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "UserGuild":
        guild_raw = payload.get("guild")
        return cls(
            guild=Guild.from_payload(guild_raw if isinstance(guild_raw, Mapping) else {}),
            connected=bool(payload.get("connected", False)),
        )


@dataclass(frozen=True)
class Script:
    id: int
    name: str
    original_source: str
    enabled: bool = True

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Script":
        return cls(
            id=int(payload.get("id", 0)),
            name=str(payload.get("name", "")),
            original_source=str(payload.get("original_source") or ""),
            enabled=bool(payload.get("enabled", True)),
        )


def has_admin(guild: Guild) -> bool:
    """Owners and members with Administrator or Manage Server may manage scripts."""
    if guild.owner:
        return True
    if guild.permissions & PERMISSION_ADMINISTRATOR == PERMISSION_ADMINISTRATOR:
        return True
    return guild.permissions & PERMISSION_MANAGE_GUILD == PERMISSION_MANAGE_GUILD
