"""
Storage Models

Records shared between the storage layer, the message pipeline and the
slash commands. Serialised with snake_case keys; ``from_dict`` also accepts
the camelCase keys used by the dashboard export.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Sentinel user filter meaning "any author".
ALL_USERS = "All"


class ServerStatus:
    """Allowed values for ServerRecord.status."""
    ACTIVE = "active"
    DISABLED = "disabled"
    ALL = (ACTIVE, DISABLED)


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class ServerRecord:
    """A Discord guild registered with the bot."""
    server_id: str
    name: str = ""
    status: str = ServerStatus.ACTIVE
    total_users: int = 0
    email: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == ServerStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = {
            "server_id": self.server_id,
            "name": self.name,
            "status": self.status,
            "total_users": self.total_users,
        }
        if self.email is not None:
            data["email"] = self.email
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServerRecord':
        """Create from dictionary."""
        return cls(
            server_id=str(_pick(data, "server_id", "serverId")),
            name=_pick(data, "name", default=""),
            status=_pick(data, "status", default=ServerStatus.ACTIVE),
            total_users=int(_pick(data, "total_users", "totalUsers", default=0)),
            email=_pick(data, "email"),
        )


@dataclass
class PatternRule:
    """
    A pattern watched in one guild and the webhook it triggers.

    An empty user filter is stored as ["All"]: no filter never means
    "block everyone".
    """
    server_id: str
    regex_pattern: str
    webhook_name: str
    user_ids: List[str] = field(default_factory=lambda: [ALL_USERS])

    def __post_init__(self):
        self.user_ids = [str(user_id) for user_id in (self.user_ids or [])] or [ALL_USERS]

    @property
    def allows_all(self) -> bool:
        return ALL_USERS in self.user_ids

    def allows(self, author_id: str) -> bool:
        """Check whether a message author may trigger this rule."""
        if not self.user_ids or self.allows_all:
            return True
        return str(author_id) in self.user_ids

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "server_id": self.server_id,
            "regex_pattern": self.regex_pattern,
            "webhook_name": self.webhook_name,
            "user_ids": list(self.user_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PatternRule':
        """Create from dictionary."""
        return cls(
            server_id=str(_pick(data, "server_id", "serverId")),
            regex_pattern=_pick(data, "regex_pattern", "regexPattern", default=""),
            webhook_name=_pick(data, "webhook_name", "webhookName", default=""),
            user_ids=list(_pick(data, "user_ids", "userIds", default=[])),
        )


@dataclass
class WebhookTarget:
    """
    An outbound webhook.

    ``data_template`` may contain ``$content$`` placeholders; when empty the
    default {"content": ...} body is sent.
    """
    name: str
    url: str
    server_id: str
    data_template: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "url": self.url,
            "server_id": self.server_id,
            "data_template": self.data_template,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WebhookTarget':
        """Create from dictionary."""
        return cls(
            name=_pick(data, "name", default=""),
            url=_pick(data, "url", default=""),
            server_id=str(_pick(data, "server_id", "serverId", default="")),
            data_template=_pick(data, "data_template", "data") or None,
        )
