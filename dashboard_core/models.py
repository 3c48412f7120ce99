"""
Domain dataclasses and enums used across the application.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


class ScopeMode(str, Enum):
    """Breadth of access, declared from most to least restrictive."""
    NONE = "none"
    OWN = "own"
    LDD = "ldd"
    ALL = "all"


class ScopeVerb(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


class ScopeEntity(str, Enum):
    DASHBOARDS = "dashboards"


class ShareCategory(str, Enum):
    """ACL category a principal type maps to."""
    USER = "user"
    GROUP = "group"
    LDD = "ldd"


class SharePermission(str, Enum):
    VIEW = "view"
    FULL = "full"


class DenyReason(str, Enum):
    SCOPE_NONE = "scope_none"
    NOT_OWNER = "not_owner"
    MISSING_SHARE_GRANT = "missing_share_grant"
    MISSING_SHARE_OUTSIDE = "missing_share_outside"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"


LDD_PRINCIPAL_TYPES = ("location", "division", "department")
PRINCIPAL_TYPES = ("user", "group", "role") + LDD_PRINCIPAL_TYPES


@dataclass
class Identity:
    """The authenticated caller, as handed over by the identity layer."""
    subject_id: str
    email: str = ""
    name: str = ""
    roles: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.subject_id


@dataclass(frozen=True)
class CheckResult:
    """Answer to a single action-key probe."""
    granted: bool
    source: str = ""
    unavailable: bool = False


@dataclass
class ScopeResolution:
    mode: ScopeMode
    source: str                      # "entity", "global" or "default"
    action_key: Optional[str] = None
    unavailable_keys: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.unavailable_keys)


@dataclass(frozen=True)
class OrgScope:
    """Organizational units (type, id) a caller may act within."""
    units: FrozenSet[Tuple[str, str]] = frozenset()
    unavailable: bool = False

    def contains(self, unit_type: str, unit_id: str) -> bool:
        return (str(unit_type), str(unit_id)) in self.units


@dataclass(frozen=True)
class DashboardScope:
    kind: str                        # "global" or "pack"
    pack: Optional[str] = None

    @classmethod
    def global_(cls) -> "DashboardScope":
        return cls(kind="global")

    def to_dict(self) -> Dict[str, str]:
        if self.kind == "pack":
            return {"kind": "pack", "pack": self.pack or ""}
        return {"kind": "global"}


@dataclass
class DashboardDefinition:
    """A dashboard, either template-derived (static) or stored."""
    id: str
    key: str
    name: str
    description: Optional[str]
    owner_user_id: str
    is_system: bool
    visibility: str                  # "public" or "private"
    scope: DashboardScope
    version: int
    definition: Dict[str, Any]
    updated_at: datetime
    created_at: Optional[datetime] = None

    @property
    def pack_name(self) -> Optional[str]:
        return self.scope.pack if self.scope.kind == "pack" else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "ownerUserId": self.owner_user_id,
            "isSystem": self.is_system,
            "visibility": self.visibility,
            "scope": self.scope.to_dict(),
            "version": self.version,
            "definition": self.definition,
            "packName": self.pack_name,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class DashboardShare:
    id: str
    dashboard_id: str
    principal_type: str
    principal_id: str
    permission: str
    shared_by: str
    shared_by_name: Optional[str]
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "principalType": self.principal_type,
            "principalId": self.principal_id,
            "permission": self.permission,
            "sharedBy": self.shared_by,
            "sharedByName": self.shared_by_name,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class Denial:
    reason: DenyReason
    message: str = "Access denied"
    action_key: Optional[str] = None


@dataclass
class ShareOutcome:
    """Result of an access-checked operation: data on success, a Denial otherwise."""
    data: Any = None
    denial: Optional[Denial] = None

    @property
    def ok(self) -> bool:
        return self.denial is None

    @classmethod
    def deny(cls, reason: DenyReason, message: str = "Access denied",
             action_key: Optional[str] = None) -> "ShareOutcome":
        return cls(denial=Denial(reason=reason, message=message, action_key=action_key))


@dataclass
class PieReportBlock:
    title: str
    format: str                      # "number" or "usd"
    time: str                        # "inherit" or "all_time"
    query: Dict[str, Any]
    group_by_key: str
    label_key: str
    raw_key: str
    top_n: int
    other_label: str
    kind: str = "pie_v0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "title": self.title,
            "format": self.format,
            "time": self.time,
            "query": dict(self.query),
            "groupByKey": self.group_by_key,
            "labelKey": self.label_key,
            "rawKey": self.raw_key,
            "topN": self.top_n,
            "otherLabel": self.other_label,
        }
