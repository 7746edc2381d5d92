from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

# Lower level = more authority. Unknown roles never dominate anyone.
UNKNOWN_ROLE_LEVEL = 99

OWNER_ROLE = "company"
DEFAULT_MEMBER_ROLE = "bde"

DEFAULT_ROLE_LEVELS: Mapping[str, int] = MappingProxyType(
    {
        "company": 1,
        "company_subadmin": 2,
        "cbo": 3,
        "vp": 4,
        "avp": 5,
        "dgm": 6,
        "agm": 7,
        "sm": 8,
        "tl": 9,
        "bde": 10,
        "intern": 11,
        "ca": 12,
    }
)

DEFAULT_ROLE_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "company": "Company Admin",
        "company_subadmin": "Company SubAdmin",
        "cbo": "CBO",
        "vp": "VP",
        "avp": "AVP",
        "dgm": "DGM",
        "agm": "AGM",
        "sm": "Sales Manager",
        "tl": "Team Lead",
        "bde": "BDE",
        "intern": "Intern",
        "ca": "Campus Ambassador",
    }
)


@dataclass(frozen=True)
class RoleTable:
    """Immutable role -> level table shared by every authorization check."""

    levels: Mapping[str, int]
    labels: Mapping[str, str]
    owner_role: str = OWNER_ROLE

    def __post_init__(self):
        if self.owner_role not in self.levels:
            raise ValueError(f"Owner role {self.owner_role!r} missing from role table")
        seen: dict[int, str] = {}
        for role, level in self.levels.items():
            if level in seen:
                raise ValueError(f"Roles {seen[level]!r} and {role!r} share level {level}")
            seen[level] = role
        # Freeze whatever mapping we were handed.
        object.__setattr__(self, "levels", MappingProxyType(dict(self.levels)))
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))

    def __contains__(self, role: str) -> bool:
        return role in self.levels

    def level(self, role: str | None) -> int:
        return self.levels.get((role or "").strip().lower(), UNKNOWN_ROLE_LEVEL)

    def label(self, role: str) -> str:
        return self.labels.get(role, role)

    def is_owner(self, role: str | None) -> bool:
        return (role or "").strip().lower() == self.owner_role

    def outranks(self, actor_role: str | None, other_role: str | None) -> bool:
        """Strict: equal levels never outrank each other."""
        return self.level(actor_role) < self.level(other_role)

    def assignable_roles(self, actor_role: str | None) -> list[str]:
        """Roles strictly weaker than ``actor_role``, weakest first (display order only)."""
        actor_level = self.level(actor_role)
        weaker = [role for role, level in self.levels.items() if level > actor_level]
        return sorted(weaker, key=self.levels.__getitem__, reverse=True)


DEFAULT_ROLE_TABLE = RoleTable(levels=DEFAULT_ROLE_LEVELS, labels=DEFAULT_ROLE_LABELS)
