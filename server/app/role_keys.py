from enum import Enum


class RoleKey(str, Enum):
    ADMIN = "ADMIN"
    SUPERVISOR = "SUPERVISOR"
    EMPLOYEE = "EMPLOYEE"


ROLE_DEFINITIONS: list[tuple[RoleKey, str]] = [
    (RoleKey.ADMIN, "Administrator"),
    (RoleKey.SUPERVISOR, "Supervisor"),
    (RoleKey.EMPLOYEE, "Employee"),
]

ROLE_KEYS: list[str] = [role_key.value for role_key, _ in ROLE_DEFINITIONS]
ROLE_KEY_SET: set[str] = set(ROLE_KEYS)

DEFAULT_PROJECT_STATUSES: list[str] = ["Planned", "Active", "On Hold", "Completed"]
