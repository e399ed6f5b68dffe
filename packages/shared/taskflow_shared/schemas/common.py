from enum import Enum

class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"
    APPROVED = "approved"

# Statuses that satisfy a dependency
RESOLVED_STATUSES: frozenset["TaskStatus"] = frozenset({TaskStatus.DONE, TaskStatus.APPROVED})

class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"

class SkipReason(str, Enum):
    CYCLE = "cycle"


def is_resolved(status: "TaskStatus | str") -> bool:
    return TaskStatus(status) in RESOLVED_STATUSES


def enters_resolved(previous: "TaskStatus | str", new: "TaskStatus | str") -> bool:
    """True when a transition moves a task into the resolved set for the first time."""
    return is_resolved(new) and not is_resolved(previous)
