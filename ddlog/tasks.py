from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .database import Task, utcnow
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

NAME_MAX = 100
DESCRIPTION_MAX = 500

UPDATABLE_FIELDS = ("name", "description", "category", "reminder_time", "completed")


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """[start, end) of a UTC calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Task name is required")
    name = name.strip()
    if len(name) > NAME_MAX:
        raise ValidationError(f"Task name must be {NAME_MAX} characters or less")
    return name


def _clean_description(description: Any) -> Optional[str]:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("Description must be text")
    if len(description) > DESCRIPTION_MAX:
        raise ValidationError(f"Description must be {DESCRIPTION_MAX} characters or less")
    return description.strip() or None


def _clean_optional(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


class TaskStore:
    """Owner-scoped task CRUD. Every call names the owner explicitly."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    def create(
        self,
        user_id: str,
        name: Any,
        description: Any = None,
        category: Any = None,
        reminder_time: Any = None,
    ) -> Task:
        now = self.clock()
        task = Task(
            user_id=user_id,
            name=_clean_name(name),
            description=_clean_description(description),
            category=_clean_optional(category),
            reminder_time=_clean_optional(reminder_time),
            completed=False,
            created_at=now,
            updated_at=now,
            completed_at=None,
        )
        self.session.add(task)
        self.session.commit()
        logger.debug("Created task %s for %s", task.id, user_id)
        return task

    def get(self, user_id: str, task_id: str) -> Optional[Task]:
        return self.session.execute(
            select(Task).where(Task.id == task_id, Task.user_id == user_id)
        ).scalar_one_or_none()

    def update(self, user_id: str, task_id: str, changes: Dict[str, Any]) -> Task:
        task = self.get(user_id, task_id)
        if task is None:
            raise NotFoundError("Task not found")

        changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        if not changes:
            return task

        # A rejected patch leaves the row untouched.
        cleaned: Dict[str, Any] = {}
        if "name" in changes:
            cleaned["name"] = _clean_name(changes["name"])
        if "description" in changes:
            cleaned["description"] = _clean_description(changes["description"])
        if "category" in changes:
            cleaned["category"] = _clean_optional(changes["category"])
        if "reminder_time" in changes:
            cleaned["reminder_time"] = _clean_optional(changes["reminder_time"])

        for field, value in cleaned.items():
            setattr(task, field, value)

        now = self.clock()
        if "completed" in changes and changes["completed"] is not None:
            completed = bool(changes["completed"])
            if completed and not task.completed:
                task.completed_at = now
            elif not completed:
                task.completed_at = None
            task.completed = completed

        task.updated_at = now
        self.session.commit()
        logger.debug("Updated task %s fields=%s", task.id, sorted(changes))
        return task

    def delete(self, user_id: str, task_id: str) -> bool:
        result = self.session.execute(
            delete(Task).where(Task.id == task_id, Task.user_id == user_id)
        )
        self.session.commit()
        removed = result.rowcount > 0
        if removed:
            logger.info("Deleted task %s", task_id)
        return removed

    def list(self, user_id: str, on_date: Optional[date] = None) -> List[Task]:
        stmt = select(Task).where(Task.user_id == user_id)
        if on_date is not None:
            start, end = day_bounds(on_date)
            stmt = stmt.where(Task.created_at >= start, Task.created_at < end)
        stmt = stmt.order_by(Task.created_at.desc())
        return list(self.session.execute(stmt).scalars())

    def today(self, user_id: str) -> List[Task]:
        return self.list(user_id, self.clock().date())

    def in_range(self, user_id: str, start_date: date, end_date: date) -> List[Task]:
        lower, _ = day_bounds(start_date)
        _, upper = day_bounds(end_date)
        stmt = (
            select(Task)
            .where(Task.user_id == user_id, Task.created_at >= lower, Task.created_at < upper)
            .order_by(Task.created_at.desc())
        )
        return list(self.session.execute(stmt).scalars())
