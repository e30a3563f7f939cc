"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
roles, grades, memberships, activities, students). Repositories return
SQLModel objects and perform commits/refreshes where appropriate.

Storage errors never leave this module raw: the session is rolled back
and the error is re-raised as `PersistenceFailure`, or as
`ConstraintViolation` when an integrity constraint rejected the write.
"""

import logging
from typing import List, Optional
from sqlmodel import Session, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from . import models
from .exceptions import ConstraintViolation, PersistenceFailure

logger = logging.getLogger("studentadmin.repositories")


def _commit(session: Session, action: str) -> None:
    """Commit the session, translating storage errors."""
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning("constraint violation while %s: %s", action, exc.orig)
        raise ConstraintViolation(f"constraint violation while {action}") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("storage failure while %s", action)
        raise PersistenceFailure() from exc


def _query(session: Session, action: str, fn):
    """Run a read, translating storage errors into `PersistenceFailure`."""
    try:
        return fn()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("storage failure while %s", action)
        raise PersistenceFailure() from exc


class _Repository:
    """Shared find/save/delete contract for id-keyed tables."""
    model = None
    label = "record"

    def __init__(self, session: Session):
        self.session = session

    def get(self, record_id: int):
        """Fetch a record by primary key, or `None` if absent."""
        return _query(self.session, f"loading {self.label}", lambda: self.session.get(self.model, record_id))

    def list(self) -> List:
        """Return every record ordered by id."""
        stmt = select(self.model).order_by(self.model.id)
        return _query(self.session, f"listing {self.label}s", lambda: list(self.session.exec(stmt).all()))

    def save(self, record):
        """Persist a new or modified record and return the refreshed instance."""
        self.session.add(record)
        _commit(self.session, f"saving {self.label}")
        self.session.refresh(record)
        return record

    def delete(self, record) -> None:
        self.session.delete(record)
        _commit(self.session, f"deleting {self.label}")


class RoleRepository(_Repository):
    model = models.Role
    label = "role"

    def get_by_name(self, name: str) -> Optional[models.Role]:
        stmt = select(models.Role).where(models.Role.name == name)
        return _query(self.session, "loading role", lambda: self.session.exec(stmt).first())

    def get_or_create(self, name: str) -> models.Role:
        """Return the role called `name`, creating it if needed."""
        role = self.get_by_name(name)
        if role:
            return role
        return self.save(models.Role(name=name))


class UserRepository(_Repository):
    """CRUD operations for `User` objects."""
    model = models.User
    label = "user"

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        return self.save(user)

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return _query(self.session, "loading user", lambda: self.session.exec(stmt).first())


class GradeRepository(_Repository):
    model = models.Grade
    label = "grade"

    def has_students(self, grade_id: int) -> bool:
        stmt = select(models.Student.id).where(models.Student.grade_id == grade_id)
        return _query(self.session, "checking grade references", lambda: self.session.exec(stmt).first() is not None)


class MembershipRepository(_Repository):
    model = models.Membership
    label = "membership"

    def owner_id(self, membership_id: int) -> Optional[int]:
        """Return the id of the student owning `membership_id`, if any."""
        stmt = select(models.Student.id).where(models.Student.membership_id == membership_id)
        return _query(self.session, "checking membership owner", lambda: self.session.exec(stmt).first())


class ActivityRepository(_Repository):
    """Query helpers for `Activity` records."""
    model = models.Activity
    label = "activity"

    def list_for_student(self, student_id: int) -> List[models.Activity]:
        """List the activities linked to `student_id`."""
        stmt = (
            select(models.Activity)
            .join(models.StudentActivityLink, models.StudentActivityLink.activity_id == models.Activity.id)
            .where(models.StudentActivityLink.student_id == student_id)
            .order_by(models.Activity.id)
        )
        return _query(self.session, "listing student activities", lambda: list(self.session.exec(stmt).all()))

    def has_students(self, activity_id: int) -> bool:
        stmt = select(models.StudentActivityLink.student_id).where(models.StudentActivityLink.activity_id == activity_id)
        return _query(self.session, "checking activity references", lambda: self.session.exec(stmt).first() is not None)


class StudentRepository(_Repository):
    model = models.Student
    label = "student"

    def delete_with_membership(self, student: models.Student) -> None:
        """Delete a student together with the membership it owns, in one commit."""
        membership = student.membership
        self.session.delete(student)
        if membership is not None:
            self.session.delete(membership)
        _commit(self.session, "deleting student")
