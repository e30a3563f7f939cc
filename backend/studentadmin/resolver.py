"""Compose `Student` aggregates from flat input records.

A `StudentInput` names its grade, membership and activities by id. The
resolver loads each referenced record, fails on the first one that is
missing, and only then builds and saves the student. Nothing is written
until every reference has resolved, and the student row, its
association rows and its foreign keys are committed together.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlmodel import Session

from . import models
from .exceptions import (
    ActivityNotFoundError,
    ConstraintViolation,
    GradeNotFoundError,
    MembershipNotFoundError,
    StudentNotFoundError,
    ValidationFailedError,
)
from .repositories import ActivityRepository, GradeRepository, MembershipRepository, StudentRepository
from .schemas import StudentInput

logger = logging.getLogger("studentadmin.resolver")

SCALAR_FIELDS = ("first_name", "last_name", "phone_no", "email", "address", "dob")


@dataclass
class ResolvedReferences:
    grade: models.Grade
    membership: models.Membership
    activities: List[models.Activity]


class RelationshipResolver:
    """Resolve foreign keys of a `StudentInput` and persist the aggregate."""

    def __init__(self, session: Session):
        self.session = session
        self.grades = GradeRepository(session)
        self.memberships = MembershipRepository(session)
        self.activities = ActivityRepository(session)
        self.students = StudentRepository(session)

    def resolve(self, data: StudentInput, student_id: Optional[int] = None) -> ResolvedReferences:
        """Load the records referenced by `data`.

        `student_id` is the student being updated, if any; it may keep the
        membership it already owns.
        """
        grade = self.grades.get(data.grade_id)
        if grade is None:
            raise GradeNotFoundError(data.grade_id)

        membership = self.memberships.get(data.membership_id)
        if membership is None:
            raise MembershipNotFoundError(data.membership_id)
        owner = self.memberships.owner_id(membership.id)
        if owner is not None and owner != student_id:
            raise ValidationFailedError("membership_id", f"membership {membership.id} is already assigned to another student")

        if not data.activity_ids:
            raise ValidationFailedError("activity_ids", "at least one activity is required")
        activities = []
        for activity_id in dict.fromkeys(data.activity_ids):
            activity = self.activities.get(activity_id)
            if activity is None:
                raise ActivityNotFoundError(activity_id)
            activities.append(activity)
        return ResolvedReferences(grade=grade, membership=membership, activities=activities)

    def register(self, data: StudentInput) -> models.Student:
        """Create a student from `data` and return it with its generated id."""
        refs = self.resolve(data)
        student = models.Student(
            **{name: getattr(data, name) for name in SCALAR_FIELDS},
            grade_id=refs.grade.id,
            membership_id=refs.membership.id,
        )
        self._attach(student, refs)
        saved = self._save(student, refs.membership.id)
        logger.info("registered student id=%s grade=%s membership=%s", saved.id, refs.grade.id, refs.membership.id)
        return saved

    def update(self, student_id: int, data: StudentInput) -> models.Student:
        """Replace every field and association of an existing student."""
        student = self.students.get(student_id)
        if student is None:
            raise StudentNotFoundError(student_id)
        refs = self.resolve(data, student_id=student_id)
        for name in SCALAR_FIELDS:
            setattr(student, name, getattr(data, name))
        self._attach(student, refs)
        saved = self._save(student, refs.membership.id, student_id=student_id)
        logger.info("updated student id=%s", saved.id)
        return saved

    @staticmethod
    def _attach(student: models.Student, refs: ResolvedReferences) -> None:
        student.grade = refs.grade
        student.membership = refs.membership
        student.activities = list(refs.activities)

    def _save(self, student: models.Student, membership_id: int, student_id: Optional[int] = None) -> models.Student:
        try:
            return self.students.save(student)
        except ConstraintViolation as exc:
            # a concurrent request may have claimed the membership after resolve()
            owner = self.memberships.owner_id(membership_id)
            if owner is not None and owner != student_id:
                raise ValidationFailedError(
                    "membership_id", f"membership {membership_id} is already assigned to another student"
                ) from exc
            raise
