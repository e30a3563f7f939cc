"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and the domain rules in `utils/` and `resolver.py`. Services are
intentionally thin: they look records up, apply the rule that guards a
write, and persist through repositories. Every failure is raised as a
`StudentAdminError` subclass for the API layer to translate.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from passlib.context import CryptContext
from sqlmodel import Session

from . import models, repositories
from .auth import ADMIN, USER
from .exceptions import (
    ActivityNotFoundError,
    AuthenticationFailedError,
    ConstraintViolation,
    DuplicateActivityNameError,
    DuplicateUserError,
    GradeNotFoundError,
    MembershipNotFoundError,
    StudentNotFoundError,
    ValidationFailedError,
)
from .resolver import RelationshipResolver
from .schemas import StudentInput
from .tokens import TOKEN_TTL, TokenService, token_service
from .utils.activity_rules import find_duplicate, normalize_name
from .utils.membership_dates import compute_membership_dates, normalize_membership_type

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
KNOWN_ROLES = (ADMIN, USER)

logger = logging.getLogger("studentadmin.services")


@dataclass
class LoginResult:
    token: str
    expires_at: datetime


class AuthService:
    """Credential checks, token issuance and identity provisioning."""
    def __init__(self, session: Session, tokens: TokenService = token_service):
        self.session = session
        self.tokens = tokens
        self.user_repo = repositories.UserRepository(session)
        self.role_repo = repositories.RoleRepository(session)

    def login(self, username: str, password: str) -> LoginResult:
        """Verify credentials and return a signed token on success.

        Raises `AuthenticationFailedError` with the same message whether
        the username is unknown or the password is wrong.
        """
        user = self.user_repo.get_by_username(username)
        if not user:
            # keep response time independent of whether the user exists
            PWD_CTX.dummy_verify()
            logger.warning("login failed for unknown user %r", username)
            raise AuthenticationFailedError()
        if not PWD_CTX.verify(password, user.password_hash):
            logger.warning("login failed for user %r: bad password", username)
            raise AuthenticationFailedError()
        now = datetime.now(timezone.utc)
        token = self.tokens.issue_token(user.username, user.role_names, now=now)
        logger.info("issued token for user %r roles=%s", user.username, ",".join(user.role_names))
        return LoginResult(token=token, expires_at=now + TOKEN_TTL)

    def create_user(self, username: str, password: str, roles: Iterable[str]) -> models.User:
        """Create a user with a hashed password and the given role names."""
        role_names = sorted({r.strip().upper() for r in roles})
        unknown = [r for r in role_names if r not in KNOWN_ROLES]
        if unknown or not role_names:
            raise ValidationFailedError("roles", f"unknown roles: {', '.join(unknown) or 'none given'}")
        if self.user_repo.get_by_username(username):
            raise DuplicateUserError(username)
        user = models.User(
            username=username,
            password_hash=PWD_CTX.hash(password),
            roles=[self.role_repo.get_or_create(name) for name in role_names],
        )
        try:
            return self.user_repo.create(user)
        except ConstraintViolation as exc:
            raise DuplicateUserError(username) from exc

    def ensure_admin(self, username: str, password: str) -> Optional[models.User]:
        """Seed the administrative identity if no user called `username` exists.

        Returns the created user, or `None` when it already existed.
        """
        for name in KNOWN_ROLES:
            self.role_repo.get_or_create(name)
        if self.user_repo.get_by_username(username):
            return None
        user = self.create_user(username, password, [ADMIN])
        logger.info("bootstrap: created administrative user %r", username)
        return user


class GradeService:
    """Pass-through CRUD for grades."""
    def __init__(self, session: Session):
        self.session = session
        self.grade_repo = repositories.GradeRepository(session)

    def add(self, grade: str, standard: int) -> models.Grade:
        return self.grade_repo.save(models.Grade(grade=grade, standard=standard))

    def get(self, grade_id: int) -> models.Grade:
        grade = self.grade_repo.get(grade_id)
        if grade is None:
            raise GradeNotFoundError(grade_id)
        return grade

    def list(self) -> List[models.Grade]:
        return self.grade_repo.list()

    def for_student(self, student_id: int) -> models.Grade:
        """Return the grade a student is enrolled in."""
        student = repositories.StudentRepository(self.session).get(student_id)
        if student is None:
            raise StudentNotFoundError(student_id)
        return student.grade

    def update(self, grade_id: int, grade: str, standard: int) -> models.Grade:
        record = self.get(grade_id)
        record.grade = grade
        record.standard = standard
        return self.grade_repo.save(record)

    def delete(self, grade_id: int) -> None:
        """Delete a grade that no student references."""
        record = self.get(grade_id)
        if self.grade_repo.has_students(grade_id):
            raise ValidationFailedError("grade_id", f"grade {grade_id} is still assigned to students")
        self.grade_repo.delete(record)


class MembershipService:
    """Create memberships with computed dates; dates are fixed afterwards."""
    def __init__(self, session: Session):
        self.session = session
        self.membership_repo = repositories.MembershipRepository(session)

    def add(self, membership_type: str, today: Optional[date] = None) -> models.Membership:
        """Create a membership starting today with an expiry derived from its type."""
        label, start, expiry = compute_membership_dates(membership_type, today=today)
        membership = self.membership_repo.save(
            models.Membership(membership_type=label, start_date=start, expiry_date=expiry)
        )
        logger.info("created %s membership id=%s expiring %s", label, membership.id, expiry.isoformat())
        return membership

    def get(self, membership_id: int) -> models.Membership:
        membership = self.membership_repo.get(membership_id)
        if membership is None:
            raise MembershipNotFoundError(membership_id)
        return membership

    def list(self) -> List[models.Membership]:
        return self.membership_repo.list()

    def for_student(self, student_id: int) -> models.Membership:
        student = repositories.StudentRepository(self.session).get(student_id)
        if student is None:
            raise StudentNotFoundError(student_id)
        return student.membership

    def update_type(self, membership_id: int, membership_type: str) -> models.Membership:
        """Change the type label only; start and expiry dates are kept."""
        membership = self.get(membership_id)
        membership.membership_type = normalize_membership_type(membership_type)
        return self.membership_repo.save(membership)

    def override_dates(self, membership_id: int, start_date: date, expiry_date: date) -> models.Membership:
        """Administrative correction of a membership's dates."""
        if expiry_date <= start_date:
            raise ValidationFailedError("expiry_date", "must be after start_date")
        membership = self.get(membership_id)
        membership.start_date = start_date
        membership.expiry_date = expiry_date
        logger.info("membership id=%s dates overridden to %s..%s", membership_id, start_date, expiry_date)
        return self.membership_repo.save(membership)

    def delete(self, membership_id: int) -> None:
        """Delete a membership that no student owns.

        Owned memberships go away with their student (see `StudentService.delete`).
        """
        membership = self.get(membership_id)
        if self.membership_repo.owner_id(membership_id) is not None:
            raise ValidationFailedError("membership_id", f"membership {membership_id} is owned by a student")
        self.membership_repo.delete(membership)


class ActivityService:
    """Activity CRUD guarded by the duplicate-name rules."""
    def __init__(self, session: Session):
        self.session = session
        self.activity_repo = repositories.ActivityRepository(session)

    def add(self, name: str, activity_type: str) -> models.Activity:
        find_duplicate(name, activity_type, self.activity_repo.list())
        activity = models.Activity(name=name.strip(), activity_type=activity_type.strip(), name_key=normalize_name(name))
        saved = self._save(activity, name)
        logger.info("created activity id=%s name=%r", saved.id, saved.name)
        return saved

    def get(self, activity_id: int) -> models.Activity:
        activity = self.activity_repo.get(activity_id)
        if activity is None:
            raise ActivityNotFoundError(activity_id)
        return activity

    def list(self) -> List[models.Activity]:
        return self.activity_repo.list()

    def list_for_student(self, student_id: int) -> List[models.Activity]:
        if repositories.StudentRepository(self.session).get(student_id) is None:
            raise StudentNotFoundError(student_id)
        return self.activity_repo.list_for_student(student_id)

    def update(self, activity_id: int, name: str, activity_type: str) -> models.Activity:
        activity = self.get(activity_id)
        find_duplicate(name, activity_type, self.activity_repo.list(), exclude_id=activity_id)
        activity.name = name.strip()
        activity.activity_type = activity_type.strip()
        activity.name_key = normalize_name(name)
        return self._save(activity, name)

    def delete(self, activity_id: int) -> None:
        """Delete an activity that no student is enrolled in."""
        activity = self.get(activity_id)
        if self.activity_repo.has_students(activity_id):
            raise ValidationFailedError("activity_id", f"activity {activity_id} still has students enrolled")
        self.activity_repo.delete(activity)

    def _save(self, activity: models.Activity, name: str) -> models.Activity:
        try:
            return self.activity_repo.save(activity)
        except ConstraintViolation as exc:
            # the unique name_key index caught a duplicate the scan missed
            raise DuplicateActivityNameError(name) from exc


class StudentService:
    """Student registration, update and removal."""
    def __init__(self, session: Session):
        self.session = session
        self.student_repo = repositories.StudentRepository(session)
        self.resolver = RelationshipResolver(session)

    def register(self, data: StudentInput) -> models.Student:
        return self.resolver.register(data)

    def update(self, student_id: int, data: StudentInput) -> models.Student:
        return self.resolver.update(student_id, data)

    def get(self, student_id: int) -> models.Student:
        student = self.student_repo.get(student_id)
        if student is None:
            raise StudentNotFoundError(student_id)
        return student

    def list(self) -> List[models.Student]:
        return self.student_repo.list()

    def delete(self, student_id: int) -> None:
        """Delete a student and the membership it owns.

        The referenced grade and activities are shared and stay in place.
        """
        student = self.get(student_id)
        self.student_repo.delete_with_membership(student)
        logger.info("deleted student id=%s", student_id)
