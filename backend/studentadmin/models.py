"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
"""

from typing import Optional
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, date, timezone
from typing import List


class UserRoleLink(SQLModel, table=True):
    """Join table between `User` and `Role`."""
    user_id: Optional[int] = Field(default=None, foreign_key='user.id', primary_key=True)
    role_id: Optional[int] = Field(default=None, foreign_key='role.id', primary_key=True)


class Role(SQLModel, table=True):
    """A named role such as `ADMIN` or `USER`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, nullable=False, unique=True)
    users: List['User'] = Relationship(back_populates='roles', link_model=UserRoleLink)


class User(SQLModel, table=True):
    """A credential record.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `roles`: role assignments used as token claims
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    roles: List[Role] = Relationship(back_populates='users', link_model=UserRoleLink)

    @property
    def role_names(self) -> List[str]:
        return sorted(r.name for r in self.roles)


class StudentActivityLink(SQLModel, table=True):
    """Many-to-many association between students and activities."""
    __tablename__ = 'student_activity'
    student_id: Optional[int] = Field(default=None, foreign_key='student.id', primary_key=True)
    activity_id: Optional[int] = Field(default=None, foreign_key='activity.id', primary_key=True)


class Grade(SQLModel, table=True):
    """A grade letter and its numeric standard. Shared by many students."""
    id: Optional[int] = Field(default=None, primary_key=True)
    grade: str
    standard: int
    students: List['Student'] = Relationship(back_populates='grade')


class Membership(SQLModel, table=True):
    """A membership plan with dates fixed at creation.

    `membership_type` is one of Standard/Premium/Platinum. A membership is
    owned by at most one `Student`.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    membership_type: str
    start_date: date
    expiry_date: date
    student: Optional['Student'] = Relationship(
        back_populates='membership',
        sa_relationship_kwargs={'uselist': False},
    )


class Activity(SQLModel, table=True):
    """An extracurricular activity.

    `name_key` holds the trimmed, lowercased name; its UNIQUE constraint
    backs up the duplicate scan performed by the activity service.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    activity_type: str
    name_key: str = Field(index=True, nullable=False, unique=True)
    students: List['Student'] = Relationship(back_populates='activities', link_model=StudentActivityLink)


class Student(SQLModel, table=True):
    """A registered student and its references to grade, membership and activities."""
    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str
    last_name: str
    phone_no: str
    email: str
    address: str
    dob: date
    grade_id: int = Field(foreign_key='grade.id', index=True)
    membership_id: int = Field(foreign_key='membership.id', unique=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    grade: Optional[Grade] = Relationship(back_populates='students')
    membership: Optional[Membership] = Relationship(back_populates='student')
    activities: List[Activity] = Relationship(back_populates='students', link_model=StudentActivityLink)
