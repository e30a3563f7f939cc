"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the student records backend.
Controllers are intentionally thin: they check access through the
`require(...)` dependency, delegate to services, and return JSON
responses. Domain errors are translated to HTTP responses by a single
exception handler.

Endpoints implemented:
- POST /auth/login, GET /auth/me, POST /auth/users
- /grades (list, get, by student, create, update, delete)
- /memberships (list, get, by student, create, update type, override dates, delete)
- /activities (list, get, create, update, delete)
- /students (list, get, register, update, delete, activities)
- GET /health
"""

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
from typing import List
import json
import logging
import time
import uuid
from .database import create_db_and_tables, engine, get_session
from . import services
from .auth import Identity, require
from .config import settings
from .exceptions import (
    NotFoundError,
    PersistenceFailure,
    StudentAdminError,
    TooManyAttemptsError,
    ValidationFailedError,
)
from .schemas import (
    ActivityIn,
    ActivityOut,
    GradeIn,
    GradeOut,
    IdentityOut,
    LoginIn,
    MembershipDatesIn,
    MembershipIn,
    MembershipOut,
    MessageOut,
    StudentInput,
    StudentOut,
    TokenOut,
    UserIn,
    UserOut,
)
from .utils.rate_limit import InMemoryRateLimiter

app = FastAPI(title="Student Records Administration API")
logger = logging.getLogger("studentadmin.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)
_login_rate_limiter = InMemoryRateLimiter()

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def bootstrap():
    """Create tables and seed the administrative identity."""
    create_db_and_tables()
    with Session(engine) as session:
        services.AuthService(session).ensure_admin(settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD)


bootstrap()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(StudentAdminError)
async def domain_error_handler(request: Request, exc: StudentAdminError):
    """Render a domain error as `{"error": code, "detail": message}`."""
    req_id = getattr(request.state, "request_id", None)
    if isinstance(exc, PersistenceFailure):
        logger.error("persistence_failure request_id=%s cause=%r", req_id, exc.__cause__)
    body = {"error": exc.code, "detail": exc.message, "request_id": req_id}
    if isinstance(exc, NotFoundError):
        body["kind"] = exc.kind
        body["id"] = exc.record_id
    if isinstance(exc, ValidationFailedError):
        body["field"] = exc.field
    headers = {}
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, TooManyAttemptsError):
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report the first invalid request field in the domain error shape."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "body"
    return await domain_error_handler(request, ValidationFailedError(field, first.get("msg", "invalid value")))


def _enforce_login_rate_limit(request: Request, username: str) -> str:
    key = f"{request.client.host if request.client else 'unknown'}:{username.strip().lower()}"
    allowed, retry_after = _login_rate_limiter.allow(
        key, settings.LOGIN_RATE_LIMIT_PER_MIN, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS
    )
    if not allowed:
        logger.warning("login rate limit exceeded for %r", username)
        raise TooManyAttemptsError(retry_after)
    return key


# ---------------------------------------------------------------- auth

@app.post('/auth/login', response_model=TokenOut)
def login(payload: LoginIn, request: Request, db: Session = Depends(get_session)):
    """Authenticate a user and return a JWT valid for one day.

    The token carries the username and role names and is signed with the
    configured JWT secret.
    """
    key = _enforce_login_rate_limit(request, payload.username)
    result = services.AuthService(db).login(payload.username, payload.password)
    _login_rate_limiter.reset(key)
    return TokenOut(access_token=result.token, expires_at=int(result.expires_at.timestamp()))


@app.get('/auth/me', response_model=IdentityOut)
def whoami(identity: Identity = Depends(require('whoami'))):
    """Return the identity carried by the caller's token."""
    return IdentityOut(username=identity.username, roles=list(identity.roles))


@app.post('/auth/users', response_model=UserOut, status_code=201)
def create_user(payload: UserIn, db: Session = Depends(get_session), identity: Identity = Depends(require('create_user'))):
    """Provision a new credential. Admin only."""
    user = services.AuthService(db).create_user(payload.username, payload.password, payload.roles)
    logger.info("user %r created by %r", user.username, identity.username)
    return UserOut(id=user.id, username=user.username, roles=user.role_names)


# ---------------------------------------------------------------- grades

@app.get('/grades', response_model=List[GradeOut], dependencies=[Depends(require('list_grades'))])
def list_grades(db: Session = Depends(get_session)):
    return [GradeOut.model_validate(g) for g in services.GradeService(db).list()]


@app.get('/grades/byStudent/{student_id}', response_model=GradeOut, dependencies=[Depends(require('student_grade'))])
def student_grade(student_id: int, db: Session = Depends(get_session)):
    """Return the grade the student is enrolled in."""
    return GradeOut.model_validate(services.GradeService(db).for_student(student_id))


@app.get('/grades/{grade_id}', response_model=GradeOut, dependencies=[Depends(require('get_grade'))])
def get_grade(grade_id: int, db: Session = Depends(get_session)):
    return GradeOut.model_validate(services.GradeService(db).get(grade_id))


@app.post('/grades', response_model=GradeOut, status_code=201, dependencies=[Depends(require('add_grade'))])
def add_grade(payload: GradeIn, db: Session = Depends(get_session)):
    return GradeOut.model_validate(services.GradeService(db).add(payload.grade, payload.standard))


@app.put('/grades/{grade_id}', response_model=GradeOut, dependencies=[Depends(require('update_grade'))])
def update_grade(grade_id: int, payload: GradeIn, db: Session = Depends(get_session)):
    return GradeOut.model_validate(services.GradeService(db).update(grade_id, payload.grade, payload.standard))


@app.delete('/grades/{grade_id}', response_model=MessageOut, dependencies=[Depends(require('delete_grade'))])
def delete_grade(grade_id: int, db: Session = Depends(get_session)):
    services.GradeService(db).delete(grade_id)
    return MessageOut(detail="grade deleted", id=grade_id)


# ---------------------------------------------------------------- memberships

@app.get('/memberships', response_model=List[MembershipOut], dependencies=[Depends(require('list_memberships'))])
def list_memberships(db: Session = Depends(get_session)):
    return [MembershipOut.model_validate(m) for m in services.MembershipService(db).list()]


@app.get('/memberships/byStudent/{student_id}', response_model=MembershipOut, dependencies=[Depends(require('student_membership'))])
def student_membership(student_id: int, db: Session = Depends(get_session)):
    return MembershipOut.model_validate(services.MembershipService(db).for_student(student_id))


@app.get('/memberships/{membership_id}', response_model=MembershipOut, dependencies=[Depends(require('get_membership'))])
def get_membership(membership_id: int, db: Session = Depends(get_session)):
    return MembershipOut.model_validate(services.MembershipService(db).get(membership_id))


@app.post('/memberships', response_model=MembershipOut, status_code=201, dependencies=[Depends(require('add_membership'))])
def add_membership(payload: MembershipIn, db: Session = Depends(get_session)):
    """Create a membership starting today.

    Expiry is 3, 6 or 12 calendar months later for Standard, Premium and
    Platinum respectively.
    """
    return MembershipOut.model_validate(services.MembershipService(db).add(payload.membership_type))


@app.put('/memberships/{membership_id}', response_model=MembershipOut, dependencies=[Depends(require('update_membership'))])
def update_membership(membership_id: int, payload: MembershipIn, db: Session = Depends(get_session)):
    """Change the membership type. Start and expiry dates are not recomputed."""
    return MembershipOut.model_validate(services.MembershipService(db).update_type(membership_id, payload.membership_type))


@app.put('/memberships/{membership_id}/dates', response_model=MembershipOut, dependencies=[Depends(require('override_membership_dates'))])
def override_membership_dates(membership_id: int, payload: MembershipDatesIn, db: Session = Depends(get_session)):
    svc = services.MembershipService(db)
    return MembershipOut.model_validate(svc.override_dates(membership_id, payload.start_date, payload.expiry_date))


@app.delete('/memberships/{membership_id}', response_model=MessageOut, dependencies=[Depends(require('delete_membership'))])
def delete_membership(membership_id: int, db: Session = Depends(get_session)):
    services.MembershipService(db).delete(membership_id)
    return MessageOut(detail="membership deleted", id=membership_id)


# ---------------------------------------------------------------- activities

@app.get('/activities', response_model=List[ActivityOut], dependencies=[Depends(require('list_activities'))])
def list_activities(db: Session = Depends(get_session)):
    return [ActivityOut.model_validate(a) for a in services.ActivityService(db).list()]


@app.get('/activities/{activity_id}', response_model=ActivityOut, dependencies=[Depends(require('get_activity'))])
def get_activity(activity_id: int, db: Session = Depends(get_session)):
    return ActivityOut.model_validate(services.ActivityService(db).get(activity_id))


@app.post('/activities', response_model=ActivityOut, status_code=201, dependencies=[Depends(require('add_activity'))])
def add_activity(payload: ActivityIn, db: Session = Depends(get_session)):
    """Create an activity unless its name (ignoring case and surrounding spaces) is taken."""
    return ActivityOut.model_validate(services.ActivityService(db).add(payload.name, payload.activity_type))


@app.put('/activities/{activity_id}', response_model=ActivityOut, dependencies=[Depends(require('update_activity'))])
def update_activity(activity_id: int, payload: ActivityIn, db: Session = Depends(get_session)):
    svc = services.ActivityService(db)
    return ActivityOut.model_validate(svc.update(activity_id, payload.name, payload.activity_type))


@app.delete('/activities/{activity_id}', response_model=MessageOut, dependencies=[Depends(require('delete_activity'))])
def delete_activity(activity_id: int, db: Session = Depends(get_session)):
    services.ActivityService(db).delete(activity_id)
    return MessageOut(detail="activity deleted", id=activity_id)


# ---------------------------------------------------------------- students

@app.get('/students', response_model=List[StudentOut], dependencies=[Depends(require('list_students'))])
def list_students(db: Session = Depends(get_session)):
    return [StudentOut.model_validate(s) for s in services.StudentService(db).list()]


@app.get('/students/{student_id}', response_model=StudentOut, dependencies=[Depends(require('get_student'))])
def get_student(student_id: int, db: Session = Depends(get_session)):
    return StudentOut.model_validate(services.StudentService(db).get(student_id))


@app.get('/students/{student_id}/activities', response_model=List[ActivityOut], dependencies=[Depends(require('student_activities'))])
def student_activities(student_id: int, db: Session = Depends(get_session)):
    return [ActivityOut.model_validate(a) for a in services.ActivityService(db).list_for_student(student_id)]


@app.post('/students', response_model=StudentOut, status_code=201)
def register_student(payload: StudentInput, db: Session = Depends(get_session), identity: Identity = Depends(require('register_student'))):
    """Register a student from a flat record.

    `grade_id`, `membership_id` and every entry of `activity_ids` must
    reference existing records; the membership must not belong to another
    student. Nothing is stored if any reference fails to resolve.
    """
    student = services.StudentService(db).register(payload)
    logger.info("student id=%s registered by %r", student.id, identity.username)
    return StudentOut.model_validate(student)


@app.put('/students/{student_id}', response_model=StudentOut)
def update_student(student_id: int, payload: StudentInput, db: Session = Depends(get_session), identity: Identity = Depends(require('update_student'))):
    """Replace every field and association of a student."""
    student = services.StudentService(db).update(student_id, payload)
    logger.info("student id=%s updated by %r", student.id, identity.username)
    return StudentOut.model_validate(student)


@app.delete('/students/{student_id}', response_model=MessageOut, dependencies=[Depends(require('delete_student'))])
def delete_student(student_id: int, db: Session = Depends(get_session)):
    """Delete a student and its membership. Grade and activities are kept."""
    services.StudentService(db).delete(student_id)
    return MessageOut(detail="student deleted", id=student_id)


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
