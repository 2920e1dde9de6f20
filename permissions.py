"""
Authorization gate.

Every protected operation is looked up in ``RULES`` by ``(resource, action)``. A rule is
a predicate over the caller's token claims and an ``AccessContext`` describing the
target (its course, whether the caller is enrolled, who authored or owns it).
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from errors import AuthorizationError
from security import TokenClaims

logger = logging.getLogger(__name__)


@dataclass
class AccessContext:
    course: Optional[Dict[str, Any]] = None
    enrolled: bool = False
    # user the target belongs to (submitting/graded student)
    subject_id: Optional[str] = None
    author_id: Optional[str] = None
    requested_role: Optional[str] = None


Rule = Callable[[Optional[TokenClaims], AccessContext], bool]


def is_admin(caller, ctx):
    return caller is not None and caller.role == "admin"


def is_staff(caller, ctx):
    return caller is not None and caller.role in ("tutor", "admin")


def is_student(caller, ctx):
    return caller is not None and caller.role == "student"


def owns_course(caller, ctx):
    return (
        caller is not None
        and caller.role == "tutor"
        and ctx.course is not None
        and str(ctx.course.get("instructor_id")) == caller.user_id
    )


def enrolled_student(caller, ctx):
    return is_student(caller, ctx) and ctx.enrolled


def is_subject(caller, ctx):
    return is_student(caller, ctx) and ctx.subject_id is not None and ctx.subject_id == caller.user_id


def is_author(caller, ctx):
    return caller is not None and ctx.author_id is not None and ctx.author_id == caller.user_id


def course_scope_allowed(caller, ctx):
    # global announcements need no course; course-scoped ones need ownership
    return ctx.course is None or is_admin(caller, ctx) or owns_course(caller, ctx)


def not_admin_role(caller, ctx):
    return ctx.requested_role != "admin"


def any_of(*rules: Rule) -> Rule:
    def check(caller, ctx):
        return any(rule(caller, ctx) for rule in rules)
    return check


def all_of(*rules: Rule) -> Rule:
    def check(caller, ctx):
        return all(rule(caller, ctx) for rule in rules)
    return check


admin_or_owner = any_of(is_admin, owns_course)

RULES: Dict[Tuple[str, str], Rule] = {
    ("course", "create"): is_staff,
    ("course", "update"): admin_or_owner,
    ("course", "delete"): admin_or_owner,
    ("course", "enroll_students"): admin_or_owner,
    ("course", "view"): any_of(is_staff, enrolled_student),
    ("course", "view_key"): admin_or_owner,
    ("course", "list_own"): is_staff,
    ("course", "view_roster"): admin_or_owner,
    ("assignment", "create"): admin_or_owner,
    ("assignment", "update"): admin_or_owner,
    ("assignment", "delete"): admin_or_owner,
    ("assignment", "view"): any_of(is_staff, enrolled_student),
    ("assignment", "view_answers"): is_staff,
    ("submission", "create"): enrolled_student,
    ("submission", "view"): any_of(admin_or_owner, is_subject),
    ("submission", "list"): is_staff,
    ("submission", "view_own"): is_student,
    ("grade", "create"): admin_or_owner,
    ("grade", "update"): admin_or_owner,
    ("grade", "view"): any_of(admin_or_owner, is_subject),
    ("user", "create"): is_admin,
    ("user", "list"): is_admin,
    ("user", "update"): is_admin,
    ("user", "graduate"): is_admin,
    ("user", "list_students"): is_staff,
    ("announcement", "create"): all_of(is_staff, course_scope_allowed),
    ("announcement", "delete"): any_of(is_admin, is_author),
    ("announcement", "view_course"): any_of(is_staff, enrolled_student),
    ("enrollment", "list"): is_staff,
    ("enrollment", "redeem"): is_student,
    ("registration", "public"): not_admin_role,
    ("admin", "dashboard"): is_admin,
}


def can(caller: Optional[TokenClaims], resource: str, action: str, **context) -> bool:
    rule = RULES.get((resource, action))
    if rule is None:
        raise KeyError(f"No authorization rule for {resource}:{action}")
    return rule(caller, AccessContext(**context))


def authorize(caller: Optional[TokenClaims], resource: str, action: str,
              message: Optional[str] = None, **context) -> None:
    """Raise ``AuthorizationError`` unless the rule for ``(resource, action)`` holds."""
    if can(caller, resource, action, **context):
        return
    who = f"{caller.role}:{caller.user_id}" if caller else "anonymous"
    logger.warning(f"Denied {resource}:{action} for {who}")
    raise AuthorizationError(message or "Forbidden", details={"resource": resource, "action": action})
