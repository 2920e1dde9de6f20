"""
Course enrollment workflow.

A (course, student) pair is either unenrolled or enrolled; the only transition is into
``enrolled``, through a redeemed enrollment key, a tutor/admin bulk enrollment, a
pre-authorized email, or a mandatory course. Enrollment rows are the single source
for "my courses": mandatory courses get real rows too.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_document, oid, utcnow
from errors import ConflictError, NotFoundError, ValidationError
from schemas import Enrollment
from security import TokenClaims

logger = logging.getLogger(__name__)


def enrolled_course_ids(db: Database, student_id: str) -> List[str]:
    return [e["course_id"] for e in db["enrollment"].find({"student_id": student_id}, {"course_id": 1})]


def is_enrolled(db: Database, course_id: str, student_id: str) -> bool:
    return db["enrollment"].find_one({"course_id": course_id, "student_id": student_id}) is not None


def course_is_open(course: Dict[str, Any]) -> bool:
    return course.get("is_active", True) and not course.get("archived", False)


def enroll_student(db: Database, course_id: str, student_id: str) -> bool:
    """Create the enrollment row if missing. Returns True when a row was created."""
    if is_enrolled(db, course_id, student_id):
        return False
    try:
        create_document(db, "enrollment", Enrollment(course_id=course_id, student_id=student_id, enrolled_at=utcnow()))
    except DuplicateKeyError:
        # a concurrent request won the insert
        return False
    logger.info(f"Enrolled student {student_id} in course {course_id}")
    return True


def redeem_key(db: Database, student: TokenClaims, enrollment_key: str,
               course_id: Optional[str] = None) -> Dict[str, Any]:
    """Self-enroll ``student`` in the course that owns ``enrollment_key``."""
    key = (enrollment_key or "").strip()
    if not key:
        raise ValidationError("Invalid enrollment key", "INVALID_ENROLLMENT_KEY")
    if course_id:
        course = get_document(db, "course", course_id, "Course")
        if course.get("enrollment_key") != key:
            raise ValidationError("Invalid enrollment key", "INVALID_ENROLLMENT_KEY")
    else:
        course = db["course"].find_one({"enrollment_key": key})
        if not course:
            raise ValidationError("Invalid enrollment key", "INVALID_ENROLLMENT_KEY")
    if not course_is_open(course):
        raise NotFoundError("Course", str(course["_id"]))

    user = db["user"].find_one({"_id": oid(student.user_id)})
    if not user:
        raise NotFoundError("User", student.user_id)
    if user.get("is_graduated"):
        raise ValidationError("Graduated students cannot enroll in courses", "STUDENT_GRADUATED")

    cid = str(course["_id"])
    if is_enrolled(db, cid, student.user_id):
        raise ConflictError("Already enrolled in this course", "ALREADY_ENROLLED")
    try:
        doc = create_document(db, "enrollment", Enrollment(course_id=cid, student_id=student.user_id, enrolled_at=utcnow()))
    except DuplicateKeyError:
        raise ConflictError("Already enrolled in this course", "ALREADY_ENROLLED")
    logger.info(f"Student {student.user_id} redeemed key for course {cid}")
    return doc


def enroll_emails(db: Database, course: Dict[str, Any], emails: Iterable[str]) -> Dict[str, List[str]]:
    """
    Bulk path used by tutors and admins.

    Every email is added to the course's pre-authorization list. Registered students
    are enrolled right away; unknown emails stay pending and are enrolled when that
    person registers.
    """
    emails = list(dict.fromkeys(emails))
    results = {"processed": [], "skipped": [], "pending": []}
    cid = str(course["_id"])

    db["course"].update_one(
        {"_id": course["_id"]},
        {"$addToSet": {"enroll_emails": {"$each": emails}}, "$set": {"updated_at": utcnow()}},
    )

    for email in emails:
        user = db["user"].find_one({"email": email})
        if not user:
            results["pending"].append(email)
            continue
        if user.get("role") != "student" or user.get("is_graduated"):
            results["skipped"].append(email)
            continue
        if enroll_student(db, cid, str(user["_id"])):
            results["processed"].append(email)
        else:
            results["skipped"].append(email)

    logger.info(
        f"Bulk enrollment for course {cid}: {len(results['processed'])} processed, "
        f"{len(results['skipped'])} skipped, {len(results['pending'])} pending"
    )
    return results


def enroll_all_students(db: Database, course: Dict[str, Any]) -> Dict[str, List[str]]:
    """Enroll every current, non-graduated student (mandatory courses)."""
    results = {"processed": [], "skipped": [], "pending": []}
    cid = str(course["_id"])
    for student in db["user"].find({"role": "student", "is_graduated": {"$ne": True}}):
        if enroll_student(db, cid, str(student["_id"])):
            results["processed"].append(student["email"])
        else:
            results["skipped"].append(student["email"])
    logger.info(f"Mandatory course {cid}: enrolled {len(results['processed'])} students")
    return results


def apply_pending_enrollments(db: Database, user: Dict[str, Any]) -> List[str]:
    """
    Enroll a newly created student in the courses that pre-authorized their email
    and in every open mandatory course. Returns the ids of the courses joined.
    """
    if user.get("role") != "student" or user.get("is_graduated"):
        return []
    query = {
        "is_active": True,
        "archived": {"$ne": True},
        "$or": [{"enroll_emails": user["email"]}, {"is_mandatory": True}],
    }
    joined = []
    for course in db["course"].find(query):
        cid = str(course["_id"])
        if enroll_student(db, cid, str(user["_id"])):
            joined.append(cid)
    return joined
