import logging
import secrets
import string
from typing import Any, Dict, Union

from fastapi import APIRouter, Depends, Response
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, get_document, get_documents, oid, serialize_doc, update_document
from enrollment import enroll_all_students, enroll_emails, enrolled_course_ids, is_enrolled, redeem_key
from errors import AuthorizationError, ValidationError
from permissions import authorize, can
from schemas import BulkEnrollRequest, Course, CourseCreate, CourseUpdate, RedeemKeyRequest
from security import TokenClaims, get_current_user
from settings import get_settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/courses", tags=["courses"])

KEY_ALPHABET = string.ascii_uppercase + string.digits


def generate_enrollment_key(db: Database) -> str:
    length = get_settings().ENROLLMENT_KEY_LENGTH
    while True:
        key = "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))
        if not db["course"].find_one({"enrollment_key": key}):
            return key


def present_course(course: Dict[str, Any], caller: TokenClaims) -> Dict[str, Any]:
    exclude = () if can(caller, "course", "view_key", course=course) else ("enrollment_key", "enroll_emails")
    return serialize_doc(course, exclude=("password_hash",) + exclude)


def _check_instructor(db: Database, instructor_id: str) -> str:
    instructor = get_document(db, "user", instructor_id, "Instructor")
    if instructor.get("role") not in ("tutor", "admin"):
        raise ValidationError("Instructor must be a tutor or admin", "INVALID_INSTRUCTOR")
    return str(instructor["_id"])


@router.get("")
def list_courses(current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    query: Dict[str, Any] = {"is_active": True, "archived": {"$ne": True}}
    if current.role == "student":
        query["_id"] = {"$in": [oid(cid) for cid in enrolled_course_ids(db, current.user_id)]}
    courses = get_documents(db, "course", query, sort=[("created_at", DESCENDING)])
    return [present_course(c, current) for c in courses]


@router.get("/my")
def my_courses(current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    authorize(current, "course", "list_own")
    courses = get_documents(db, "course", {"instructor_id": current.user_id, "is_active": True},
                            sort=[("created_at", DESCENDING)])
    return [present_course(c, current) for c in courses]


@router.get("/available")
def available_courses(current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    query: Dict[str, Any] = {"is_active": True, "archived": {"$ne": True}}
    if current.role == "student":
        query["_id"] = {"$nin": [oid(cid) for cid in enrolled_course_ids(db, current.user_id)]}
    courses = get_documents(db, "course", query, sort=[("created_at", DESCENDING)])
    return [present_course(c, current) for c in courses]


@router.post("", status_code=201)
def create_course(body: CourseCreate, current: TokenClaims = Depends(get_current_user),
                  db: Database = Depends(get_db)):
    authorize(current, "course", "create")

    # a tutor always instructs the course they create
    instructor_id = current.user_id
    if current.role == "admin" and body.instructor_id:
        instructor_id = _check_instructor(db, body.instructor_id)

    if body.enrollment_key:
        key = body.enrollment_key
        if db["course"].find_one({"enrollment_key": key}):
            raise ValidationError("Enrollment key already in use", "ENROLLMENT_KEY_EXISTS")
    else:
        key = generate_enrollment_key(db)

    try:
        course = create_document(db, "course", Course(
            title=body.title,
            description=body.description,
            department=body.department,
            instructor_id=instructor_id,
            enrollment_key=key,
            is_mandatory=body.is_mandatory,
            chapters=body.chapters,
            tags=body.tags,
        ))
    except DuplicateKeyError:
        raise ValidationError("Enrollment key already in use", "ENROLLMENT_KEY_EXISTS")
    logger.info(f"Course {course['_id']} created by {current.user_id}")

    results = {"processed": [], "skipped": [], "pending": []}
    if body.is_mandatory:
        results = enroll_all_students(db, course)
    if body.enroll_emails:
        bulk = enroll_emails(db, course, body.enroll_emails)
        for k in results:
            results[k] = list(dict.fromkeys(results[k] + bulk[k]))
        course = db["course"].find_one({"_id": course["_id"]})

    return {"course": present_course(course, current), "enrollments": results}


@router.get("/{course_id}")
def get_course(course_id: str, current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    course = get_document(db, "course", course_id, "Course")
    authorize(current, "course", "view", message="You are not enrolled in this course",
              course=course, enrolled=is_enrolled(db, str(course["_id"]), current.user_id))
    return present_course(course, current)


@router.put("/{course_id}")
def update_course(course_id: str, body: CourseUpdate, current: TokenClaims = Depends(get_current_user),
                  db: Database = Depends(get_db)):
    course = get_document(db, "course", course_id, "Course")
    authorize(current, "course", "update", message="Only the course instructor or admin can update the course",
              course=course)

    data = body.model_dump(exclude_unset=True)
    data = {k: v for k, v in data.items() if v is not None}
    if "instructor_id" in data:
        if current.role != "admin":
            raise AuthorizationError("Only an admin can reassign the instructor")
        data["instructor_id"] = _check_instructor(db, data["instructor_id"])
    if not data:
        return present_course(course, current)

    became_mandatory = data.get("is_mandatory") is True and not course.get("is_mandatory")
    updated = update_document(db, "course", course["_id"], data)
    if became_mandatory:
        enroll_all_students(db, updated)
    logger.info(f"Course {course_id} updated by {current.user_id}: {sorted(data)}")
    return present_course(updated, current)


@router.delete("/{course_id}")
def delete_course(course_id: str, current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    course = get_document(db, "course", course_id, "Course")
    authorize(current, "course", "delete", message="Only the instructor or admin may delete this course",
              course=course)
    cid = str(course["_id"])
    db["course"].delete_one({"_id": course["_id"]})
    for collection in ("enrollment", "assignment", "submission", "grade", "announcement"):
        db[collection].delete_many({"course_id": cid})
    logger.info(f"Course {cid} deleted by {current.user_id}")
    return {"success": True}


@router.post("/{course_id}/enroll")
def enroll(course_id: str, body: Union[RedeemKeyRequest, BulkEnrollRequest], response: Response,
           current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    if isinstance(body, RedeemKeyRequest):
        authorize(current, "enrollment", "redeem", message="Only students can redeem an enrollment key")
        enrollment = redeem_key(db, current, body.enrollment_key, course_id=course_id)
        response.status_code = 201
        return serialize_doc(enrollment)

    course = get_document(db, "course", course_id, "Course")
    authorize(current, "course", "enroll_students", message="Only the instructor or admin may enroll students",
              course=course)
    results = enroll_emails(db, course, body.enroll_emails)
    course = db["course"].find_one({"_id": course["_id"]})
    return {"course": present_course(course, current), "enrollments": results}


@router.get("/{course_id}/students")
def course_students(course_id: str, current: TokenClaims = Depends(get_current_user),
                    db: Database = Depends(get_db)):
    course = get_document(db, "course", course_id, "Course")
    authorize(current, "course", "view_roster", course=course)
    enrollments = get_documents(db, "enrollment", {"course_id": str(course["_id"])})
    students = get_documents(db, "user", {"_id": {"$in": [oid(e["student_id"]) for e in enrollments]}},
                             sort=[("full_name", 1)])
    return [serialize_doc(s) for s in students]
