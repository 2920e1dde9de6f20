from fastapi import APIRouter, Depends
from pymongo import DESCENDING
from pymongo.database import Database

from database import get_db, get_documents, oid, serialize_doc
from enrollment import redeem_key
from permissions import authorize
from schemas import EnrollmentRequest
from security import TokenClaims, get_current_user

router = APIRouter(prefix="/enrollments", tags=["enrollments"])


@router.get("")
def list_enrollments(current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    authorize(current, "enrollment", "list")
    query = {}
    if current.role == "tutor":
        owned = [str(c["_id"]) for c in db["course"].find({"instructor_id": current.user_id}, {"_id": 1})]
        query = {"course_id": {"$in": owned}}

    items = []
    for e in get_documents(db, "enrollment", query, sort=[("enrolled_at", DESCENDING)]):
        student = db["user"].find_one({"_id": oid(e["student_id"])}, {"full_name": 1, "email": 1, "username": 1})
        course = db["course"].find_one({"_id": oid(e["course_id"])}, {"title": 1})
        item = serialize_doc(e)
        item["student"] = serialize_doc(student)
        item["course"] = serialize_doc(course)
        items.append(item)
    return items


@router.post("", status_code=201)
def join_course(body: EnrollmentRequest, current: TokenClaims = Depends(get_current_user),
                db: Database = Depends(get_db)):
    authorize(current, "enrollment", "redeem", message="Only students can redeem an enrollment key")
    return serialize_doc(redeem_key(db, current, body.enrollment_key, course_id=body.course_id))
