import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pymongo import DESCENDING
from pymongo.database import Database

from database import create_document, get_db, get_document, get_documents, serialize_doc
from enrollment import enrolled_course_ids
from permissions import authorize
from schemas import Announcement, AnnouncementCreate
from security import TokenClaims, get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/announcements", tags=["announcements"])


@router.get("")
def list_announcements(course_id: Optional[str] = None, is_global: Optional[bool] = None,
                       current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    query: Dict[str, Any] = {}
    if course_id:
        query["course_id"] = course_id
    if is_global:
        query["is_global"] = True

    if current.role == "student":
        enrolled = enrolled_course_ids(db, current.user_id)
        if course_id:
            course = get_document(db, "course", course_id, "Course")
            authorize(current, "announcement", "view_course", message="You are not enrolled in this course",
                      course=course, enrolled=course_id in enrolled)
        elif not is_global:
            query = {"$or": [{"is_global": True}, {"course_id": {"$in": enrolled}}]}

    announcements = get_documents(db, "announcement", query, sort=[("created_at", DESCENDING)])
    return [serialize_doc(a) for a in announcements]


@router.post("", status_code=201)
def create_announcement(body: AnnouncementCreate, current: TokenClaims = Depends(get_current_user),
                        db: Database = Depends(get_db)):
    course = get_document(db, "course", body.course_id, "Course") if body.course_id else None
    authorize(current, "announcement", "create", message="Not your course", course=course)
    doc = create_document(db, "announcement", Announcement(
        title=body.title,
        message=body.message,
        author_id=current.user_id,
        course_id=str(course["_id"]) if course else None,
        is_global=course is None,
    ))
    logger.info(f"Announcement {doc['_id']} posted by {current.user_id}")
    return serialize_doc(doc)


@router.delete("/{announcement_id}")
def delete_announcement(announcement_id: str, current: TokenClaims = Depends(get_current_user),
                        db: Database = Depends(get_db)):
    announcement = get_document(db, "announcement", announcement_id, "Announcement")
    authorize(current, "announcement", "delete", message="Only the author or admin may delete this announcement",
              author_id=announcement.get("author_id"))
    db["announcement"].delete_one({"_id": announcement["_id"]})
    return {"success": True}
