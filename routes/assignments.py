import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pymongo import DESCENDING
from pymongo.database import Database

from database import create_document, get_db, get_document, get_documents, oid, serialize_doc, update_document
from enrollment import enrolled_course_ids, is_enrolled
from errors import NotFoundError, ValidationError
from grading import load_assignment, my_submission_status
from permissions import authorize, can
from schemas import Assignment, AssignmentCreate, AssignmentUpdate
from security import TokenClaims, get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/assignments", tags=["assignments"])


def normalize_questions(kind: str, questions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Auto assignments need a correct answer on every question; upload ones keep none."""
    if kind == "auto":
        if not questions:
            raise ValidationError("Auto-graded assignments need at least one question", "NO_QUESTIONS")
        for index, q in enumerate(questions):
            if not (q.get("correct_answer") or "").strip():
                raise ValidationError(f"Question {index} is missing a correct answer", "MISSING_CORRECT_ANSWER",
                                      {"index": index})
        return questions
    return [{**q, "correct_answer": None} for q in questions]


def present_assignment(assignment: Dict[str, Any], caller: TokenClaims) -> Dict[str, Any]:
    data = serialize_doc(assignment)
    if not can(caller, "assignment", "view_answers"):
        # the answer key stays with staff
        data["questions"] = [{k: v for k, v in q.items() if k != "correct_answer"}
                             for q in data.get("questions") or []]
    return data


@router.get("")
def list_assignments(course_id: Optional[str] = None, current: TokenClaims = Depends(get_current_user),
                     db: Database = Depends(get_db)):
    query: Dict[str, Any] = {"is_active": True}
    if course_id:
        query["course_id"] = course_id
    if current.role == "student":
        enrolled = enrolled_course_ids(db, current.user_id)
        if course_id:
            query["course_id"] = course_id if course_id in enrolled else {"$in": []}
        else:
            query["course_id"] = {"$in": enrolled}
    assignments = get_documents(db, "assignment", query, sort=[("created_at", DESCENDING)])
    return [present_assignment(a, current) for a in assignments]


@router.post("", status_code=201)
def create_assignment(body: AssignmentCreate, current: TokenClaims = Depends(get_current_user),
                      db: Database = Depends(get_db)):
    course = get_document(db, "course", body.course_id, "Course")
    authorize(current, "assignment", "create", message="Not your course", course=course)

    questions = normalize_questions(body.type, [q.model_dump() for q in body.questions])
    assignment = create_document(db, "assignment", Assignment(
        course_id=str(course["_id"]),
        title=body.title,
        type=body.type,
        instructions=body.instructions,
        due_date=body.due_date,
        questions=questions,
        max_score=body.max_score,
        is_active=body.is_active,
    ))
    logger.info(f"Assignment {assignment['_id']} ({body.type}) created in course {course['_id']}")
    return serialize_doc(assignment)


@router.get("/{assignment_id}")
def get_assignment(assignment_id: str, current: TokenClaims = Depends(get_current_user),
                   db: Database = Depends(get_db)):
    assignment, course = load_assignment(db, assignment_id)
    authorize(current, "assignment", "view", message="You are not enrolled in this course",
              course=course, enrolled=is_enrolled(db, str(course["_id"]), current.user_id))
    if current.role == "student" and not assignment.get("is_active", True):
        raise NotFoundError("Assignment", assignment_id)
    return present_assignment(assignment, current)


@router.put("/{assignment_id}")
def update_assignment(assignment_id: str, body: AssignmentUpdate, current: TokenClaims = Depends(get_current_user),
                      db: Database = Depends(get_db)):
    assignment, course = load_assignment(db, assignment_id)
    authorize(current, "assignment", "update",
              message="Only the course instructor or admin can update this assignment", course=course)

    data = body.model_dump(exclude_unset=True)
    # an explicit null clears the due date; other fields ignore nulls
    data = {k: v for k, v in data.items() if v is not None or k == "due_date"}
    if not data:
        return serialize_doc(assignment)

    kind = data.get("type", assignment["type"])
    if "questions" in data or "type" in data:
        data["questions"] = normalize_questions(kind, data.get("questions", assignment.get("questions") or []))

    updated = update_document(db, "assignment", assignment["_id"], data)
    logger.info(f"Assignment {assignment_id} updated by {current.user_id}: {sorted(data)}")
    return serialize_doc(updated)


@router.delete("/{assignment_id}")
def delete_assignment(assignment_id: str, current: TokenClaims = Depends(get_current_user),
                      db: Database = Depends(get_db)):
    assignment, course = load_assignment(db, assignment_id)
    authorize(current, "assignment", "delete",
              message="Only the course instructor or admin can delete this assignment", course=course)
    aid = str(assignment["_id"])
    db["assignment"].delete_one({"_id": oid(aid)})
    db["submission"].delete_many({"assignment_id": aid})
    db["grade"].delete_many({"assignment_id": aid})
    logger.info(f"Assignment {aid} deleted by {current.user_id}")
    return {"success": True}


@router.get("/{assignment_id}/my-submission")
def my_submission(assignment_id: str, current: TokenClaims = Depends(get_current_user),
                  db: Database = Depends(get_db)):
    authorize(current, "submission", "view_own")
    return my_submission_status(db, current, assignment_id)
