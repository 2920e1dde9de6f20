"""
Assignment submission and grading workflow.

Per (assignment, student): not submitted -> submitted with a pending grade -> graded.
Auto-graded assignments skip the pending step: their grade is computed and recorded
with the submission.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import as_utc, create_document, get_document, get_documents, oid, serialize_doc, update_document, utcnow
from enrollment import is_enrolled
from errors import ConflictError, NotFoundError, ValidationError
from permissions import authorize, can
from schemas import Grade, Submission, SubmissionCreate
from security import TokenClaims

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


def answers_match(answer: Optional[str], correct_answer: Optional[str]) -> bool:
    """Exact comparison after trimming surrounding whitespace; case matters."""
    if correct_answer is None or answer is None:
        return False
    return answer.strip() == correct_answer.strip()


def compute_auto_score(questions: List[Dict[str, Any]], answers: Dict[str, str], max_score: float) -> float:
    if not questions:
        return 0.0
    correct = sum(
        1 for index, question in enumerate(questions)
        if answers_match(answers.get(str(index)), question.get("correct_answer"))
    )
    return round(correct / len(questions) * max_score, 2)


def effective_score(grade: Dict[str, Any]) -> Optional[float]:
    if grade.get("manual_score") is not None:
        return grade["manual_score"]
    return grade.get("score")


def serialize_grade(grade: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not grade:
        return None
    data = serialize_doc(grade)
    data["final_score"] = effective_score(grade)
    return data


def load_assignment(db: Database, assignment_id: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return the assignment and its parent course."""
    assignment = get_document(db, "assignment", assignment_id, "Assignment")
    course = db["course"].find_one({"_id": oid(assignment["course_id"])})
    if not course:
        raise NotFoundError("Course", assignment["course_id"])
    return assignment, course


def _check_answer_keys(assignment: Dict[str, Any], answers: Dict[str, str]) -> None:
    if assignment["type"] != "auto":
        return
    valid = {str(i) for i in range(len(assignment.get("questions") or []))}
    unknown = sorted(set(answers) - valid)
    if unknown:
        raise ValidationError(f"Unknown question index: {', '.join(unknown)}", details={"indexes": unknown})


def submit(db: Database, student: TokenClaims, payload: SubmissionCreate) -> Dict[str, Any]:
    assignment, course = load_assignment(db, payload.assignment_id)
    if not assignment.get("is_active", True):
        raise NotFoundError("Assignment", payload.assignment_id)

    course_id = str(course["_id"])
    authorize(student, "submission", "create", message="You are not enrolled in this course",
              course=course, enrolled=is_enrolled(db, course_id, student.user_id))

    due_date = assignment.get("due_date")
    if due_date is not None and utcnow() > as_utc(due_date):
        raise ValidationError("Assignment is past due", "PAST_DUE")

    assignment_id = str(assignment["_id"])
    if db["submission"].find_one({"assignment_id": assignment_id, "student_id": student.user_id}):
        raise ConflictError("Assignment already submitted", "ALREADY_SUBMITTED")

    answers = {str(k): v for k, v in payload.answers.items()}
    upload_link = (payload.upload_link or "").strip() or None
    if assignment["type"] == "upload" and not upload_link and not any(v.strip() for v in answers.values()):
        raise ValidationError("Incomplete submission: provide an upload link or an answer", "INCOMPLETE_SUBMISSION")
    _check_answer_keys(assignment, answers)

    try:
        submission = create_document(db, "submission", Submission(
            assignment_id=assignment_id,
            student_id=student.user_id,
            course_id=course_id,
            answers=answers,
            upload_link=upload_link,
            submitted_at=utcnow(),
        ))
    except DuplicateKeyError:
        raise ConflictError("Assignment already submitted", "ALREADY_SUBMITTED")

    max_score = assignment.get("max_score") or 100
    if assignment["type"] == "auto":
        changes = {
            "score": compute_auto_score(assignment.get("questions") or [], answers, max_score),
            "max_score": max_score,
            "status": "graded",
            "graded_at": utcnow(),
        }
    else:
        changes = {"max_score": max_score}

    existing = db["grade"].find_one({"assignment_id": assignment_id, "student_id": student.user_id})
    if existing:
        # a tutor recorded a grade before the work was handed in
        grade = update_document(db, "grade", existing["_id"], changes) if assignment["type"] == "auto" else existing
    else:
        grade = create_document(db, "grade", Grade(
            assignment_id=assignment_id,
            student_id=student.user_id,
            course_id=course_id,
            **changes,
        ))

    logger.info(
        f"Submission {submission['_id']} by {student.user_id} for assignment {assignment_id} "
        f"({assignment['type']}, grade {grade['status']})"
    )
    return {"submission": serialize_doc(submission), "grade": serialize_grade(grade)}


def grade_submission(db: Database, grader: TokenClaims, grade_id: str,
                     manual_score: Optional[float] = None, feedback: Optional[str] = None) -> Dict[str, Any]:
    grade = get_document(db, "grade", grade_id, "Grade")
    _, course = load_assignment(db, grade["assignment_id"])
    authorize(grader, "grade", "update", message="Only the course instructor or admin can grade",
              course=course)

    if manual_score is not None and manual_score > grade["max_score"]:
        raise ValidationError(
            f"Invalid grade: {manual_score}/{grade['max_score']}", "INVALID_GRADE",
            {"manual_score": manual_score, "max_score": grade["max_score"]},
        )

    changes: Dict[str, Any] = {}
    if manual_score is not None and manual_score != grade.get("manual_score"):
        changes["manual_score"] = manual_score
    if feedback is not None and feedback != grade.get("feedback"):
        changes["feedback"] = feedback

    if not changes:
        return serialize_grade(grade)

    # any manual grading (score or feedback) completes the grade
    changes["status"] = "graded"
    changes["graded_by"] = grader.user_id
    changes["graded_at"] = utcnow()
    updated = update_document(db, "grade", grade["_id"], changes)
    logger.info(f"Grade {grade_id} updated by {grader.user_id}: status={updated['status']}")
    return serialize_grade(updated)


def record_grade(db: Database, grader: TokenClaims, assignment_id: str, student_id: str,
                 manual_score: float, feedback: Optional[str] = None) -> Dict[str, Any]:
    """Grade a student directly, without a submission (e.g. work handed in offline)."""
    assignment, course = load_assignment(db, assignment_id)
    authorize(grader, "grade", "create", message="Only the course instructor or admin can grade",
              course=course)

    student = get_document(db, "user", student_id, "User")
    course_id = str(course["_id"])
    if student.get("role") != "student" or not is_enrolled(db, course_id, student_id):
        raise ValidationError("Student is not enrolled in this course", "NOT_ENROLLED")

    max_score = assignment.get("max_score") or 100
    if manual_score > max_score:
        raise ValidationError(f"Invalid grade: {manual_score}/{max_score}", "INVALID_GRADE")

    aid = str(assignment["_id"])
    if db["grade"].find_one({"assignment_id": aid, "student_id": student_id}):
        raise ConflictError("Grade already exists for this student", "GRADE_EXISTS")
    try:
        grade = create_document(db, "grade", Grade(
            assignment_id=aid,
            student_id=student_id,
            course_id=course_id,
            manual_score=manual_score,
            max_score=max_score,
            status="graded",
            feedback=feedback,
            graded_by=grader.user_id,
            graded_at=utcnow(),
        ))
    except DuplicateKeyError:
        raise ConflictError("Grade already exists for this student", "GRADE_EXISTS")
    logger.info(f"Grade recorded for student {student_id} on assignment {aid} by {grader.user_id}")
    return serialize_grade(grade)


def my_submission_status(db: Database, student: TokenClaims, assignment_id: str) -> Dict[str, Any]:
    assignment = get_document(db, "assignment", assignment_id, "Assignment")
    aid = str(assignment["_id"])
    submission = db["submission"].find_one({"assignment_id": aid, "student_id": student.user_id})
    if not submission:
        return {"submitted": False, "submission": None, "grade": None}

    grade = db["grade"].find_one({"assignment_id": aid, "student_id": student.user_id})
    return {
        "submitted": True,
        "submission": serialize_doc(submission),
        "grade": serialize_grade(grade),
    }


def submission_detail(db: Database, caller: TokenClaims, submission_id: str) -> Dict[str, Any]:
    submission = get_document(db, "submission", submission_id, "Submission")
    assignment, course = load_assignment(db, submission["assignment_id"])
    authorize(caller, "submission", "view", course=course, subject_id=submission["student_id"])

    show_key = can(caller, "assignment", "view_answers")
    answers = submission.get("answers") or {}
    detailed = []
    for index, question in enumerate(assignment.get("questions") or []):
        student_answer = answers.get(str(index))
        item = {
            "index": index,
            "text": question.get("text"),
            "image_url": question.get("image_url"),
            "choices": question.get("choices"),
            "student_answer": student_answer,
        }
        if assignment["type"] == "auto":
            item["is_correct"] = answers_match(student_answer, question.get("correct_answer"))
            if show_key:
                item["correct_answer"] = question.get("correct_answer")
        detailed.append(item)

    grade = db["grade"].find_one({"assignment_id": submission["assignment_id"], "student_id": submission["student_id"]})
    student = db["user"].find_one({"_id": oid(submission["student_id"])}, {"full_name": 1, "email": 1})
    data = serialize_doc(submission)
    data["assignment"] = {"id": str(assignment["_id"]), "title": assignment["title"], "type": assignment["type"]}
    data["student"] = serialize_doc(student)
    data["detailed_questions"] = detailed
    return {"submission": data, "grade": serialize_grade(grade)}


def _owned_course_ids(db: Database, tutor_id: str) -> List[str]:
    return [str(c["_id"]) for c in db["course"].find({"instructor_id": tutor_id}, {"_id": 1})]


def list_submissions(db: Database, caller: TokenClaims, assignment_id: Optional[str] = None,
                     student_id: Optional[str] = None, course_id: Optional[str] = None,
                     page: int = 1, limit: int = 20) -> Dict[str, Any]:
    authorize(caller, "submission", "list")
    page = max(1, page)
    limit = max(1, min(MAX_PAGE_SIZE, limit))

    query: Dict[str, Any] = {}
    if assignment_id:
        query["assignment_id"] = str(oid(assignment_id))
    if student_id:
        query["student_id"] = str(oid(student_id))
    if caller.role == "tutor":
        owned = _owned_course_ids(db, caller.user_id)
        if course_id:
            query["course_id"] = course_id if course_id in owned else {"$in": []}
        else:
            query["course_id"] = {"$in": owned}
    elif course_id:
        query["course_id"] = str(oid(course_id))

    total = db["submission"].count_documents(query)
    data = get_documents(db, "submission", query, sort=[("submitted_at", DESCENDING)],
                         skip=(page - 1) * limit, limit=limit)

    items = []
    for sub in data:
        grade = db["grade"].find_one({"assignment_id": sub["assignment_id"], "student_id": sub["student_id"]})
        student = db["user"].find_one({"_id": oid(sub["student_id"])}, {"full_name": 1, "email": 1})
        assignment = db["assignment"].find_one({"_id": oid(sub["assignment_id"])}, {"title": 1, "type": 1})
        item = serialize_doc(sub)
        item["student"] = serialize_doc(student)
        item["assignment"] = serialize_doc(assignment)
        item["grade"] = serialize_grade(grade)
        items.append(item)
    return {"items": items, "total": total, "page": page, "limit": limit}


def list_grades(db: Database, caller: TokenClaims, student_id: Optional[str] = None,
                assignment_id: Optional[str] = None, course_id: Optional[str] = None) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if assignment_id:
        query["assignment_id"] = assignment_id
    if course_id:
        query["course_id"] = course_id
    if caller.role == "student":
        # students only ever see their own grades
        query["student_id"] = caller.user_id
    else:
        if student_id:
            query["student_id"] = student_id
        if caller.role == "tutor":
            owned = _owned_course_ids(db, caller.user_id)
            if course_id:
                query["course_id"] = course_id if course_id in owned else {"$in": []}
            else:
                query["course_id"] = {"$in": owned}
    grades = get_documents(db, "grade", query, sort=[("updated_at", DESCENDING)])
    return [serialize_grade(g) for g in grades]
