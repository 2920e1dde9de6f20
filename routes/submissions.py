from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

import grading
from database import get_db
from schemas import SubmissionCreate
from security import TokenClaims, get_current_user

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.get("")
def list_submissions(assignment_id: Optional[str] = None, student_id: Optional[str] = None,
                     course_id: Optional[str] = None, page: int = 1, limit: int = 20,
                     current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    return grading.list_submissions(db, current, assignment_id=assignment_id, student_id=student_id,
                                    course_id=course_id, page=page, limit=limit)


@router.post("", status_code=201)
def create_submission(body: SubmissionCreate, current: TokenClaims = Depends(get_current_user),
                      db: Database = Depends(get_db)):
    return grading.submit(db, current, body)


@router.get("/{submission_id}")
def get_submission(submission_id: str, current: TokenClaims = Depends(get_current_user),
                   db: Database = Depends(get_db)):
    return grading.submission_detail(db, current, submission_id)
