from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

import grading
from database import get_db
from schemas import GradeCreate, GradeUpdate
from security import TokenClaims, get_current_user

router = APIRouter(prefix="/grades", tags=["grades"])


@router.get("")
def list_grades(student_id: Optional[str] = None, assignment_id: Optional[str] = None,
                course_id: Optional[str] = None, current: TokenClaims = Depends(get_current_user),
                db: Database = Depends(get_db)):
    return grading.list_grades(db, current, student_id=student_id, assignment_id=assignment_id,
                               course_id=course_id)


@router.post("", status_code=201)
def create_grade(body: GradeCreate, current: TokenClaims = Depends(get_current_user),
                 db: Database = Depends(get_db)):
    return grading.record_grade(db, current, body.assignment_id, body.student_id,
                                body.manual_score, body.feedback)


@router.put("/{grade_id}")
def update_grade(grade_id: str, body: GradeUpdate, current: TokenClaims = Depends(get_current_user),
                 db: Database = Depends(get_db)):
    return grading.grade_submission(db, current, grade_id, manual_score=body.manual_score,
                                    feedback=body.feedback)
