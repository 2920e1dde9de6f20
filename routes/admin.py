from fastapi import APIRouter, Depends
from pymongo.database import Database

from database import get_db
from permissions import authorize
from security import TokenClaims, get_current_user

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/dashboard")
def dashboard(current: TokenClaims = Depends(get_current_user), db: Database = Depends(get_db)):
    authorize(current, "admin", "dashboard")
    return {
        "users": db["user"].count_documents({}),
        "students": db["user"].count_documents({"role": "student"}),
        "tutors": db["user"].count_documents({"role": "tutor"}),
        "courses": db["course"].count_documents({}),
        "enrollments": db["enrollment"].count_documents({}),
        "assignments": db["assignment"].count_documents({}),
        "submissions": db["submission"].count_documents({}),
        "pending_grades": db["grade"].count_documents({"status": "pending"}),
        "announcements": db["announcement"].count_documents({}),
    }
