# ==============================================================================
# routes/__init__.py - Route module initialization
# ==============================================================================

from fastapi import APIRouter
from . import admin, announcements, assignments, auth, courses, enrollments, grades, submissions, users


def create_router():
    """Create the API router with every resource router mounted"""
    main_router = APIRouter()

    main_router.include_router(auth.router)
    main_router.include_router(users.router)
    main_router.include_router(courses.router)
    main_router.include_router(enrollments.router)
    main_router.include_router(assignments.router)
    main_router.include_router(submissions.router)
    main_router.include_router(grades.router)
    main_router.include_router(announcements.router)
    main_router.include_router(admin.router)

    return main_router
