"""
Database Schemas and request payloads for the Course Portal

Each document model corresponds to a MongoDB collection. The collection name is the
lowercase of the class name (e.g., User -> "user"). References to other documents
are stored as string ids.

Request models describe exactly one endpoint body each and reject unknown fields.
"""
from typing import Optional, Literal, List, Dict, Union
from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator, model_validator
from datetime import datetime

Role = Literal["student", "tutor", "admin"]
PublicRole = Literal["student", "tutor"]
AssignmentType = Literal["auto", "upload"]
GradeStatus = Literal["pending", "graded"]


# ----------------------
# Embedded documents
# ----------------------
class Material(BaseModel):
    type: str = Field(..., description="e.g. ppt, pdf, video, link")
    url: str
    label: Optional[str] = None


class Chapter(BaseModel):
    title: str
    description: Optional[str] = None
    materials: List[Material] = Field(default_factory=list)


class Question(BaseModel):
    text: str = Field(..., min_length=1)
    image_url: Optional[str] = None
    choices: Optional[List[str]] = None
    correct_answer: Optional[str] = Field(None, description="Only kept for auto-graded assignments")


# ----------------------
# Collections
# ----------------------
class User(BaseModel):
    username: str = Field(..., description="Unique login handle")
    email: EmailStr = Field(..., description="Unique email address")
    password_hash: str = Field(..., description="Password hash")
    full_name: str = Field(..., description="Full name")
    role: Role = Field("student", description="User role")
    department: Optional[str] = None
    is_graduated: bool = False


class Course(BaseModel):
    title: str
    description: Optional[str] = None
    department: str
    instructor_id: str = Field(..., description="Tutor or admin user id")
    enrollment_key: str = Field(..., description="Unique key students redeem to self-enroll")
    is_mandatory: bool = False
    is_active: bool = True
    archived: bool = False
    chapters: List[Chapter] = Field(default_factory=list)
    enroll_emails: List[str] = Field(default_factory=list, description="Pre-authorized student emails")
    tags: List[str] = Field(default_factory=list)


class Enrollment(BaseModel):
    course_id: str
    student_id: str
    enrolled_at: datetime


class Assignment(BaseModel):
    course_id: str
    title: str
    type: AssignmentType
    instructions: str
    due_date: Optional[datetime] = None
    questions: List[Question] = Field(default_factory=list)
    max_score: float = 100
    is_active: bool = True


class Submission(BaseModel):
    assignment_id: str
    student_id: str
    course_id: str
    answers: Dict[str, str] = Field(default_factory=dict, description="Question index -> answer text")
    upload_link: Optional[str] = None
    submitted_at: datetime


class Grade(BaseModel):
    assignment_id: str
    student_id: str
    course_id: str
    score: Optional[float] = Field(None, description="Automatic score")
    manual_score: Optional[float] = None
    max_score: float
    status: GradeStatus = "pending"
    feedback: Optional[str] = None
    graded_by: Optional[str] = None
    graded_at: Optional[datetime] = None


class Announcement(BaseModel):
    title: str
    message: str
    author_id: str
    course_id: Optional[str] = None
    is_global: bool = False


# ----------------------
# Request payloads
# ----------------------
class RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


def _lower_emails(value):
    # emails are matched case-insensitively everywhere
    if isinstance(value, list):
        return [v.lower() for v in value]
    return value.lower()


def _strip(value):
    # keys are compared trimmed, so length limits apply to the trimmed value
    return value.strip() if isinstance(value, str) else value


# Auth
class RegisterRequest(RequestModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    username: Optional[str] = None
    department: Optional[str] = None
    # admin is accepted by the schema so the gate can refuse it explicitly
    role: Role = "student"

    normalize_email = field_validator("email")(_lower_emails)


class LoginRequest(RequestModel):
    email: EmailStr
    password: str

    normalize_email = field_validator("email")(_lower_emails)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Optional[Union[str, bool]]]


class PasswordChange(RequestModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


# Users (admin)
class UserCreate(RequestModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    username: Optional[str] = None
    role: Role = "student"
    department: Optional[str] = None

    normalize_email = field_validator("email")(_lower_emails)


class UserUpdate(RequestModel):
    full_name: Optional[str] = None
    role: Optional[Role] = None
    department: Optional[str] = None


# Courses
class CourseCreate(RequestModel):
    title: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    description: Optional[str] = None
    instructor_id: Optional[str] = None
    enrollment_key: Optional[str] = Field(None, min_length=4, max_length=64)
    is_mandatory: bool = False
    chapters: List[Chapter] = Field(default_factory=list)
    enroll_emails: List[EmailStr] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    normalize_emails = field_validator("enroll_emails")(_lower_emails)
    strip_key = field_validator("enrollment_key", mode="before")(_strip)


class CourseUpdate(RequestModel):
    # enrollment_key is deliberately absent: it never changes once issued
    title: Optional[str] = Field(None, min_length=1)
    department: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    instructor_id: Optional[str] = None
    is_mandatory: Optional[bool] = None
    is_active: Optional[bool] = None
    archived: Optional[bool] = None
    chapters: Optional[List[Chapter]] = None
    tags: Optional[List[str]] = None


class RedeemKeyRequest(RequestModel):
    enrollment_key: str = Field(..., min_length=1)

    strip_key = field_validator("enrollment_key", mode="before")(_strip)


class BulkEnrollRequest(RequestModel):
    enroll_emails: List[EmailStr] = Field(..., min_length=1)

    normalize_emails = field_validator("enroll_emails")(_lower_emails)


class EnrollmentRequest(RequestModel):
    enrollment_key: str = Field(..., min_length=1)
    course_id: Optional[str] = None

    strip_key = field_validator("enrollment_key", mode="before")(_strip)


# Assignments
class AssignmentCreate(RequestModel):
    course_id: str
    title: str = Field(..., min_length=1)
    type: AssignmentType
    instructions: str = Field(..., min_length=1)
    due_date: Optional[datetime] = None
    questions: List[Question] = Field(default_factory=list)
    max_score: float = Field(100, gt=0)
    is_active: bool = True


class AssignmentUpdate(RequestModel):
    title: Optional[str] = Field(None, min_length=1)
    type: Optional[AssignmentType] = None
    instructions: Optional[str] = Field(None, min_length=1)
    due_date: Optional[datetime] = None
    questions: Optional[List[Question]] = None
    max_score: Optional[float] = Field(None, gt=0)
    is_active: Optional[bool] = None


# Submissions and grades
class SubmissionCreate(RequestModel):
    assignment_id: str
    answers: Dict[str, str] = Field(default_factory=dict)
    upload_link: Optional[str] = None


class GradeCreate(RequestModel):
    assignment_id: str
    student_id: str
    manual_score: float = Field(..., ge=0)
    feedback: Optional[str] = None


class GradeUpdate(RequestModel):
    manual_score: Optional[float] = Field(None, ge=0)
    feedback: Optional[str] = None

    @model_validator(mode="after")
    def _require_something(self):
        if self.manual_score is None and self.feedback is None:
            raise ValueError("manual_score or feedback is required")
        return self


# Announcements
class AnnouncementCreate(RequestModel):
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    course_id: Optional[str] = None
