import pytest


def _assignment(client, headers, course_id, **overrides):
    body = {
        "course_id": course_id,
        "title": "Quiz 1",
        "type": "auto",
        "instructions": "Answer every question",
        "questions": [{"text": "Capital of France?", "correct_answer": "Paris"}],
    }
    body.update(overrides)
    r = client.post("/api/assignments", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


UPLOAD = {"type": "upload", "title": "Essay", "questions": []}


def test_auto_graded_submission(client, auth, tutor, student, course, enrolled, db):
    roster = client.get(f"/api/courses/{course['id']}/students", headers=auth(tutor)).json()
    assert [s["id"] for s in roster] == [str(student["_id"])]

    assignment = _assignment(client, auth(tutor), course["id"])
    r = client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "Paris"}},
                    headers=auth(student))
    assert r.status_code == 201, r.text
    grade = r.json()["grade"]
    assert grade["score"] == 100
    assert grade["max_score"] == 100
    assert grade["status"] == "graded"
    assert grade["final_score"] == 100


def test_upload_submission_graded_manually(client, auth, tutor, student, course, enrolled):
    assignment = _assignment(client, auth(tutor), course["id"], **UPLOAD)
    r = client.post("/api/submissions", json={"assignment_id": assignment["id"],
                                              "upload_link": "https://drive.example.org/essay.pdf"},
                    headers=auth(student))
    assert r.status_code == 201
    grade = r.json()["grade"]
    assert grade["status"] == "pending"
    assert grade["score"] is None

    r = client.put(f"/api/grades/{grade['id']}", json={"manual_score": 85, "feedback": "Well argued"},
                   headers=auth(tutor))
    assert r.status_code == 200
    assert r.json()["status"] == "graded"
    assert r.json()["manual_score"] == 85
    assert r.json()["final_score"] == 85
    assert r.json()["graded_by"] == str(tutor["_id"])


def test_unenrolled_student_cannot_submit(client, auth, tutor, student, course, db):
    assignment = _assignment(client, auth(tutor), course["id"])
    r = client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "Paris"}},
                    headers=auth(student))
    assert r.status_code == 403
    assert r.json() == {"error": "You are not enrolled in this course"}
    assert db["submission"].count_documents({}) == 0
    assert db["grade"].count_documents({}) == 0


def test_duplicate_submission(client, auth, tutor, student, course, enrolled, db):
    assignment = _assignment(client, auth(tutor), course["id"])
    body = {"assignment_id": assignment["id"], "answers": {"0": "Paris"}}
    assert client.post("/api/submissions", json=body, headers=auth(student)).status_code == 201

    r = client.post("/api/submissions", json={**body, "answers": {"0": "Rome"}}, headers=auth(student))
    assert r.status_code == 409
    assert db["submission"].count_documents({}) == 1
    assert db["grade"].find_one({})["score"] == 100


def test_partial_auto_score(client, auth, tutor, student, course, enrolled):
    assignment = _assignment(client, auth(tutor), course["id"], max_score=10, questions=[
        {"text": "Capital of France?", "correct_answer": "Paris"},
        {"text": "Capital of Italy?", "correct_answer": "Rome"},
    ])
    r = client.post("/api/submissions", json={"assignment_id": assignment["id"],
                                              "answers": {"0": " Paris ", "1": "rome"}},
                    headers=auth(student))
    assert r.json()["grade"]["score"] == 5


def test_answers_for_unknown_questions_are_rejected(client, auth, tutor, student, course, enrolled, db):
    assignment = _assignment(client, auth(tutor), course["id"])
    r = client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"7": "Paris"}},
                    headers=auth(student))
    assert r.status_code == 400
    assert db["submission"].count_documents({}) == 0


def test_incomplete_upload_submission(client, auth, tutor, student, course, enrolled, db):
    assignment = _assignment(client, auth(tutor), course["id"], **UPLOAD)
    r = client.post("/api/submissions", json={"assignment_id": assignment["id"], "upload_link": "  "},
                    headers=auth(student))
    assert r.status_code == 400
    assert db["submission"].count_documents({}) == 0


def test_past_due_submission(client, auth, tutor, student, course, enrolled, db):
    assignment = _assignment(client, auth(tutor), course["id"], due_date="2000-01-01T00:00:00Z")
    r = client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "Paris"}},
                    headers=auth(student))
    assert r.status_code == 400
    assert r.json() == {"error": "Assignment is past due"}
    assert db["submission"].count_documents({}) == 0


def test_clearing_due_date_reopens_assignment(client, auth, tutor, student, course, enrolled):
    assignment = _assignment(client, auth(tutor), course["id"], due_date="2000-01-01T00:00:00Z")
    r = client.put(f"/api/assignments/{assignment['id']}", json={"due_date": None}, headers=auth(tutor))
    assert r.status_code == 200
    assert r.json()["due_date"] is None

    r = client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "Paris"}},
                    headers=auth(student))
    assert r.status_code == 201


@pytest.fixture
def pending_grade(client, auth, tutor, student, course, enrolled):
    assignment = _assignment(client, auth(tutor), course["id"], **UPLOAD)
    r = client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "My essay"}},
                    headers=auth(student))
    assert r.status_code == 201
    return r.json()["grade"]


def test_manual_grade_is_idempotent(client, auth, tutor, pending_grade, db):
    url = f"/api/grades/{pending_grade['id']}"
    r1 = client.put(url, json={"manual_score": 70}, headers=auth(tutor))
    r2 = client.put(url, json={"manual_score": 70}, headers=auth(tutor))
    assert r1.status_code == r2.status_code == 200
    assert r1.json() == r2.json()
    assert db["grade"].count_documents({}) == 1


def test_feedback_alone_completes_grading(client, auth, tutor, pending_grade):
    r = client.put(f"/api/grades/{pending_grade['id']}", json={"feedback": "Add sources"}, headers=auth(tutor))
    assert r.status_code == 200
    assert r.json()["status"] == "graded"
    assert r.json()["feedback"] == "Add sources"
    assert r.json()["graded_by"] == str(tutor["_id"])
    assert r.json()["final_score"] is None


def test_grade_update_needs_a_change(client, auth, tutor, pending_grade):
    assert client.put(f"/api/grades/{pending_grade['id']}", json={}, headers=auth(tutor)).status_code == 400


def test_manual_score_above_max(client, auth, tutor, pending_grade, db):
    r = client.put(f"/api/grades/{pending_grade['id']}", json={"manual_score": 150}, headers=auth(tutor))
    assert r.status_code == 400
    assert db["grade"].find_one({})["status"] == "pending"


def test_negative_manual_score(client, auth, tutor, pending_grade):
    r = client.put(f"/api/grades/{pending_grade['id']}", json={"manual_score": -1}, headers=auth(tutor))
    assert r.status_code == 400


def test_other_tutor_cannot_grade(client, auth, make_user, pending_grade, db):
    other = make_user("tutor")
    r = client.put(f"/api/grades/{pending_grade['id']}", json={"manual_score": 90}, headers=auth(other))
    assert r.status_code == 403
    assert db["grade"].find_one({})["manual_score"] is None


def test_student_cannot_grade(client, auth, student, pending_grade):
    r = client.put(f"/api/grades/{pending_grade['id']}", json={"manual_score": 100}, headers=auth(student))
    assert r.status_code == 403


def test_admin_overrides_auto_score(client, auth, admin, tutor, student, course, enrolled):
    assignment = _assignment(client, auth(tutor), course["id"])
    grade = client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "Lyon"}},
                        headers=auth(student)).json()["grade"]
    assert grade["score"] == 0

    r = client.put(f"/api/grades/{grade['id']}", json={"manual_score": 40}, headers=auth(admin))
    assert r.json()["score"] == 0
    assert r.json()["final_score"] == 40


def test_record_grade_without_submission(client, auth, tutor, student, course, enrolled, db):
    assignment = _assignment(client, auth(tutor), course["id"], **UPLOAD)
    body = {"assignment_id": assignment["id"], "student_id": str(student["_id"]), "manual_score": 60}
    r = client.post("/api/grades", json=body, headers=auth(tutor))
    assert r.status_code == 201
    assert r.json()["status"] == "graded"

    assert client.post("/api/grades", json=body, headers=auth(tutor)).status_code == 409
    assert db["grade"].count_documents({}) == 1


def test_record_grade_for_unenrolled_student(client, auth, tutor, make_user, course):
    assignment = _assignment(client, auth(tutor), course["id"], **UPLOAD)
    outsider = make_user("student")
    r = client.post("/api/grades", json={"assignment_id": assignment["id"], "student_id": str(outsider["_id"]),
                                         "manual_score": 60}, headers=auth(tutor))
    assert r.status_code == 400


def test_student_view_hides_answer_key(client, auth, tutor, student, course, enrolled):
    assignment = _assignment(client, auth(tutor), course["id"])
    assert assignment["questions"][0]["correct_answer"] == "Paris"

    r = client.get(f"/api/assignments/{assignment['id']}", headers=auth(student))
    assert r.status_code == 200
    assert "correct_answer" not in r.json()["questions"][0]

    listed = client.get("/api/assignments", params={"course_id": course["id"]}, headers=auth(student)).json()
    assert "correct_answer" not in listed[0]["questions"][0]


def test_unenrolled_student_sees_no_assignments(client, auth, tutor, student, course):
    assignment = _assignment(client, auth(tutor), course["id"])
    assert client.get("/api/assignments", headers=auth(student)).json() == []
    assert client.get(f"/api/assignments/{assignment['id']}", headers=auth(student)).status_code == 403


def test_my_submission_status(client, auth, tutor, student, course, enrolled):
    assignment = _assignment(client, auth(tutor), course["id"])
    url = f"/api/assignments/{assignment['id']}/my-submission"
    assert client.get(url, headers=auth(student)).json() == {"submitted": False, "submission": None, "grade": None}

    client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "Paris"}},
                headers=auth(student))
    status = client.get(url, headers=auth(student)).json()
    assert status["submitted"] is True
    assert status["grade"]["status"] == "graded"


def test_assignment_in_foreign_course(client, auth, make_user, course, db):
    other = make_user("tutor")
    r = client.post("/api/assignments", json={"course_id": course["id"], "title": "Sneaky", "type": "upload",
                                              "instructions": "..."}, headers=auth(other))
    assert r.status_code == 403
    assert db["assignment"].count_documents({}) == 0


def test_auto_assignment_needs_correct_answers(client, auth, tutor, course, db):
    r = client.post("/api/assignments", json={
        "course_id": course["id"], "title": "Quiz", "type": "auto", "instructions": "Go",
        "questions": [{"text": "Capital of France?"}],
    }, headers=auth(tutor))
    assert r.status_code == 400
    assert db["assignment"].count_documents({}) == 0


def test_upload_assignment_drops_answer_key(client, auth, tutor, course):
    assignment = _assignment(client, auth(tutor), course["id"], type="upload",
                             questions=[{"text": "Discuss", "correct_answer": "anything"}])
    assert assignment["questions"][0]["correct_answer"] is None


def test_students_see_only_their_grades(client, auth, tutor, student, make_user, course, enrolled):
    classmate = make_user("student")
    client.post(f"/api/courses/{course['id']}/enroll", json={"enrollment_key": "ABC123"}, headers=auth(classmate))
    assignment = _assignment(client, auth(tutor), course["id"])
    for who in (student, classmate):
        client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "Paris"}},
                    headers=auth(who))

    mine = client.get("/api/grades", params={"student_id": str(classmate["_id"])}, headers=auth(student)).json()
    assert [g["student_id"] for g in mine] == [str(student["_id"])]
    assert len(client.get("/api/grades", headers=auth(tutor)).json()) == 2


def test_submission_detail_access(client, auth, tutor, student, make_user, course, enrolled):
    classmate = make_user("student")
    client.post(f"/api/courses/{course['id']}/enroll", json={"enrollment_key": "ABC123"}, headers=auth(classmate))
    assignment = _assignment(client, auth(tutor), course["id"])
    sub = client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "Paris"}},
                      headers=auth(student)).json()["submission"]
    url = f"/api/submissions/{sub['id']}"

    own = client.get(url, headers=auth(student)).json()
    [question] = own["submission"]["detailed_questions"]
    assert question["is_correct"] is True
    assert "correct_answer" not in question

    staff = client.get(url, headers=auth(tutor)).json()
    assert staff["submission"]["detailed_questions"][0]["correct_answer"] == "Paris"

    assert client.get(url, headers=auth(classmate)).status_code == 403


def test_tutor_lists_submissions_of_own_courses(client, auth, tutor, student, make_user, course, enrolled):
    assignment = _assignment(client, auth(tutor), course["id"])
    client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "Paris"}},
                headers=auth(student))

    page = client.get("/api/submissions", params={"limit": 10}, headers=auth(tutor)).json()
    assert page["total"] == 1
    assert page["limit"] == 10
    assert page["items"][0]["grade"]["final_score"] == 100
    assert page["items"][0]["student"]["email"] == student["email"]

    other = make_user("tutor")
    assert client.get("/api/submissions", headers=auth(other)).json()["total"] == 0
    assert client.get("/api/submissions", headers=auth(student)).status_code == 403


def test_deleting_assignment_removes_its_work(client, auth, tutor, student, course, enrolled, db):
    assignment = _assignment(client, auth(tutor), course["id"])
    client.post("/api/submissions", json={"assignment_id": assignment["id"], "answers": {"0": "Paris"}},
                headers=auth(student))
    assert client.delete(f"/api/assignments/{assignment['id']}", headers=auth(tutor)).status_code == 200
    assert db["submission"].count_documents({}) == 0
    assert db["grade"].count_documents({}) == 0
