"""
Tests for the quiz attempt API: start, submit, scoring and certification.
"""
import pytest
from sqlalchemy import event, func, insert, select

from app.controllers import certificates_controller
from app.controllers.quiz_controller import start_attempt
from app.core.errors import Conflict
from app.models.certificate import Certificate
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.quiz import QuizAttempt, QuizAttemptAnswer

from conftest import (
    answer_key,
    auth_headers,
    complete_all_lessons,
    create_course,
    create_quiz,
    enroll,
)


async def _start(client, quiz, user):
    return await client.post(f"/api/quizzes/{quiz.id}/start", headers=auth_headers(user))


async def _submit(client, quiz, user, attempt_id, answers):
    return await client.post(
        f"/api/quizzes/{quiz.id}/submit",
        json={"attemptId": attempt_id, "answers": answers},
        headers=auth_headers(user),
    )


def _answers(key, correct):
    """First `correct` questions answered right, the rest wrong."""
    out = []
    for i, (qid, (right, wrong)) in enumerate(sorted(key.items())):
        out.append({"questionId": qid, "optionIds": [right if i < correct else wrong]})
    return out


# =============================================================================
# Start
# =============================================================================

class TestStartAttempt:

    async def test_hides_correct_answers(self, client, db, learner, course):
        quiz = await create_quiz(db, course)
        await enroll(db, learner, course)

        resp = await _start(client, quiz, learner)

        assert resp.status_code == 200
        body = resp.json()
        assert body["attempt"]["attemptNo"] == 1
        assert len(body["questions"]) == 3
        for q in body["questions"]:
            assert "answerKey" not in q
            for o in q["options"]:
                assert set(o) == {"id", "label", "order"}

    async def test_questions_in_order_when_not_randomised(self, client, db, learner, course):
        quiz = await create_quiz(db, course, questions=5)
        await enroll(db, learner, course)

        resp = await _start(client, quiz, learner)
        orders = [q["order"] for q in resp.json()["questions"]]
        assert orders == [1, 2, 3, 4, 5]

    async def test_randomised_is_a_permutation(self, client, db, learner, course):
        quiz = await create_quiz(db, course, questions=8, randomize=True, attempts_allowed=10)
        await enroll(db, learner, course)

        seen = set()
        for _ in range(4):
            resp = await _start(client, quiz, learner)
            orders = [q["order"] for q in resp.json()["questions"]]
            assert sorted(orders) == list(range(1, 9))
            seen.add(tuple(orders))
        # 4 draws of 8! orders all identical is vanishingly unlikely
        assert len(seen) > 1

    async def test_attempt_numbers_are_contiguous(self, client, db, learner, course):
        quiz = await create_quiz(db, course, attempts_allowed=3)
        await enroll(db, learner, course)

        numbers = [(await _start(client, quiz, learner)).json()["attempt"]["attemptNo"] for _ in range(3)]
        assert numbers == [1, 2, 3]

    async def test_attempt_limit(self, client, db, learner, course):
        quiz = await create_quiz(db, course, attempts_allowed=1)
        await enroll(db, learner, course)

        key = await answer_key(db, quiz)
        first = await _start(client, quiz, learner)
        assert first.status_code == 200
        failed = await _submit(client, quiz, learner, first.json()["attempt"]["id"], _answers(key, correct=0))
        assert failed.json()["attempt"]["passed"] is False

        resp = await _start(client, quiz, learner)

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Maximum attempts reached"

    async def test_concurrent_start_conflicts(self, db, engine, session_factory, learner, course):
        quiz = await create_quiz(db, course, attempts_allowed=3)
        await enroll(db, learner, course)
        quiz_id, learner_id = quiz.id, learner.id

        def _rival_start(session, flush_context, instances):
            # a second request takes attempt 1 between the max() read and our insert
            with engine.sync_engine.begin() as conn:
                conn.execute(insert(QuizAttempt.__table__).values(
                    quiz_id=quiz_id, user_id=learner_id, attempt_no=1, score=0, passed=False,
                ))

        event.listen(db.sync_session, "before_flush", _rival_start, once=True)

        with pytest.raises(Conflict) as exc:
            await start_attempt(db, learner, quiz_id)

        assert exc.value.status_code == 409
        async with session_factory() as s:
            numbers = (await s.execute(
                select(QuizAttempt.attempt_no).where(QuizAttempt.quiz_id == quiz_id)
            )).scalars().all()
        assert numbers == [1]

    async def test_not_enrolled(self, client, db, learner, course):
        quiz = await create_quiz(db, course)
        resp = await _start(client, quiz, learner)
        assert resp.status_code == 403

    async def test_completed_enrollment_cannot_start(self, client, db, learner, course):
        quiz = await create_quiz(db, course)
        await enroll(db, learner, course, status=EnrollmentStatus.COMPLETED)
        resp = await _start(client, quiz, learner)
        assert resp.status_code == 403

    async def test_unknown_quiz(self, client, learner):
        resp = await client.post("/api/quizzes/9999/start", headers=auth_headers(learner))
        assert resp.status_code == 404

    async def test_start_marks_enrollment_started(self, client, db, session_factory, learner, course):
        quiz = await create_quiz(db, course)
        await enroll(db, learner, course)

        await _start(client, quiz, learner)

        async with session_factory() as s:
            enrollment = (await s.execute(select(Enrollment))).scalar_one()
        assert enrollment.status == EnrollmentStatus.STARTED
        assert enrollment.started_at is not None

    async def test_invalid_token(self, client, db, course):
        quiz = await create_quiz(db, course)
        resp = await client.post(f"/api/quizzes/{quiz.id}/start", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


# =============================================================================
# Submit
# =============================================================================

class TestSubmitAttempt:

    async def test_scores_and_explains(self, client, db, learner):
        course = await create_course(db, certificate_enabled=False)
        quiz = await create_quiz(db, course, questions=4)
        await enroll(db, learner, course)
        key = await answer_key(db, quiz)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        resp = await _submit(client, quiz, learner, attempt_id, _answers(key, correct=3))

        assert resp.status_code == 200
        body = resp.json()
        assert body["attempt"]["score"] == 3
        assert body["attempt"]["maxScore"] == 4
        assert body["attempt"]["percentage"] == 75
        assert body["attempt"]["passed"] is True
        assert body["certificate"] is None
        assert [r["isCorrect"] for r in body["results"]] == [True, True, True, False]
        assert all(r["explanationHtml"] for r in body["results"])

    async def test_unanswered_questions_score_zero(self, client, db, learner):
        course = await create_course(db, certificate_enabled=False)
        quiz = await create_quiz(db, course, questions=2)
        await enroll(db, learner, course)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        resp = await _submit(client, quiz, learner, attempt_id, [])

        body = resp.json()
        assert body["attempt"]["score"] == 0
        assert body["attempt"]["passed"] is False
        assert len(body["results"]) == 2

    async def test_pass_mark_override(self, client, db, learner):
        course = await create_course(db, pass_mark=70, certificate_enabled=False)
        quiz = await create_quiz(db, course, questions=4, pass_mark_override=80)
        await enroll(db, learner, course)
        key = await answer_key(db, quiz)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        resp = await _submit(client, quiz, learner, attempt_id, _answers(key, correct=3))

        assert resp.json()["attempt"]["percentage"] == 75
        assert resp.json()["attempt"]["passed"] is False

    async def test_already_submitted(self, client, db, learner):
        course = await create_course(db, certificate_enabled=False)
        quiz = await create_quiz(db, course)
        await enroll(db, learner, course)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        assert (await _submit(client, quiz, learner, attempt_id, [])).status_code == 200
        resp = await _submit(client, quiz, learner, attempt_id, [])

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Attempt already submitted"

    async def test_someone_elses_attempt(self, client, db, learner, other_learner, course):
        quiz = await create_quiz(db, course)
        await enroll(db, learner, course)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        resp = await _submit(client, quiz, other_learner, attempt_id, [])
        assert resp.status_code == 403

    async def test_attempt_of_another_quiz(self, client, db, learner, course):
        quiz = await create_quiz(db, course)
        other = await create_quiz(db, course)
        await enroll(db, learner, course)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        resp = await _submit(client, other, learner, attempt_id, [])
        assert resp.status_code == 400

    async def test_unknown_attempt(self, client, db, learner, course):
        quiz = await create_quiz(db, course)
        resp = await _submit(client, quiz, learner, 9999, [])
        assert resp.status_code == 404

    async def test_malformed_body(self, client, db, learner, course):
        quiz = await create_quiz(db, course)
        resp = await client.post(
            f"/api/quizzes/{quiz.id}/submit", json={"answers": "nope"}, headers=auth_headers(learner)
        )
        assert resp.status_code == 400

    async def test_answers_are_stored(self, client, db, session_factory, learner):
        course = await create_course(db, certificate_enabled=False)
        quiz = await create_quiz(db, course, questions=2)
        await enroll(db, learner, course)
        key = await answer_key(db, quiz)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        await _submit(client, quiz, learner, attempt_id, _answers(key, correct=1))

        async with session_factory() as s:
            attempt = await s.get(QuizAttempt, attempt_id)
            stored = (await s.execute(
                select(QuizAttemptAnswer).where(QuizAttemptAnswer.attempt_id == attempt_id)
            )).scalars().all()

        assert attempt.submitted_at is not None
        assert attempt.score == 1
        assert sorted(a.points_awarded for a in stored) == [0, 1]


# =============================================================================
# Certification on pass
# =============================================================================

class TestCertificationOnPass:

    async def test_pass_issues_certificate_and_completes(self, client, db, session_factory, learner, cert_dirs):
        course = await create_course(db, lessons=2)
        quiz = await create_quiz(db, course, questions=2)
        await enroll(db, learner, course)
        await complete_all_lessons(db, learner, course)
        key = await answer_key(db, quiz)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        resp = await _submit(client, quiz, learner, attempt_id, _answers(key, correct=2))

        assert resp.status_code == 200
        cert = resp.json()["certificate"]
        assert cert is not None
        assert cert["status"] == "active"
        assert cert["userId"] == learner.id
        assert cert["pdfUrl"] == f"/api/certificates/files/{cert['number']}.pdf"

        pdf_dir, qr_dir = cert_dirs
        assert (pdf_dir / f"{cert['number']}.pdf").read_bytes().startswith(b"%PDF")
        assert (qr_dir / f"{cert['number']}.png").is_file()

        async with session_factory() as s:
            enrollment = (await s.execute(select(Enrollment))).scalar_one()
        assert enrollment.status == EnrollmentStatus.COMPLETED
        assert enrollment.certificate_id == cert["id"]
        assert enrollment.completed_at is not None

    async def test_incomplete_lessons_no_certificate(self, client, db, learner):
        course = await create_course(db, lessons=2)
        quiz = await create_quiz(db, course, questions=2)
        await enroll(db, learner, course)
        key = await answer_key(db, quiz)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        resp = await _submit(client, quiz, learner, attempt_id, _answers(key, correct=2))

        assert resp.json()["attempt"]["passed"] is True
        assert resp.json()["certificate"] is None

    async def test_fail_no_certificate(self, client, db, session_factory, learner, course):
        quiz = await create_quiz(db, course, questions=2)
        await enroll(db, learner, course)
        key = await answer_key(db, quiz)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        resp = await _submit(client, quiz, learner, attempt_id, _answers(key, correct=0))

        assert resp.json()["certificate"] is None
        async with session_factory() as s:
            assert (await s.execute(select(func.count(Certificate.id)))).scalar() == 0

    @pytest.mark.parametrize("expiry_days, expected", [(None, False), (0, True)])
    async def test_course_expiry(self, client, db, learner, expiry_days, expected):
        course = await create_course(db, certificate_expiry_days=expiry_days)
        quiz = await create_quiz(db, course, questions=1)
        await enroll(db, learner, course)
        key = await answer_key(db, quiz)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        cert = (await _submit(client, quiz, learner, attempt_id, _answers(key, correct=1))).json()["certificate"]

        assert (cert["expiryAt"] is not None) is (expiry_days is not None)
        assert cert["isExpired"] is expected

    async def test_render_failure_keeps_attempt(self, client, db, session_factory, learner, monkeypatch):
        course = await create_course(db, lessons=1)
        quiz = await create_quiz(db, course, questions=1)
        await enroll(db, learner, course)
        await complete_all_lessons(db, learner, course)
        key = await answer_key(db, quiz)

        def _broken(*args, **kwargs):
            raise RuntimeError("font missing")

        monkeypatch.setattr(certificates_controller, "build_certificate_pdf", _broken)

        attempt_id = (await _start(client, quiz, learner)).json()["attempt"]["id"]
        resp = await _submit(client, quiz, learner, attempt_id, _answers(key, correct=1))

        assert resp.status_code == 500
        async with session_factory() as s:
            attempt = await s.get(QuizAttempt, attempt_id)
            enrollment = (await s.execute(select(Enrollment))).scalar_one()
            certs = (await s.execute(select(func.count(Certificate.id)))).scalar()
        assert attempt.submitted_at is not None
        assert attempt.passed is True
        assert enrollment.status != EnrollmentStatus.COMPLETED
        assert enrollment.certificate_id is None
        assert certs == 0
