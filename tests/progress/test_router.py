"""HTTP tests for the learning endpoints."""

from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from src.courses.models import ContentBlockType, Course
from src.main import app
from src.progress.service import ProgressService
from tests.fakes import InMemoryHierarchy, InMemoryProgressRepository, block_of, build_course


@pytest.fixture
def api(client: TestClient, service: ProgressService) -> TestClient:
    app.state.progress_service = service
    return client


@pytest.fixture
def headers(learner_id: UUID) -> dict[str, str]:
    return {"X-Learner-ID": str(learner_id)}


def enroll(api: TestClient, headers: dict[str, str], course: Course) -> dict:
    response = api.post("/v1/learning/enrollments", json={"course_id": str(course.id)}, headers=headers)
    assert response.status_code == 201
    return response.json()


class TestLearnerIdentity:
    def test_missing_learner_header(self, api: TestClient) -> None:
        response = api.get("/v1/learning/enrollments")

        assert response.status_code == 401
        assert response.json()["error"] is True

    def test_malformed_learner_header(self, api: TestClient) -> None:
        response = api.get("/v1/learning/enrollments", headers={"X-Learner-ID": "not-a-uuid"})

        assert response.status_code == 400

    def test_service_unavailable(self, client: TestClient, headers: dict[str, str]) -> None:
        response = client.get("/v1/learning/enrollments", headers=headers)

        assert response.status_code == 503
        assert response.json()["message"] == "Progress service not available"


class TestEnrollmentEndpoints:
    def test_enroll(self, api: TestClient, headers: dict[str, str], course: Course) -> None:
        data = enroll(api, headers, course)

        assert data["status"] == "not_started"
        assert data["progress_percent"] == 0
        assert data["lessons_total"] == 4
        assert data["course_id"] == str(course.id)

    def test_enroll_twice_conflicts(
        self, api: TestClient, headers: dict[str, str], course: Course
    ) -> None:
        enroll(api, headers, course)

        response = api.post(
            "/v1/learning/enrollments", json={"course_id": str(course.id)}, headers=headers
        )

        assert response.status_code == 409

    def test_enroll_unknown_course(self, api: TestClient, headers: dict[str, str]) -> None:
        response = api.post(
            "/v1/learning/enrollments", json={"course_id": str(uuid4())}, headers=headers
        )

        assert response.status_code == 404

    def test_missing_prerequisite(
        self,
        api: TestClient,
        headers: dict[str, str],
        hierarchy: InMemoryHierarchy,
        course: Course,
    ) -> None:
        advanced = build_course(prerequisite_ids={course.id})
        hierarchy.add(advanced)

        response = api.post(
            "/v1/learning/enrollments", json={"course_id": str(advanced.id)}, headers=headers
        )

        assert response.status_code == 412

    def test_my_enrollments(self, api: TestClient, headers: dict[str, str], course: Course) -> None:
        enroll(api, headers, course)

        response = api.get("/v1/learning/enrollments", headers=headers)

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["items"][0]["course_id"] == str(course.id)


class TestCourseEndpoints:
    def test_catalog(self, api: TestClient, headers: dict[str, str], course: Course) -> None:
        response = api.get("/v1/learning/courses", headers=headers)

        assert response.status_code == 200
        item = response.json()["items"][0]
        assert item["course"]["id"] == str(course.id)
        assert item["lesson_count"] == 4
        assert item["enrollment"] is None

    def test_course_view_with_progress(
        self, api: TestClient, headers: dict[str, str], course: Course
    ) -> None:
        enroll(api, headers, course)
        api.put(
            f"/v1/learning/content/{block_of(course, 0).id}/progress",
            json={"progress_value": 100},
            headers=headers,
        )

        response = api.get(f"/v1/learning/courses/{course.id}", headers=headers)

        assert response.status_code == 200
        data = response.json()
        first_module = data["modules"][0]
        assert first_module["status"] == "in_progress"
        assert first_module["progress_percent"] == 50
        assert first_module["lessons"][0]["status"] == "completed"
        assert data["enrollment"]["progress_percent"] == 25
        assert data["resume_lesson_id"] == str(course.lessons_in_order()[1].id)

    def test_unknown_course(self, api: TestClient, headers: dict[str, str]) -> None:
        response = api.get(f"/v1/learning/courses/{uuid4()}", headers=headers)

        assert response.status_code == 404


class TestCourseReportEndpoints:
    def test_progress_summary(
        self, api: TestClient, headers: dict[str, str], course: Course
    ) -> None:
        enroll(api, headers, course)
        api.put(
            f"/v1/learning/content/{block_of(course, 0).id}/progress",
            json={"force_complete": True},
            headers=headers,
        )
        enroll(api, {"X-Learner-ID": str(uuid4())}, course)

        response = api.get(f"/v1/learning/courses/{course.id}/progress-summary", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["course"]["id"] == str(course.id)
        assert data["lesson_count"] == 4
        assert data["total_enrollments"] == 2
        assert data["in_progress_enrollments"] == 1
        assert data["not_started_enrollments"] == 1
        assert data["completion_rate"] == 0
        # (25 + 0) / 2 = 12.5
        assert data["avg_progress_percent"] == 13

    def test_progress_summary_unknown_course(
        self, api: TestClient, headers: dict[str, str]
    ) -> None:
        response = api.get(f"/v1/learning/courses/{uuid4()}/progress-summary", headers=headers)

        assert response.status_code == 404

    def test_progress_summary_requires_learner(self, api: TestClient, course: Course) -> None:
        response = api.get(f"/v1/learning/courses/{course.id}/progress-summary")

        assert response.status_code == 401

    def test_course_enrollments(
        self, api: TestClient, headers: dict[str, str], learner_id: UUID, course: Course
    ) -> None:
        enroll(api, headers, course)

        response = api.get(f"/v1/learning/courses/{course.id}/enrollments", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["user_id"] == str(learner_id)


class TestProgressEndpoints:
    def test_update_content_progress(
        self, api: TestClient, headers: dict[str, str], course: Course
    ) -> None:
        enroll(api, headers, course)

        response = api.put(
            f"/v1/learning/content/{block_of(course, 0).id}/progress",
            json={"progress_value": 95},
            headers=headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["content"]["status"] == "completed"
        assert data["content"]["progress_value"] == 95
        assert data["lesson"]["status"] == "completed"
        assert data["enrollment"]["status"] == "in_progress"
        assert data["enrollment"]["progress_percent"] == 25

    def test_update_requires_enrollment(
        self, api: TestClient, headers: dict[str, str], course: Course
    ) -> None:
        response = api.put(
            f"/v1/learning/content/{block_of(course, 0).id}/progress",
            json={"progress_value": 10},
            headers=headers,
        )

        assert response.status_code == 404

    def test_invalid_progress_value(
        self, api: TestClient, headers: dict[str, str], course: Course
    ) -> None:
        response = api.put(
            f"/v1/learning/content/{block_of(course, 0).id}/progress",
            json={"progress_value": "half"},
            headers=headers,
        )

        assert response.status_code == 422

    def test_contention_is_retryable(
        self,
        api: TestClient,
        headers: dict[str, str],
        repository: InMemoryProgressRepository,
        course: Course,
    ) -> None:
        enroll(api, headers, course)
        repository.content_conflicts = repository.max_cas_attempts

        response = api.put(
            f"/v1/learning/content/{block_of(course, 0).id}/progress",
            json={"progress_value": 10},
            headers=headers,
        )

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"

    def test_complete_lesson_with_pending_block(
        self,
        api: TestClient,
        headers: dict[str, str],
        hierarchy: InMemoryHierarchy,
    ) -> None:
        mixed = build_course(
            modules=1,
            lessons_per_module=1,
            block_types=(ContentBlockType.VIDEO, ContentBlockType.TEXT),
        )
        hierarchy.add(mixed)
        enroll(api, headers, mixed)
        lesson = mixed.lessons_in_order()[0]

        response = api.post(f"/v1/learning/lessons/{lesson.id}/complete", headers=headers)

        assert response.status_code == 412

    def test_complete_lesson(self, api: TestClient, headers: dict[str, str], course: Course) -> None:
        enroll(api, headers, course)
        lesson = course.lessons_in_order()[0]
        api.put(
            f"/v1/learning/content/{lesson.content_blocks[0].id}/progress",
            json={"force_complete": True},
            headers=headers,
        )

        response = api.post(f"/v1/learning/lessons/{lesson.id}/complete", headers=headers)

        assert response.status_code == 200
        assert response.json()["lesson"]["status"] == "completed"
        assert response.json()["enrollment"]["lessons_completed"] == 1


class TestLessonContentEndpoint:
    def test_lesson_content_with_navigation(
        self, api: TestClient, headers: dict[str, str], course: Course
    ) -> None:
        enroll(api, headers, course)
        lessons = course.lessons_in_order()

        response = api.get(f"/v1/learning/lessons/{lessons[1].id}", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Lesson 1.2"
        assert data["navigation"]["prev_lesson"]["id"] == str(lessons[0].id)
        assert data["navigation"]["next_lesson"]["id"] == str(lessons[2].id)
        assert data["navigation"]["current_index"] == 2
        assert data["content_blocks"][0]["progress"]["status"] == "not_started"

    def test_lesson_content_not_enrolled(
        self, api: TestClient, headers: dict[str, str], course: Course
    ) -> None:
        response = api.get(
            f"/v1/learning/lessons/{course.lessons_in_order()[0].id}", headers=headers
        )

        assert response.status_code == 404
