"""Canvas LMS client: courses, assignments, files and note submissions."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests  # type: ignore[import-untyped]
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


class CanvasError(Exception):
    """Error from the Canvas API."""

    pass


@dataclass
class CanvasUser:
    """The account the API token belongs to."""

    id: int
    name: str
    email: Optional[str] = None


@dataclass
class CanvasCourse:
    """A course the user is enrolled in as a student."""

    id: int
    name: str
    code: str
    term: Optional[str] = None
    enrollment_term_id: Optional[int] = None


@dataclass
class CanvasAssignment:
    """An assignment of a course."""

    id: int
    name: str
    description: str = ""
    due_at: Optional[str] = None
    points_possible: Optional[float] = None
    submission_types: list[str] = field(default_factory=list)


@dataclass
class CanvasFile:
    """A file uploaded to a course."""

    id: int
    name: str
    url: Optional[str] = None
    size: Optional[int] = None
    content_type: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class CanvasSubmission:
    """Receipt of a text submission."""

    id: int
    submitted_at: Optional[str] = None


def normalize_canvas_url(url: str) -> str:
    """Drop a trailing slash and default to https."""
    url = url.strip().rstrip("/")
    return url if url.startswith("http") else f"https://{url}"


class CanvasClient:
    """Thin wrapper over the Canvas REST API (v1)."""

    PAGE_SIZE = 100

    def __init__(self, base_url: str, api_token: str, timeout: int = 30):
        """Initialize the client.

        Args:
            base_url: Canvas instance, with or without scheme
            api_token: Personal access token

        Raises:
            ValueError: If either argument is empty
        """
        if not base_url or not api_token:
            raise ValueError("Canvas URL and API token are required")
        self.base_url = normalize_canvas_url(base_url)
        self.api_token = api_token
        self.timeout = timeout

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1{path}"

    def _check(self, response: requests.Response) -> Any:
        if response.status_code == 401:
            raise CanvasError("Invalid API token. Please check your token and try again.")
        if not response.ok:
            raise CanvasError(f"Canvas API error: {response.status_code} - {response.text}")
        return response.json()

    @retry(
        retry=retry_if_exception_type(
            (requests.exceptions.ConnectionError, requests.exceptions.Timeout)
        ),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _send_get(self, path: str, params: Optional[dict[str, Any]]) -> requests.Response:
        return requests.get(
            self._url(path), headers=self.headers, params=params, timeout=self.timeout
        )

    def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET a Canvas endpoint, retrying connection failures.

        Raises:
            CanvasError: If the request fails or Canvas answers with an error
        """
        try:
            response = self._send_get(path, params)
        except requests.exceptions.ConnectionError as e:
            raise CanvasError(f"Cannot connect to Canvas at {self.base_url}") from e
        except requests.exceptions.Timeout as e:
            raise CanvasError("Canvas request timed out") from e
        except requests.exceptions.RequestException as e:
            raise CanvasError(f"Canvas request failed: {e}") from e
        return self._check(response)

    def verify(self) -> CanvasUser:
        """Check the token by loading the current user."""
        user = self._get("/users/self")
        return CanvasUser(id=user["id"], name=user.get("name", ""), email=user.get("primary_email"))

    def list_courses(self) -> list[CanvasCourse]:
        """Student enrollments that carry both a code and a name."""
        courses = self._get(
            "/courses",
            {
                "enrollment_type": "student",
                "enrollment_role": "StudentEnrollment",
                "per_page": self.PAGE_SIZE,
            },
        )
        return [
            CanvasCourse(
                id=course["id"],
                name=course["name"],
                code=course["course_code"],
                term=(course.get("term") or {}).get("name"),
                enrollment_term_id=course.get("enrollment_term_id"),
            )
            for course in courses
            if course.get("course_code") and course.get("name")
        ]

    def list_assignments(self, course_id: int) -> list[CanvasAssignment]:
        assignments = self._get(
            f"/courses/{course_id}/assignments", {"per_page": self.PAGE_SIZE}
        )
        return [
            CanvasAssignment(
                id=a["id"],
                name=a.get("name", ""),
                description=a.get("description") or "",
                due_at=a.get("due_at"),
                points_possible=a.get("points_possible"),
                submission_types=a.get("submission_types") or [],
            )
            for a in assignments
        ]

    def list_files(self, course_id: int) -> list[CanvasFile]:
        files = self._get(f"/courses/{course_id}/files", {"per_page": self.PAGE_SIZE})
        return [
            CanvasFile(
                id=f["id"],
                name=f.get("display_name") or f.get("filename", ""),
                url=f.get("url"),
                size=f.get("size"),
                content_type=f.get("content-type"),
                created_at=f.get("created_at"),
                updated_at=f.get("updated_at"),
            )
            for f in files
        ]

    def submit_note(
        self,
        course_id: int,
        assignment_id: int,
        title: str,
        content: str,
    ) -> CanvasSubmission:
        """Submit a note's HTML as an online text entry.

        Not retried: a repeated POST would create a second submission.

        Raises:
            ValueError: If content is empty
            CanvasError: If Canvas rejects the submission
        """
        if not content:
            raise ValueError("Content is required")

        body = {
            "submission": {
                "submission_type": "online_text_entry",
                "body": f"<h2>{title or 'Note'}</h2>{content}",
            }
        }
        try:
            response = requests.post(
                self._url(f"/courses/{course_id}/assignments/{assignment_id}/submissions"),
                headers=self.headers,
                json=body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise CanvasError(f"Canvas request failed: {e}") from e

        submission = self._check(response)
        logger.info("Submitted note to course %s assignment %s", course_id, assignment_id)
        return CanvasSubmission(id=submission["id"], submitted_at=submission.get("submitted_at"))
