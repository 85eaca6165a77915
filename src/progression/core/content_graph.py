"""Content graph module.

Responsibilities:
- Load course catalogs (course_v1 JSON) from data/courses/
- Expose the read-only course → topic → content ordering
- Expose explicit prerequisite edges and the course question bank
- Expose bundle placement (bundle_id, order, requires_sequential)
- Expose standalone quizzes that sit outside every topic

Catalog structure (JSON):
- course_v1 schema with topics[].content[], quizzes[] and questions[]
- Quiz/homework settings missing from the catalog are filled from the
  configured assessment defaults at load time
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import structlog

from progression.config.app_config import get_assessment_defaults
from progression.core.errors import ContentNotFoundError

logger = structlog.get_logger(__name__)

COURSE_SCHEMA = "course_v1"

ContentType = Literal[
    "video", "pdf", "reading", "link", "zoom", "quiz", "homework", "assignment"
]
QuestionType = Literal["MCQ", "TrueFalse", "Written"]

ASSESSMENT_TYPES = ("quiz", "homework")

QuizStatus = Literal["draft", "active", "inactive", "archived"]

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class QuestionOption:
    """A single answer option."""

    option_id: str
    text: str
    image: str | None = None


@dataclass
class Question:
    """A question from the course question bank."""

    question_id: str
    question_type: QuestionType
    text: str
    options: list[QuestionOption] = field(default_factory=list)
    # Index (legacy) or option text
    correct_answer: int | str | bool | None = None
    # Written questions only; each entry may hold comma-separated variants
    correct_answers: list[str] = field(default_factory=list)
    image: str | None = None
    explanation: str = ""


@dataclass
class SelectedQuestion:
    """A question slot inside a quiz/homework item."""

    question_id: str
    points: int = 1
    order: int = 0


@dataclass
class AssessmentSettings:
    """Quiz/homework settings, fully resolved."""

    duration_minutes: int
    passing_score: int
    max_attempts: int
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_correct_answers: bool = True


@dataclass
class ContentItem:
    """An atomic learning unit inside a topic."""

    content_id: str
    type: ContentType
    title: str
    order: int
    topic_id: str
    prerequisites: list[str] = field(default_factory=list)
    duration: float = 0
    max_watch_count: int | None = None
    is_required: bool = True
    settings: AssessmentSettings | None = None
    selected_questions: list[SelectedQuestion] = field(default_factory=list)

    @property
    def is_assessment(self) -> bool:
        """True for quiz and homework items."""
        return self.type in ASSESSMENT_TYPES

    @property
    def total_points(self) -> int:
        """Sum of point weights for all selected questions."""
        return sum(q.points for q in self.selected_questions)


@dataclass
class Topic:
    """An ordered group of content items."""

    topic_id: str
    title: str
    order: int
    is_published: bool = True
    content: list[ContentItem] = field(default_factory=list)


@dataclass
class StandaloneQuiz:
    """A quiz published by a course outside its topic sequence.

    Standalone quizzes draw from the course question bank but take no part
    in the linear order: they are never locked and never count toward
    course progress.
    """

    item: ContentItem
    description: str = ""
    status: QuizStatus = "active"

    @property
    def quiz_id(self) -> str:
        return self.item.content_id

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass
class Course:
    """A course with its topics and question bank."""

    course_id: str
    title: str
    topics: list[Topic] = field(default_factory=list)
    questions: dict[str, Question] = field(default_factory=dict)
    quizzes: list[StandaloneQuiz] = field(default_factory=list)
    # Placement inside a bundle of courses taken in order
    bundle_id: str | None = None
    order: int = 0
    requires_sequential: bool = False

    @property
    def published_topics(self) -> list[Topic]:
        """Published topics sorted by order."""
        return sorted(
            (t for t in self.topics if t.is_published), key=lambda t: t.order
        )

    def ordered_content(self) -> list[ContentItem]:
        """Linear content order: topic order, then content order.

        Content of unpublished topics is not visible to students and is
        excluded.
        """
        items: list[ContentItem] = []
        for topic in self.published_topics:
            items.extend(sorted(topic.content, key=lambda c: c.order))
        return items

    def get_content(self, content_id: str) -> ContentItem | None:
        """Find a content item in any topic (published or not)."""
        for topic in self.topics:
            for item in topic.content:
                if item.content_id == content_id:
                    return item
        return None

    def get_topic(self, topic_id: str) -> Topic | None:
        """Find a topic by ID."""
        for topic in self.topics:
            if topic.topic_id == topic_id:
                return topic
        return None

    def get_quiz(self, quiz_id: str) -> StandaloneQuiz | None:
        for quiz in self.quizzes:
            if quiz.quiz_id == quiz_id:
                return quiz
        return None

    def get_question(self, question_id: str) -> Question | None:
        """Find a question in the course question bank."""
        return self.questions.get(question_id)

    def next_content(self, content_id: str) -> ContentItem | None:
        """Return the item following ``content_id`` in linear order."""
        ordered = self.ordered_content()
        for index, item in enumerate(ordered):
            if item.content_id == content_id:
                return ordered[index + 1] if index + 1 < len(ordered) else None
        return None


@dataclass
class ContentLocation:
    """A content item together with its owning course and topic.

    Standalone quizzes have no topic and carry their quiz entry instead.
    """

    course: Course
    topic: Topic | None
    item: ContentItem
    quiz: StandaloneQuiz | None = None

    @property
    def is_standalone(self) -> bool:
        return self.quiz is not None

    @property
    def topic_id(self) -> str:
        return self.topic.topic_id if self.topic is not None else ""


class CatalogError(Exception):
    """Error loading a course catalog."""

    pass


# =============================================================================
# PARSING
# =============================================================================


def _parse_settings(content_type: str, data: dict[str, Any] | None) -> AssessmentSettings:
    """Resolve assessment settings against the configured defaults."""
    data = data or {}
    defaults = get_assessment_defaults(content_type)
    return AssessmentSettings(
        duration_minutes=int(data.get("duration_minutes", defaults.duration_minutes) or 0),
        passing_score=int(data.get("passing_score", defaults.passing_score)),
        max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
        shuffle_questions=bool(data.get("shuffle_questions", False)),
        shuffle_options=bool(data.get("shuffle_options", False)),
        show_correct_answers=bool(data.get("show_correct_answers", True)),
    )


def _parse_question(data: dict[str, Any]) -> Question:
    options = [
        QuestionOption(
            option_id=str(o.get("option_id", index)),
            text=o.get("text", ""),
            image=o.get("image"),
        )
        for index, o in enumerate(data.get("options", []))
    ]
    return Question(
        question_id=data["question_id"],
        question_type=data.get("question_type", "MCQ"),
        text=data.get("text", ""),
        options=options,
        correct_answer=data.get("correct_answer"),
        correct_answers=list(data.get("correct_answers", [])),
        image=data.get("image"),
        explanation=data.get("explanation", ""),
    )


def _parse_content(data: dict[str, Any], topic_id: str) -> ContentItem:
    content_type = data["type"]
    settings = None
    if content_type in ASSESSMENT_TYPES:
        settings = _parse_settings(content_type, data.get("settings"))

    max_watch_count = data.get("max_watch_count")
    # -1 and 0 both mean "no cap"
    if max_watch_count is not None and max_watch_count <= 0:
        max_watch_count = None

    return ContentItem(
        content_id=data["content_id"],
        type=content_type,
        title=data.get("title", ""),
        order=int(data.get("order", 0)),
        topic_id=topic_id,
        prerequisites=list(data.get("prerequisites", [])),
        duration=data.get("duration", 0) or 0,
        max_watch_count=max_watch_count,
        is_required=bool(data.get("is_required", True)),
        settings=settings,
        selected_questions=[
            SelectedQuestion(
                question_id=q["question_id"],
                points=int(q.get("points", 1) or 1),
                order=int(q.get("order", index)),
            )
            for index, q in enumerate(data.get("selected_questions", []))
        ],
    )


def _parse_quiz(data: dict[str, Any]) -> StandaloneQuiz:
    quiz_id = data["quiz_id"]
    item = _parse_content({**data, "content_id": quiz_id, "type": "quiz", "order": 0}, "")
    return StandaloneQuiz(
        item=item,
        description=data.get("description", ""),
        status=data.get("status", "active"),
    )


def parse_course(data: dict[str, Any]) -> Course:
    """Parse a course_v1 dict into a Course.

    Raises:
        CatalogError: If the schema tag is wrong, a required key is missing or
            a standalone quiz reuses a content id
    """
    if data.get("$schema") != COURSE_SCHEMA:
        raise CatalogError(
            f"Invalid course schema: expected {COURSE_SCHEMA}, got {data.get('$schema')}"
        )

    try:
        topics = []
        for t in data.get("topics", []):
            topic_id = t["topic_id"]
            topic = Topic(
                topic_id=topic_id,
                title=t.get("title", ""),
                order=int(t.get("order", 0)),
                is_published=bool(t.get("is_published", True)),
                content=[_parse_content(c, topic_id) for c in t.get("content", [])],
            )
            topic.content.sort(key=lambda c: c.order)
            topics.append(topic)

        questions = {q["question_id"]: _parse_question(q) for q in data.get("questions", [])}
        quizzes = [_parse_quiz(q) for q in data.get("quizzes", [])]

        course = Course(
            course_id=data["course_id"],
            title=data.get("title", ""),
            topics=topics,
            questions=questions,
            quizzes=quizzes,
            bundle_id=data.get("bundle_id"),
            order=int(data.get("order", 0)),
            requires_sequential=bool(data.get("requires_sequential", False)),
        )
    except KeyError as e:
        raise CatalogError(f"Missing required field in course catalog: {e}") from e

    for quiz in course.quizzes:
        if course.get_content(quiz.quiz_id) is not None:
            raise CatalogError(f"Quiz id {quiz.quiz_id} is already used by a content item")
    return course


# =============================================================================
# LOAD FUNCTIONS
# =============================================================================


def load_course(course_id: str, data_dir: Path | None = None) -> Course | None:
    """Load a course catalog from filesystem.

    Args:
        course_id: Course identifier
        data_dir: Base data directory

    Returns:
        Course or None if not found or unreadable
    """
    if data_dir is None:
        data_dir = Path("data")

    course_path = data_dir / "courses" / f"{course_id}.json"
    if not course_path.exists():
        return None

    try:
        with open(course_path, encoding="utf-8") as f:
            return parse_course(json.load(f))
    except (json.JSONDecodeError, OSError, CatalogError) as e:
        logger.warning("course_catalog_unreadable", course_id=course_id, error=str(e))
        return None


def list_course_ids(data_dir: Path | None = None) -> list[str]:
    """List all course ids available in data/courses/."""
    if data_dir is None:
        data_dir = Path("data")

    courses_dir = data_dir / "courses"
    if not courses_dir.exists():
        return []
    return sorted(p.stem for p in courses_dir.glob("*.json"))


def load_bundle_courses(bundle_id: str, data_dir: Path | None = None) -> list[Course]:
    """Courses of a bundle sorted by their order in the bundle."""
    courses = []
    for course_id in list_course_ids(data_dir):
        course = load_course(course_id, data_dir)
        if course is not None and course.bundle_id == bundle_id:
            courses.append(course)
    return sorted(courses, key=lambda c: (c.order, c.course_id))


def locate_content(
    content_id: str,
    course_ids: list[str],
    data_dir: Path | None = None,
) -> ContentLocation:
    """Find a content item across the given courses.

    Args:
        content_id: Content identifier
        course_ids: Courses to search, in order (typically the student's enrollments)
        data_dir: Base data directory

    Returns:
        ContentLocation for the first course containing the item

    Raises:
        ContentNotFoundError: If no course contains the item
    """
    for course_id in course_ids:
        course = load_course(course_id, data_dir)
        if course is None:
            continue
        item = course.get_content(content_id)
        if item is not None:
            topic = course.get_topic(item.topic_id)
            return ContentLocation(course=course, topic=topic, item=item)

    raise ContentNotFoundError("Content not found", content_id=content_id)


def locate_quiz(
    quiz_id: str,
    course_ids: list[str],
    data_dir: Path | None = None,
) -> ContentLocation:
    """Find a standalone quiz across the given courses.

    Raises:
        ContentNotFoundError: If no course publishes the quiz
    """
    for course_id in course_ids:
        course = load_course(course_id, data_dir)
        if course is None:
            continue
        quiz = course.get_quiz(quiz_id)
        if quiz is not None:
            return ContentLocation(course=course, topic=None, item=quiz.item, quiz=quiz)

    raise ContentNotFoundError("Quiz not found", quiz_id=quiz_id)
