"""Tests for course catalog loading and ordering."""

import json

import pytest

from conftest import bundle_course_dict, course_dict
from progression.core.content_graph import (
    CatalogError,
    list_course_ids,
    load_bundle_courses,
    load_course,
    locate_content,
    locate_quiz,
    parse_course,
)
from progression.core.errors import ContentNotFoundError


class TestParseCourse:
    """Tests for parse_course."""

    def test_rejects_wrong_schema(self):
        """Schema tag must be course_v1."""
        data = course_dict()
        data["$schema"] = "course_v0"
        with pytest.raises(CatalogError):
            parse_course(data)

    def test_rejects_missing_required_field(self):
        """Missing content_id raises CatalogError."""
        data = course_dict()
        del data["topics"][0]["content"][0]["content_id"]
        with pytest.raises(CatalogError):
            parse_course(data)

    def test_settings_filled_from_defaults(self, workspace):
        """Homework without passing_score gets the configured default."""
        course = parse_course(course_dict())
        homework = course.get_content("hw1")
        assert homework.settings.passing_score == 60
        assert homework.settings.max_attempts == 1
        assert homework.settings.duration_minutes == 0

    def test_non_assessments_have_no_settings(self, workspace):
        course = parse_course(course_dict())
        assert course.get_content("c1").settings is None
        assert course.get_content("c1").is_assessment is False
        assert course.get_content("quiz1").is_assessment is True

    def test_non_positive_watch_cap_means_unlimited(self, workspace):
        """max_watch_count of 0 or -1 is stored as None."""
        data = course_dict()
        data["topics"][0]["content"][0]["max_watch_count"] = -1
        course = parse_course(data)
        assert course.get_content("c1").max_watch_count is None

    def test_total_points(self, workspace):
        course = parse_course(course_dict())
        assert course.get_content("quiz1").total_points == 4


class TestOrdering:
    """Tests for linear content order."""

    def test_ordered_content_follows_topic_then_content_order(self, workspace):
        """Unpublished topics are excluded."""
        course = parse_course(course_dict())
        ids = [c.content_id for c in course.ordered_content()]
        assert ids == ["c1", "c2", "quiz1", "c3", "hw1", "c5"]

    def test_order_is_by_order_field_not_file_position(self, workspace):
        data = course_dict()
        data["topics"].reverse()
        data["topics"][-1]["content"].reverse()
        course = parse_course(data)
        ids = [c.content_id for c in course.ordered_content()]
        assert ids[:3] == ["c1", "c2", "quiz1"]

    def test_next_content_crosses_topics(self, workspace):
        course = parse_course(course_dict())
        assert course.next_content("quiz1").content_id == "c3"
        assert course.next_content("c5") is None

    def test_get_content_finds_unpublished(self, workspace):
        course = parse_course(course_dict())
        assert course.get_content("c4") is not None


class TestLoadCourse:
    """Tests for filesystem loading."""

    def test_load_existing_course(self, data_dir):
        course = load_course("course-1", data_dir)
        assert course is not None
        assert course.title == "Algebra"
        assert set(course.questions) == {"q1", "q2", "q3", "q4"}

    def test_missing_course_returns_none(self, data_dir):
        assert load_course("nope", data_dir) is None

    def test_unreadable_course_returns_none(self, data_dir):
        (data_dir / "courses" / "broken.json").write_text("{not json")
        assert load_course("broken", data_dir) is None

    def test_list_course_ids(self, data_dir):
        (data_dir / "courses" / "another.json").write_text(json.dumps(course_dict()))
        assert list_course_ids(data_dir) == ["another", "course-1"]

    def test_locate_content(self, data_dir):
        location = locate_content("hw1", ["course-1"], data_dir)
        assert location.course.course_id == "course-1"
        assert location.topic.topic_id == "t2"
        assert location.item.type == "homework"

    def test_locate_unknown_content_raises(self, data_dir):
        with pytest.raises(ContentNotFoundError):
            locate_content("missing", ["course-1"], data_dir)


class TestStandaloneQuizzes:
    """Tests for quizzes published outside the topic sequence."""

    def test_parsed_with_settings(self, workspace):
        course = parse_course(course_dict())
        quiz = course.get_quiz("practice1")

        assert quiz.item.type == "quiz"
        assert quiz.item.topic_id == ""
        assert quiz.item.settings.duration_minutes == 10
        assert quiz.item.settings.passing_score == 50
        assert quiz.item.settings.shuffle_questions is True
        assert quiz.description == "Warm-up questions"
        assert quiz.is_active is True

    def test_status_and_defaults(self, workspace):
        quiz = parse_course(course_dict()).get_quiz("retired1")
        assert quiz.is_active is False
        assert quiz.item.settings.max_attempts == 3
        assert quiz.item.settings.duration_minutes == 30

    def test_not_part_of_linear_order(self, workspace):
        course = parse_course(course_dict())
        assert "practice1" not in [c.content_id for c in course.ordered_content()]
        assert course.get_content("practice1") is None

    def test_id_clash_with_content_rejected(self, workspace):
        data = course_dict()
        data["quizzes"][0]["quiz_id"] = "c2"
        with pytest.raises(CatalogError):
            parse_course(data)

    def test_locate_quiz(self, data_dir):
        location = locate_quiz("practice1", ["course-1"], data_dir)
        assert location.is_standalone is True
        assert location.topic is None
        assert location.topic_id == ""
        assert location.item.content_id == "practice1"

    def test_locate_quiz_is_not_content(self, data_dir):
        with pytest.raises(ContentNotFoundError):
            locate_quiz("quiz1", ["course-1"], data_dir)
        with pytest.raises(ContentNotFoundError):
            locate_content("practice1", ["course-1"], data_dir)


class TestBundles:
    """Tests for bundle placement of courses."""

    def test_defaults_outside_bundle(self, workspace):
        course = parse_course(course_dict())
        assert course.bundle_id is None
        assert course.order == 0
        assert course.requires_sequential is False

    def test_bundle_fields(self, workspace):
        course = parse_course(bundle_course_dict("week-2", "Week 2", 1))
        assert course.bundle_id == "algebra-bundle"
        assert course.order == 1
        assert course.requires_sequential is True

    def test_load_bundle_courses_sorted(self, data_dir):
        courses_dir = data_dir / "courses"
        for course_id, order in [("week-3", 2), ("week-1", 0), ("week-2", 1)]:
            data = bundle_course_dict(course_id, course_id.title(), order)
            (courses_dir / f"{course_id}.json").write_text(json.dumps(data))
        other = bundle_course_dict("geo-1", "Geometry", 0, bundle_id="geometry")
        (courses_dir / "geo-1.json").write_text(json.dumps(other))

        bundle = load_bundle_courses("algebra-bundle", data_dir)
        assert [c.course_id for c in bundle] == ["week-1", "week-2", "week-3"]
