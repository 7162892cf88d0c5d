"""Expand an event's eligibility spec into the concrete roster of expected students."""
import logging
from typing import Dict, Iterable, List, Set

from attendance_engine.events.schemas import EligibilitySpec
from attendance_engine.exceptions import NotFoundError, ValidationError
from attendance_engine.repository import RosterRepository
from attendance_engine.students.schemas import Student

logger = logging.getLogger(__name__)


def validate_eligibility(spec: EligibilitySpec) -> None:
    """Shape checks that need no roster access."""
    if spec.all_students:
        if spec.year_levels:
            raise ValidationError(
                "'All students' cannot be combined with year levels; "
                "turn 'all students' off to target specific year levels."
            )
        if spec.cluster_ids or spec.course_ids or spec.section_ids:
            raise ValidationError(
                "'All students' cannot be combined with clusters, courses or sections; "
                "turn 'all students' off to target them."
            )
        return

    if not (spec.cluster_ids or spec.course_ids or spec.section_ids or spec.year_levels):
        raise ValidationError(
            "At least one cluster, course, section or year level is required when not targeting all students."
        )
    for ids in (spec.cluster_ids, spec.course_ids, spec.section_ids):
        if any(not i or not i.strip() for i in ids):
            raise ValidationError("Cluster, course and section IDs cannot be blank.")


class EligibilityResolver:
    """Resolves eligibility against the live roster so roster changes are always reflected."""

    def __init__(self, roster: RosterRepository):
        self.roster = roster

    def ensure_references_exist(self, spec: EligibilitySpec) -> None:
        """Fail fast on unknown cluster/course/section ids."""
        if spec.all_students:
            return
        self._require("Cluster", spec.cluster_ids, {c.id for c in self.roster.find_clusters(spec.cluster_ids)})
        self._require("Course", spec.course_ids, {c.id for c in self.roster.find_courses(spec.course_ids)})
        self._require("Section", spec.section_ids, {s.id for s in self.roster.find_sections(spec.section_ids)})

    @staticmethod
    def _require(label: str, wanted: Iterable[str], found: Set[str]) -> None:
        missing = sorted(set(wanted) - found)
        if missing:
            raise NotFoundError(f"{label} not found: {', '.join(missing)}")

    def resolve(self, spec: EligibilitySpec) -> List[Student]:
        """Active students expected at an event, deduplicated and ordered by id."""
        if spec.all_students:
            candidates = self.roster.all_students()
        else:
            self.ensure_references_exist(spec)
            section_ids = set(spec.section_ids)
            course_ids = set(spec.course_ids)
            if spec.cluster_ids:
                course_ids |= {c.id for c in self.roster.courses_in_clusters(sorted(set(spec.cluster_ids)))}
            if course_ids:
                section_ids |= {s.id for s in self.roster.sections_in_courses(sorted(course_ids))}

            if section_ids:
                candidates = self.roster.students_in_sections(sorted(section_ids))
            elif spec.year_levels and not (spec.cluster_ids or spec.course_ids):
                # year levels alone target every section of those levels
                candidates = self.roster.all_students()
            else:
                candidates = []

        unique: Dict[int, Student] = {}
        for student in candidates:
            unique.setdefault(student.id, student)

        students = list(unique.values())
        if spec.year_levels:
            levels = set(spec.year_levels)
            students = [s for s in students if s.year_level in levels]
            logger.debug("Filtered expected students by year levels %s", sorted(levels))

        students = [s for s in students if s.is_active]
        students.sort(key=lambda s: s.id)
        return students
