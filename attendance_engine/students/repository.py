"""SQL access to the roster (clusters, courses, sections, students)."""
from typing import Iterable, List, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.orm import Session

from attendance_engine.students.schemas import Cluster, Course, Section, Student

_STUDENT_SELECT = """
    SELECT st.id, st.student_number, st.first_name, st.last_name,
           st.section_id, sec.year_level, st.is_active
      FROM students st
      LEFT JOIN sections sec ON sec.id = st.section_id
"""


class SqlRosterRepository:
    """Roster reads; every call hits the database so roster changes are picked up."""

    def __init__(self, db: Session):
        self.db = db

    def _in(self, query: str, name: str, values: Iterable[str]):
        values = list(values)
        if not values:
            return []
        stmt = text(query).bindparams(bindparam(name, expanding=True))
        return self.db.execute(stmt, {name: values}).fetchall()

    def find_clusters(self, ids: Iterable[str]) -> List[Cluster]:
        rows = self._in("SELECT id, name FROM clusters WHERE id IN :ids", "ids", ids)
        return [Cluster(id=r.id, name=r.name) for r in rows]

    def find_courses(self, ids: Iterable[str]) -> List[Course]:
        rows = self._in("SELECT id, name, cluster_id FROM courses WHERE id IN :ids", "ids", ids)
        return [Course(id=r.id, name=r.name, cluster_id=r.cluster_id) for r in rows]

    def find_sections(self, ids: Iterable[str]) -> List[Section]:
        rows = self._in(
            "SELECT id, name, course_id, year_level FROM sections WHERE id IN :ids", "ids", ids
        )
        return [self._section(r) for r in rows]

    def courses_in_clusters(self, cluster_ids: Sequence[str]) -> List[Course]:
        rows = self._in(
            "SELECT id, name, cluster_id FROM courses WHERE cluster_id IN :ids ORDER BY id",
            "ids",
            cluster_ids,
        )
        return [Course(id=r.id, name=r.name, cluster_id=r.cluster_id) for r in rows]

    def sections_in_courses(self, course_ids: Sequence[str]) -> List[Section]:
        rows = self._in(
            "SELECT id, name, course_id, year_level FROM sections WHERE course_id IN :ids ORDER BY id",
            "ids",
            course_ids,
        )
        return [self._section(r) for r in rows]

    def students_in_sections(self, section_ids: Sequence[str]) -> List[Student]:
        rows = self._in(_STUDENT_SELECT + " WHERE st.section_id IN :ids ORDER BY st.id", "ids", section_ids)
        return [self._student(r) for r in rows]

    def all_students(self) -> List[Student]:
        rows = self.db.execute(text(_STUDENT_SELECT + " ORDER BY st.id")).fetchall()
        return [self._student(r) for r in rows]

    @staticmethod
    def _section(row) -> Section:
        return Section(id=row.id, name=row.name, course_id=row.course_id, year_level=row.year_level)

    @staticmethod
    def _student(row) -> Student:
        return Student(
            id=row.id,
            student_number=row.student_number,
            first_name=row.first_name or "",
            last_name=row.last_name or "",
            section_id=row.section_id,
            year_level=row.year_level,
            is_active=bool(row.is_active),
        )
