"""SQLAlchemy models for the student roster."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from attendance_engine.db import Base


class Cluster(Base):
    """Cluster (college/department) model."""

    __tablename__ = "clusters"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)


class Course(Base):
    """Course model."""

    __tablename__ = "courses"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    cluster_id = Column(
        String(64), ForeignKey("clusters.id", ondelete="SET NULL"), nullable=True, index=True
    )


class Section(Base):
    """Section model."""

    __tablename__ = "sections"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    course_id = Column(
        String(64), ForeignKey("courses.id", ondelete="SET NULL"), nullable=True, index=True
    )
    year_level = Column(Integer, nullable=True, index=True)


class Student(Base):
    """Student model."""

    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    student_number = Column(String(50), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    section_id = Column(
        String(64), ForeignKey("sections.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
