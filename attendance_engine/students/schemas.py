"""Pydantic schemas for the student roster (clusters, courses, sections, students)."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional


class Cluster(BaseModel):
    """A group of courses (e.g. a college or department)."""

    id: str
    name: str

    model_config = ConfigDict(from_attributes=True, frozen=True)


class Course(BaseModel):
    """A course belonging to a cluster."""

    id: str
    name: str
    cluster_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class Section(BaseModel):
    """A class section of a course, for one year level."""

    id: str
    name: str
    course_id: Optional[str] = None
    year_level: Optional[int] = Field(None, ge=1)

    model_config = ConfigDict(from_attributes=True, frozen=True)


class Student(BaseModel):
    """Roster entry as seen by eligibility resolution."""

    id: int
    student_number: str = Field(..., min_length=1, max_length=50)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    section_id: Optional[str] = None
    year_level: Optional[int] = Field(
        None, description="Year level of the student's current section"
    )
    is_active: bool = Field(default=True, description="Account is active")

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("student_number")
    @classmethod
    def validate_student_number(cls, v):
        """Validate student number format."""
        if not v or not v.strip():
            raise ValueError("Student number cannot be blank")
        return v.strip().upper()

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, v):
        """Normalize name format."""
        return v.strip().title() if v else v
