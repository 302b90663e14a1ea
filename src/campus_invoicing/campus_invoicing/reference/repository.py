from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Campus, CourseTitle, Filiere, SchoolClass


class ReferenceRepository(Protocol):
    """Read-only access to admin-managed lookup tables (active rows only)."""

    def list_campuses(self) -> Sequence[Campus]:
        raise NotImplementedError

    def list_filieres(self) -> Sequence[Filiere]:
        raise NotImplementedError

    def list_course_titles(self) -> Sequence[CourseTitle]:
        raise NotImplementedError

    def list_classes(self, *, campus_id: Optional[int] = None) -> Sequence[SchoolClass]:
        raise NotImplementedError
