from __future__ import annotations

from typing import Optional, Sequence

from ..common.cache import TTLCache
from .model import Campus, CourseTitle, Filiere, SchoolClass
from .repository import ReferenceRepository


class ReferenceDataService:
    """Cached lookups for campuses, filières, course titles and classes."""

    def __init__(self, reference: ReferenceRepository, *, cache: TTLCache):
        self._reference = reference
        self._cache = cache

    def list_campuses(self) -> Sequence[Campus]:
        return self._cache.get_or_load("reference:campuses", lambda: list(self._reference.list_campuses()))

    def list_filieres(self) -> Sequence[Filiere]:
        return self._cache.get_or_load("reference:filieres", lambda: list(self._reference.list_filieres()))

    def list_course_titles(self) -> Sequence[CourseTitle]:
        return self._cache.get_or_load("reference:course_titles", lambda: list(self._reference.list_course_titles()))

    def list_classes(self, *, campus_id: Optional[int] = None) -> Sequence[SchoolClass]:
        key = f"reference:classes:{campus_id if campus_id is not None else 'all'}"
        return self._cache.get_or_load(key, lambda: list(self._reference.list_classes(campus_id=campus_id)))

    def get_campus(self, campus_id: int) -> Optional[Campus]:
        for campus in self.list_campuses():
            if campus.campus_id == int(campus_id):
                return campus
        return None

    def campus_name_map(self) -> dict[str, int]:
        """Campus name (case-insensitive) -> id."""

        out: dict[str, int] = {}
        for campus in self.list_campuses():
            out[campus.name.casefold()] = campus.campus_id
        return out

    def resolve_campus_id(self, name: Optional[str]) -> Optional[int]:
        if not name:
            return None
        return self.campus_name_map().get(name.strip().casefold())

    def invalidate(self) -> None:
        self._cache.invalidate_pattern(r"^reference:")
