from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Campus:
    campus_id: int
    name: str
    address: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class Filiere:
    filiere_id: int
    code: str
    label: str
    pole: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class CourseTitle:
    course_title_id: int
    title: str
    category: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class SchoolClass:
    class_id: int
    group_code: str
    label: str
    year: int
    campus_id: int
    filiere_id: int
    is_active: bool = True
