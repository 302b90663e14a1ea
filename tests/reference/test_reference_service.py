from __future__ import annotations

from src.campus_invoicing.campus_invoicing.common.cache import TTLCache
from src.campus_invoicing.campus_invoicing.reference.model import Campus, SchoolClass
from src.campus_invoicing.campus_invoicing.reference.service import ReferenceDataService


class CountingReferenceRepo:
    def __init__(self):
        self.calls: dict[str, int] = {}
        self.campuses = [Campus(1, "Roquette"), Campus(2, "Jaurès")]

    def _count(self, name):
        self.calls[name] = self.calls.get(name, 0) + 1

    def list_campuses(self):
        self._count("campuses")
        return list(self.campuses)

    def list_filieres(self):
        self._count("filieres")
        return []

    def list_course_titles(self):
        self._count("course_titles")
        return []

    def list_classes(self, *, campus_id=None):
        self._count(f"classes:{campus_id}")
        classes = [SchoolClass(1, "MCO1", "MCO 1A", 2026, 1, 1), SchoolClass(2, "SIO1", "SIO 1A", 2026, 2, 2)]
        return [c for c in classes if campus_id is None or c.campus_id == campus_id]


def _service():
    repo = CountingReferenceRepo()
    return ReferenceDataService(repo, cache=TTLCache(default_ttl_seconds=300)), repo


def test_campuses_are_loaded_once():
    svc, repo = _service()

    svc.list_campuses()
    svc.get_campus(2)
    svc.resolve_campus_id("jaurès")

    assert repo.calls == {"campuses": 1}


def test_campus_lookup_by_name_is_case_insensitive():
    svc, _ = _service()

    assert svc.resolve_campus_id("  ROQUETTE ") == 1
    assert svc.resolve_campus_id("Atlantis") is None
    assert svc.resolve_campus_id(None) is None
    assert svc.get_campus(3) is None


def test_classes_are_cached_per_campus():
    svc, repo = _service()

    assert [c.class_id for c in svc.list_classes(campus_id=2)] == [2]
    assert len(svc.list_classes()) == 2
    svc.list_classes(campus_id=2)

    assert repo.calls == {"classes:2": 1, "classes:None": 1}


def test_invalidate_reloads_reference_data():
    svc, repo = _service()
    svc.list_campuses()
    repo.campuses.append(Campus(3, "Nice"))

    assert len(svc.list_campuses()) == 2
    svc.invalidate()
    assert len(svc.list_campuses()) == 3
    assert repo.calls["campuses"] == 2
