"""Tests for creating and deleting relationships as reciprocal row pairs."""
import logging

import pytest

from familytree.models import RelationType
from familytree.services import stores, writer
from familytree.services.integrity import find_issues, repair_integrity
from familytree.services.validation import ValidationResult
from familytree.services.writer import (
    create_relationship,
    create_relationship_smart,
    delete_relationship,
    list_relations,
    reciprocal_type,
)


class TestReciprocalType:
    def test_table(self):
        assert reciprocal_type(RelationType.parent) is RelationType.child
        assert reciprocal_type(RelationType.child) is RelationType.parent
        assert reciprocal_type(RelationType.spouse) is RelationType.spouse
        assert reciprocal_type(RelationType.sibling) is RelationType.sibling

    def test_unknown(self):
        with pytest.raises(ValueError):
            reciprocal_type("friend")


class TestCreate:
    async def test_writes_primary_and_reciprocal(self, db, make_person):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)

        res = await create_relationship(db, ann.id, ben.id, RelationType.parent)

        assert res.success
        assert res.error_kind is None
        primary = await stores.get_edge(db, res.relationship_id)
        mirror = await stores.get_edge(db, res.reciprocal_id)
        assert (primary.from_member_id, primary.to_member_id, primary.relation_type) == (
            ann.id, ben.id, RelationType.parent)
        assert (mirror.from_member_id, mirror.to_member_id, mirror.relation_type) == (
            ben.id, ann.id, RelationType.child)

    async def test_symmetric_kind_reciprocal(self, db, make_person):
        a = await make_person("Ada", 1970)
        b = await make_person("Bo", 1972)

        res = await create_relationship(db, a.id, b.id, RelationType.spouse, meta={"notes": "met at school"})

        mirror = await stores.get_edge(db, res.reciprocal_id)
        assert mirror.relation_type is RelationType.spouse
        assert mirror.meta == {"notes": "met at school"}

    async def test_reversed_parent_is_rejected(self, db, make_person):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)

        res = await create_relationship(db, ben.id, ann.id, RelationType.parent)

        assert not res.success
        assert res.error_kind == "validation"
        assert "parent cannot be younger" in res.error
        assert "Suggested solution" in res.error
        assert await stores.get_all_edges(db) == []

    async def test_second_relationship_between_same_pair_rejected(self, db, make_person):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)
        assert (await create_relationship(db, ann.id, ben.id, RelationType.parent)).success

        res = await create_relationship(db, ann.id, ben.id, RelationType.spouse)

        assert not res.success
        assert "Relationship already exists" in res.error
        assert len(await stores.get_all_edges(db)) == 2

    async def test_warnings_carried_on_success(self, db, make_person):
        eve = await make_person("Eve")
        finn = await make_person("Finn")

        res = await create_relationship(db, eve.id, finn.id, RelationType.parent)

        assert res.success
        assert len(res.warnings) == 1

    async def test_race_surfaces_as_conflict(self, db, make_person, add_edge, monkeypatch):
        """Validation passed before a concurrent writer stored the same pair."""
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)
        ann_id, ben_id = ann.id, ben.id
        await add_edge(ann_id, ben_id, RelationType.parent)

        async def _stale_validate(*args, **kwargs):
            return ValidationResult()

        monkeypatch.setattr(writer, "validate", _stale_validate)

        res = await create_relationship(db, ann_id, ben_id, RelationType.parent)

        assert not res.success
        assert res.conflict
        assert res.error_kind == "conflict"
        assert len(await stores.get_all_edges(db)) == 1

    async def test_race_on_reverse_row_rolls_back_both_sides(self, db, make_person, add_edge, monkeypatch):
        """A concurrent writer stored the pair the other way round; nothing of ours is kept."""
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)
        ann_id, ben_id = ann.id, ben.id
        await add_edge(ben_id, ann_id, RelationType.spouse)

        async def _stale_validate(*args, **kwargs):
            return ValidationResult()

        monkeypatch.setattr(writer, "validate", _stale_validate)

        res = await create_relationship(db, ann_id, ben_id, RelationType.parent)

        assert not res.success
        assert res.conflict
        assert not res.partial
        assert res.error_kind == "conflict"
        edges = await stores.get_all_edges(db)
        assert [(e.from_member_id, e.to_member_id, e.relation_type) for e in edges] == [
            (ben_id, ann_id, RelationType.spouse)]

    async def test_store_failure_while_validating_is_a_result(self, db, make_person, monkeypatch):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)
        ann_id, ben_id = ann.id, ben.id

        async def _down(session):
            raise stores.StoreError("database unavailable")

        monkeypatch.setattr(stores, "get_all_edges", _down)

        res = await create_relationship(db, ann_id, ben_id, RelationType.parent)

        assert not res.success
        assert res.error_kind == "store"
        assert "database unavailable" in res.error

    async def test_reciprocal_failure_is_partial(self, db, make_person, monkeypatch):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)
        ann_id, ben_id = ann.id, ben.id
        real_insert = stores.insert_edge
        calls = []

        async def _flaky_insert(session, from_id, to_id, kind, meta=None):
            calls.append((from_id, to_id))
            if from_id == ben_id:
                raise stores.StoreError("connection reset")
            return await real_insert(session, from_id, to_id, kind, meta)

        monkeypatch.setattr(stores, "insert_edge", _flaky_insert)

        res = await create_relationship(db, ann_id, ben_id, RelationType.parent)

        assert not res.success
        assert res.partial
        assert res.error_kind == "partial"
        assert res.relationship_id is not None
        # one primary attempt, then the reciprocal with one retry
        assert calls == [(ann_id, ben_id), (ben_id, ann_id), (ben_id, ann_id)]

        monkeypatch.undo()
        edges = await stores.get_all_edges(db)
        assert [(e.from_member_id, e.to_member_id) for e in edges] == [(ann_id, ben_id)]

        issues = await find_issues(db)
        assert [i.issue_type for i in issues] == ["incomplete_bidirectional"]
        report = await repair_integrity(db)
        assert report.created == 1
        assert report.issues_after == []


class TestSmartCreate:
    async def test_corrects_direction_from_birth_order(self, db, make_person):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)

        res = await create_relationship_smart(db, ben.id, ann.id, RelationType.parent)

        assert res.success
        assert res.corrected
        assert res.actual_relation_type is RelationType.child
        primary = await stores.get_edge(db, res.relationship_id)
        assert primary.relation_type is RelationType.child

    async def test_no_correction_when_first_attempt_succeeds(self, db, make_person):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)

        res = await create_relationship_smart(db, ann.id, ben.id, RelationType.parent)

        assert res.success
        assert not res.corrected

    async def test_symmetric_kinds_not_corrected(self, db, make_person):
        ann = await make_person("Ann", 1950)

        res = await create_relationship_smart(db, ann.id, ann.id, RelationType.spouse)

        assert not res.success
        assert not res.corrected


class TestDelete:
    async def test_cascades_to_reciprocal_by_default(self, db, make_person):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)
        created = await create_relationship(db, ann.id, ben.id, RelationType.parent)

        res = await delete_relationship(db, created.relationship_id)

        assert res.success
        assert res.reciprocal_id == created.reciprocal_id
        assert await stores.get_all_edges(db) == []

    async def test_without_cascade_only_named_row_goes(self, db, make_person):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)
        created = await create_relationship(db, ann.id, ben.id, RelationType.parent)

        res = await delete_relationship(db, created.relationship_id, cascade=False)

        assert res.success
        assert res.reciprocal_id is None
        remaining = await stores.get_all_edges(db)
        assert [e.id for e in remaining] == [created.reciprocal_id]

    async def test_mismatched_reverse_row_is_kept_and_logged(self, db, make_person, add_edge, caplog):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980)
        ann_id, ben_id = ann.id, ben.id
        edge = await add_edge(ann_id, ben_id, RelationType.parent)
        odd = await add_edge(ben_id, ann_id, RelationType.spouse)
        edge_id, odd_id = edge.id, odd.id

        with caplog.at_level(logging.WARNING, logger="familytree.services.writer"):
            res = await delete_relationship(db, edge_id)

        assert res.success
        assert res.reciprocal_id is None
        assert [e.id for e in await stores.get_all_edges(db)] == [odd_id]
        assert "left in place" in caplog.text

    async def test_missing(self, db):
        res = await delete_relationship(db, 4242)
        assert not res.success
        assert res.error == "Relationship not found"
        assert res.error_kind == "not_found"


class TestListRelations:
    async def test_rows_carry_names(self, db, make_person):
        ann = await make_person("Ann", 1950)
        ben = await make_person("Ben", 1980, last_name="Jones")
        await create_relationship(db, ann.id, ben.id, RelationType.parent)

        rows = await list_relations(db)

        assert len(rows) == 2
        parent_row = next(r for r in rows if r["relation_type"] is RelationType.parent)
        assert parent_row["from_member"] == {"first_name": "Ann", "last_name": "Smith"}
        assert parent_row["to_member"] == {"first_name": "Ben", "last_name": "Jones"}
