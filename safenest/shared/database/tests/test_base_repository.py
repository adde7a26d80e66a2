"""Tests for base repository pattern."""
import pytest
from unittest.mock import MagicMock
from dataclasses import dataclass
from typing import Any, Dict

from safenest.shared.database.repository import (
    BaseRepository,
    ConcurrentModificationError,
    DuplicateError,
    NotFoundError,
    RepositoryError,
)


@dataclass
class Widget:
    """Entity used to exercise the repository."""
    id: str
    name: str
    value: int


class WidgetRepository(BaseRepository[Widget]):
    columns = ("id", "name", "value")

    def _row_to_entity(self, row: tuple) -> Widget:
        return Widget(id=row[0], name=row[1], value=row[2])

    def _entity_to_params(self, entity: Widget) -> Dict[str, Any]:
        return {"id": entity.id, "name": entity.name, "value": entity.value}


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def repository(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    manager = MagicMock()
    manager.get_connection.return_value.__enter__.return_value = conn
    return WidgetRepository(manager, "widgets")


class TestRepositoryExceptions:

    def test_not_found_error(self):
        assert isinstance(NotFoundError("missing"), RepositoryError)

    def test_duplicate_error(self):
        assert isinstance(DuplicateError("dup"), RepositoryError)

    def test_concurrent_modification_error(self):
        assert isinstance(ConcurrentModificationError("raced"), RepositoryError)


class TestBaseRepository:

    def test_find_by_id_maps_row(self, repository, cursor):
        cursor.fetchone.return_value = ("w1", "gear", 3)

        widget = repository.find_by_id("w1")

        assert widget == Widget(id="w1", name="gear", value=3)
        query, params = cursor.execute.call_args.args
        assert query == "SELECT id, name, value FROM widgets WHERE id = %s"
        assert params == ("w1",)

    def test_find_by_id_missing_returns_none(self, repository, cursor):
        cursor.fetchone.return_value = None

        assert repository.find_by_id("nope") is None

    def test_find_where(self, repository, cursor):
        cursor.fetchall.return_value = [("w1", "a", 1), ("w2", "b", 2)]

        widgets = repository.find_where("value > %s", (0,))

        assert [w.id for w in widgets] == ["w1", "w2"]
        assert "WHERE value > %s" in cursor.execute.call_args.args[0]

    def test_insert_raises_on_conflict(self, repository, cursor):
        cursor.rowcount = 0

        with pytest.raises(DuplicateError):
            repository.insert(Widget(id="w1", name="a", value=1))

    def test_insert_succeeds(self, repository, cursor):
        cursor.rowcount = 1
        widget = Widget(id="w1", name="a", value=1)

        assert repository.insert(widget) is widget
        assert "ON CONFLICT (id) DO NOTHING" in cursor.execute.call_args.args[0]

    def test_save_upserts(self, repository, cursor):
        repository.save(Widget(id="w1", name="a", value=1))

        query = cursor.execute.call_args.args[0]
        assert "ON CONFLICT (id) DO UPDATE SET name = EXCLUDED.name" in query

    def test_compare_and_set_builds_guarded_update(self, repository, cursor):
        cursor.rowcount = 1

        updated = repository.compare_and_set(
            "w1",
            expected={"value": 1, "name": None},
            changes={"value": 2},
        )

        assert updated is True
        query, params = cursor.execute.call_args.args
        assert query == (
            "UPDATE widgets SET value = %s WHERE id = %s AND value = %s AND name IS NULL"
        )
        assert params == [2, "w1", 1]

    def test_compare_and_set_reports_lost_race(self, repository, cursor):
        cursor.rowcount = 0

        assert repository.compare_and_set("w1", {"value": 1}, {"value": 2}) is False

    def test_count(self, repository, cursor):
        cursor.fetchone.return_value = (7,)

        assert repository.count() == 7

    def test_delete(self, repository, cursor):
        cursor.rowcount = 1

        assert repository.delete("w1") is True
