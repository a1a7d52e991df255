"""Tests for the JSON-file record store: persistence, reload and damaged data."""

import json

import pytest

from sift.common.errors import ConfigurationError, OwnershipError
from sift.common.record_store import FileRecordStore
from sift.common.schemas import ImageRecord, RecordStatus


@pytest.fixture
def paths(tmp_path):
    return tmp_path / "records.json", tmp_path / "images.json"


def open_store(paths):
    return FileRecordStore(*paths)


class TestPersistence:
    def test_records_survive_reload(self, paths, record_factory):
        store = open_store(paths)
        store.add(record_factory("kr_a", title="GenAI models", embedding=[1.0, 0.0, 0.0]))
        record = store.get("owner-1", "kr_a")
        record.status = RecordStatus.ARCHIVED
        store.update(record)

        reloaded = open_store(paths).get("owner-1", "kr_a")

        assert reloaded.status == RecordStatus.ARCHIVED
        assert reloaded.embedding == [1.0, 0.0, 0.0]
        assert reloaded.structured.title == "GenAI models"

    def test_images_survive_reload(self, paths):
        store = open_store(paths)
        store.add_image(ImageRecord(id="img_a", owner_id="owner-1", image_url="https://images.example.com/a.png"))

        assert open_store(paths).get_image("owner-1", "img_a").image_url == "https://images.example.com/a.png"

    def test_owner_scope_after_reload(self, paths, record_factory):
        open_store(paths).add(record_factory("kr_a"))

        with pytest.raises(OwnershipError):
            open_store(paths).get("owner-2", "kr_a")

    def test_missing_files_start_empty(self, paths):
        assert open_store(paths).list_records() == []


class TestDamagedData:
    def test_invalid_row_is_kept_through_later_writes(self, paths, record_factory):
        records_path = paths[0]
        store = open_store(paths)
        store.add(record_factory("kr_a"))
        store.add(record_factory("kr_b"))
        rows = json.loads(records_path.read_text())
        rows[1]["status"] = "pool"
        records_path.write_text(json.dumps(rows))

        reloaded = open_store(paths)
        assert [r.id for r in reloaded.list_records()] == ["kr_a"]
        reloaded.add(record_factory("kr_c"))

        on_disk = json.loads(records_path.read_text())
        assert sorted(row["id"] for row in on_disk) == ["kr_a", "kr_b", "kr_c"]
        assert next(row for row in on_disk if row["id"] == "kr_b")["status"] == "pool"

    def test_unparseable_file_refuses_to_load(self, paths):
        records_path = paths[0]
        records_path.write_text("[{truncated")

        with pytest.raises(ConfigurationError):
            open_store(paths)
        assert records_path.read_text() == "[{truncated"

    def test_non_array_file_refuses_to_load(self, paths):
        paths[1].write_text(json.dumps({"id": "img_a"}))

        with pytest.raises(ConfigurationError):
            open_store(paths)
