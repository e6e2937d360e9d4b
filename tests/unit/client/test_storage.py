import json

from idclone.client.storage import HANDLE_KEY, HandleStore
from idclone.core.modules.session.models import SessionHandle


class TestHandleStore:
    """Tests for the durable session handle store."""

    def test_empty_store_has_no_handle(self, tmp_path):
        assert HandleStore(tmp_path).load() is None

    def test_save_then_load(self, tmp_path):
        store = HandleStore(tmp_path / "nested")
        store.save(SessionHandle("abc123"))

        assert store.load() == "abc123"
        assert HandleStore(tmp_path / "nested").load() == "abc123"

    def test_handle_kept_under_fixed_key(self, tmp_path):
        store = HandleStore(tmp_path)
        store.save(SessionHandle("abc123"))

        assert json.loads(store.path.read_text()) == {HANDLE_KEY: "abc123"}
        assert HANDLE_KEY == "source_auth"

    def test_clear_keeps_unrelated_keys(self, tmp_path):
        store = HandleStore(tmp_path)
        store.path.write_text(json.dumps({"theme": "dark", HANDLE_KEY: "abc123"}))

        store.clear()

        assert store.load() is None
        assert json.loads(store.path.read_text()) == {"theme": "dark"}

    def test_clear_without_file_is_noop(self, tmp_path):
        store = HandleStore(tmp_path)
        store.clear()
        assert not store.path.exists()

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        store = HandleStore(tmp_path)
        store.path.write_text("{not json")

        assert store.load() is None
        store.save(SessionHandle("fresh"))
        assert store.load() == "fresh"
