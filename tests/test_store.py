"""Unit tests for JsonSettingsStore."""

from pathlib import Path

from helmsman.core.store import JsonSettingsStore


class TestJsonSettingsStore:
    """Test suite for JsonSettingsStore class."""

    def test_round_trip(self, tmp_path: Path) -> None:
        """Test values written by one store are read by the next."""
        path = tmp_path / "nested" / "settings.json"
        JsonSettingsStore(path).set("blocked_sites", ["example.com"])

        assert JsonSettingsStore(path).get("blocked_sites") == ["example.com"]
        assert not path.with_name("settings.json.tmp").exists()

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        store = JsonSettingsStore(tmp_path / "absent.json")

        assert store.get("anything") is None
        assert store.get("anything", 5) == 5

    def test_corrupt_file_is_empty(self, tmp_path: Path) -> None:
        """Test unreadable JSON is ignored rather than raised."""
        path = tmp_path / "settings.json"
        path.write_text("{not json")

        assert JsonSettingsStore(path).get("key") is None

    def test_non_object_file_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.json"
        path.write_text("[1, 2, 3]")

        assert JsonSettingsStore(path).get("key") is None
