"""JSON-file backed settings store."""

import json
import os
from pathlib import Path
from typing import Any

import structlog


logger = structlog.get_logger()


class JsonSettingsStore:
    """Key/value store persisted as a single JSON object on disk."""

    def __init__(self, path: str | Path) -> None:
        """Initialize the store, loading existing data if present.

        Args:
            path: Location of the JSON file
        """
        self.path = Path(path)
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("settings_load_failed", path=str(self.path), error=str(e))
            return {}

        if not isinstance(data, dict):
            logger.warning("settings_not_an_object", path=str(self.path))
            return {}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save()

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2, default=str), encoding="utf-8")
        os.replace(tmp, self.path)
        logger.debug("settings_saved", path=str(self.path), keys=len(self._data))
