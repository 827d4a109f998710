"""JSON-file backed stores for the credential, preferences and form submissions."""

import json
import logging
import os
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import events

logger = logging.getLogger(__name__)

API_KEY = "openrouter_api_key"
THEME_KEY = "theme"


def get_data_dir() -> Path:
    """Get the data directory, honouring EVENT_CHAT_DATA_DIR and XDG_DATA_HOME."""
    configured = os.getenv("EVENT_CHAT_DATA_DIR")
    if configured:
        data_dir = Path(configured).expanduser()
    else:
        xdg_data = os.getenv("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
        data_dir = Path(xdg_data) / "event_chat"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def _read_json(path: Path, default):
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error(f"Error reading {path}: {e}")
        return default


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class KeyValueStore:
    """String-valued key/value store persisted as one JSON object."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        data = _read_json(self.path, {})
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else default

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = str(value)
        _write_json(self.path, data)

    def clear(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            _write_json(self.path, data)


class FormSubmissionStore:
    """Append-only list of form submissions persisted as a JSON array."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def list(self) -> List[Dict[str, Any]]:
        data = _read_json(self.path, [])
        return data if isinstance(data, list) else []

    def append(self, form_data: Dict[str, Any], form_type: str = "contact") -> Dict[str, Any]:
        """Store a submission and return the stored record."""
        submission = {
            "id": str(uuid.uuid4()),
            "form_data": {
                "name": form_data.get("name", ""),
                "email": form_data.get("email", ""),
                "message": form_data.get("message", ""),
            },
            "form_type": form_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        submissions = self.list()
        submissions.append(submission)
        _write_json(self.path, submissions)
        return submission

    def delete(self, submission_id: str) -> bool:
        submissions = self.list()
        remaining = [s for s in submissions if s.get("id") != submission_id]
        if len(remaining) == len(submissions):
            return False
        _write_json(self.path, remaining)
        return True

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class FormSubmissionRecorder:
    """Persists FORM_SUBMIT events and shows the form in split view."""

    def __init__(self, store: FormSubmissionStore, bus):
        self.store = store
        self.bus = bus
        self.subscription = None

    def attach(self):
        if self.subscription is None:
            self.subscription = self.bus.subscribe(events.FORM_SUBMIT, self._on_form_submit)
        return self.subscription

    def close(self) -> None:
        if self.subscription is not None:
            self.subscription.unsubscribe()
            self.subscription = None

    def _on_form_submit(self, event) -> None:
        payload = event.payload or {}
        submission = self.store.append(payload.get("form_data") or {}, payload.get("form_type", "contact"))
        logger.info(f"Stored form submission {submission['id']}")
        self.bus.publish(events.SPLIT_VIEW_TOGGLE, {"page": "form", "is_open": True})


def open_stores(data_dir: Optional[Path] = None):
    """Return ``(preferences, submissions)`` stores under ``data_dir``."""
    data_dir = Path(data_dir) if data_dir else get_data_dir()
    return (
        KeyValueStore(data_dir / "preferences.json"),
        FormSubmissionStore(data_dir / "form_submissions.json"),
    )
