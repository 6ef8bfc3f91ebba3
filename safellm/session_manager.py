"""Session I/O. One JSON file per session, named after the session id."""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from safellm.globals import SESSIONS_DIR, log_exception

SLUG_STRIP = re.compile(r"[^A-Za-z0-9_\- ]")
SLUG_SPACES = re.compile(r"\s+")


def slugify(name: str) -> str:
    """Filesystem-safe session name: "My Name!" -> "My-Name"."""
    return SLUG_SPACES.sub("-", SLUG_STRIP.sub("", name).strip())


def _parse_timestamp(value: str) -> datetime:
    """ISO timestamp to an aware datetime. Naive values are taken as UTC."""
    stamp = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


@dataclass
class Session:
    """A durable conversation record. `id` is always the file stem."""

    id: str
    created_at: str
    messages: list[dict] = field(default_factory=list)

    @property
    def filename(self) -> str:
        return f"{self.id}.json"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "messages": self.messages,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        """Builds a Session, raising ValueError on anything malformed."""
        if not isinstance(data, dict):
            raise ValueError("Session record is not an object")
        session_id = data.get("id")
        # Older session files use camelCase keys
        created_at = data.get("created_at", data.get("createdAt"))
        messages = data.get("messages")
        if not isinstance(session_id, str) or not session_id:
            raise ValueError("Session record has no id")
        if not isinstance(created_at, str):
            raise ValueError("Session record has no created_at")
        _parse_timestamp(created_at)
        if not isinstance(messages, list):
            raise ValueError("Session record has no message list")
        return cls(id=session_id, created_at=created_at, messages=messages)


class SessionStore:
    """
    Handles session-related I/O.

    The store tracks one active session. `create`, `load` and `rename` move the
    pointer; `append` writes to whatever it points at.
    """

    def __init__(self, sessions_dir: str = SESSIONS_DIR):
        self.sessions_dir = sessions_dir
        self.current_id: str | None = None

    # <~~HELPERS~~>
    def _ensure_dir(self):
        os.makedirs(self.sessions_dir, exist_ok=True)

    def _json_helper(self, identifier: str) -> str:
        """JSON extension helper, returns the path for an id or filename."""
        if not identifier.endswith(".json"):
            identifier += ".json"
        return os.path.join(self.sessions_dir, identifier)

    def _read(self, path: str) -> Session:
        """Reads one record. The file stem wins over a mismatched id field."""
        with open(path, "r", encoding="utf-8") as f:
            session = Session.from_dict(json.load(f))
        stem = os.path.splitext(os.path.basename(path))[0]
        if session.id != stem:
            logging.warning(
                f"Session file {os.path.basename(path)} carried id '{session.id}', using '{stem}'"
            )
            session.id = stem
        return session

    def _write(self, path: str, session: Session):
        """Atomic write: temp file first, then os.replace over the target."""
        tmp_path = f"{path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(session.to_dict(), f, indent=2)
            os.replace(tmp_path, path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def find(self, identifier: str) -> Session | None:
        """Looks a session up by filename or id without touching the pointer."""
        key = identifier[:-5] if identifier.endswith(".json") else identifier
        if not key:
            return None
        if os.path.basename(key) == key:
            try:
                return self._read(self._json_helper(key))
            except (OSError, ValueError):
                pass
        for session in self.list_sessions():
            if session.id in (identifier, key) or session.filename == identifier:
                return session
        return None

    # <~~OPERATIONS~~>
    def create(self) -> str:
        """Starts a fresh, empty session and makes it active."""
        self._ensure_dir()
        now = datetime.now(timezone.utc)
        # Output example: session-2025-11-09T14-03-22-118204Z
        stamp = now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        session_id = f"session-{stamp}"
        suffix = 1
        while os.path.exists(self._json_helper(session_id)):
            suffix += 1
            session_id = f"session-{stamp}-{suffix}"

        session = Session(id=session_id, created_at=now.isoformat(), messages=[])
        self._write(self._json_helper(session_id), session)
        self.current_id = session_id
        return session_id

    def append(self, messages: list[dict]) -> bool:
        """Overwrites the active session's transcript with `messages`."""
        if not self.current_id:
            return False
        path = self._json_helper(self.current_id)
        try:
            session = self._read(path)
            session.messages = list(messages)
            self._write(path, session)
        except (OSError, ValueError) as e:
            log_exception(e, f"Error in append() - session: {self.current_id}")
            return False
        return True

    def list_sessions(self) -> list[Session]:
        """Every readable session, newest first. Corrupt files are skipped."""
        self._ensure_dir()
        sessions: list[Session] = []
        for name in os.listdir(self.sessions_dir):
            if not name.endswith(".json"):
                continue
            try:
                sessions.append(self._read(os.path.join(self.sessions_dir, name)))
            except (OSError, ValueError):
                continue
        return sorted(
            sessions, key=lambda s: _parse_timestamp(s.created_at), reverse=True
        )

    def load(self, identifier: str) -> Session | None:
        """Loads a session by id or filename and makes it active."""
        session = self.find(identifier)
        if session is None:
            return None
        self.current_id = session.id
        return session

    def rename(self, identifier: str, new_name: str) -> bool:
        """
        Renames a session. The slug of `new_name` becomes both its id and its
        filename, so id-based lookups keep working afterwards.

        Refuses empty slugs and names already taken by another session. The new
        record is written before the old file is removed; a crash in between
        leaves two valid records rather than one with a mismatched id.
        """
        session = self.find(identifier)
        if session is None:
            return False

        slug = slugify(new_name)
        if not slug:
            return False
        old_id = session.id
        if slug == old_id:
            return True

        old_path = self._json_helper(old_id)
        new_path = self._json_helper(slug)
        if os.path.exists(new_path):
            logging.error(f"Rename refused, '{slug}' already exists")
            return False

        try:
            session.id = slug
            self._write(new_path, session)
        except OSError as e:
            log_exception(e, f"Error in rename() - {old_id} -> {slug}")
            return False
        try:
            os.remove(old_path)
        except OSError as e:
            log_exception(e, f"Error in rename() - removing {old_id}")
            # Roll back so the session isn't listed twice
            try:
                os.remove(new_path)
            except OSError as cleanup_error:
                log_exception(cleanup_error, f"Error in rename() - rolling back {slug}")
            return False

        if self.current_id in (identifier, old_id):
            self.current_id = slug
        return True
