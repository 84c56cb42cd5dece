# src/zkjwt/storage/file_store.py
"""Flat-file registry of members and messages.

Layout under the store root::

    members.json           {pubkey: member}
    messages/index.json    {id: {"filename", "created_at", "likes"}}
    messages/<id>.txt      the message as JSON

Message ids start at 1 and are never reused. Every public method holds the
store lock for its whole read-modify-write, and every file is replaced
atomically, so a like update changes the index and the message together.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from zkjwt.core.errors import StoreError, StoreNotFound
from zkjwt.schemas.member import Member
from zkjwt.schemas.message import MessageCreate, SignedMessage

logger = logging.getLogger(__name__)

MEMBERS_FILE = "members.json"
MESSAGES_DIR = "messages"
INDEX_FILE = "index.json"


class FileStore:
    """Member registry and append-only message log on the local filesystem."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._messages_dir = self._root / MESSAGES_DIR
        self._lock = threading.RLock()
        try:
            self._messages_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"cannot create store at {self._root}: {exc}") from exc

    @property
    def root(self) -> Path:
        return self._root

    # Members

    def insert_member(self, member: Member) -> None:
        with self._lock:
            members = self._read_json(self._root / MEMBERS_FILE)
            members[member.pubkey] = member.model_dump(mode="json")
            self._write_json(self._root / MEMBERS_FILE, members)
        logger.info("Stored member %s for group %s", member.pubkey[:16], member.group_id)

    def get_member(self, pubkey: str) -> Member:
        with self._lock:
            members = self._read_json(self._root / MEMBERS_FILE)
        raw = members.get(pubkey)
        if raw is None:
            raise StoreNotFound(f"member {pubkey} not found")
        return self._parse(Member, raw)

    # Messages

    def insert_message(self, message: MessageCreate) -> int:
        """Append ``message`` and return its newly assigned id."""
        with self._lock:
            index = self._read_index()
            message_id = max((int(key) for key in index), default=0) + 1
            filename = f"{message_id}.txt"
            stored = SignedMessage(**message.model_dump(), id=message_id, likes=0)
            self._write_json(self._messages_dir / filename, stored.model_dump(mode="json"))
            index[str(message_id)] = {
                "filename": filename,
                "created_at": datetime.now(UTC).isoformat(),
                "likes": 0,
            }
            self._write_json(self._messages_dir / INDEX_FILE, index)
        logger.info("Stored message %d", message_id)
        return message_id

    def get_message(self, message_id: int) -> SignedMessage:
        with self._lock:
            entry = self._read_index().get(str(message_id))
            if entry is None:
                raise StoreNotFound(f"message {message_id} not found")
            raw = self._read_json(self._messages_dir / entry["filename"])
        return self._parse(SignedMessage, raw)

    def get_latest_messages(self, limit: int) -> list[SignedMessage]:
        """Return up to ``limit`` messages, newest (highest id) first."""
        if limit <= 0:
            return []
        with self._lock:
            index = self._read_index()
            newest = sorted((int(key) for key in index), reverse=True)[:limit]
            raws = [self._read_json(self._messages_dir / index[str(mid)]["filename"]) for mid in newest]
        return [self._parse(SignedMessage, raw) for raw in raws]

    def get_likes(self, message_id: int) -> int:
        return self.get_message(message_id).likes

    def update_likes(self, message_id: int, increase: bool) -> int:
        """Add or remove one like and return the new count, which never drops below zero."""
        with self._lock:
            index = self._read_index()
            entry = index.get(str(message_id))
            if entry is None:
                raise StoreNotFound(f"message {message_id} not found")
            message_path = self._messages_dir / entry["filename"]
            raw = self._read_json(message_path)
            previous = dict(raw)
            likes = int(raw.get("likes", 0))
            likes = likes + 1 if increase else max(0, likes - 1)
            raw["likes"] = likes
            entry["likes"] = likes
            self._write_json(message_path, raw)
            try:
                self._write_json(self._messages_dir / INDEX_FILE, index)
            except StoreError:
                self._write_json(message_path, previous)
                raise
        return likes

    # File helpers

    def _read_index(self) -> dict[str, Any]:
        return self._read_json(self._messages_dir / INDEX_FILE)

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as exc:
            raise StoreError(f"cannot read {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"{path} does not hold a JSON object")
        return data

    @staticmethod
    def _write_json(path: Path, data: dict[str, Any]) -> None:
        try:
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        except OSError as exc:
            raise StoreError(f"cannot write {path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StoreError(f"cannot write {path}: {exc}") from exc

    @staticmethod
    def _parse(model: type[Any], raw: dict[str, Any]) -> Any:
        try:
            return model.model_validate(raw)
        except ValidationError as exc:
            raise StoreError(f"corrupt store entry: {exc}") from exc
