# tests/test_file_store.py
"""Tests for the flat-file member and message store."""

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from zkjwt.core.errors import StoreError, StoreNotFound
from zkjwt.schemas.member import Member
from zkjwt.schemas.message import MessageCreate
from zkjwt.storage.file_store import FileStore

PUBKEY = "11" * 32


def _message(text: str = "hello") -> MessageCreate:
    return MessageCreate(
        anon_group_id="example.org",
        anon_group_provider="google-oauth",
        text=text,
        timestamp=1746608877000,
        internal=False,
        ephemeral_pubkey=PUBKEY,
        signature="00" * 64,
    )


class TestMembers:
    def test_round_trip(self, store: FileStore) -> None:
        member = Member(
            pubkey=PUBKEY,
            pubkey_expiry=datetime.now(UTC) + timedelta(days=1),
            provider="google-oauth",
            group_id="example.org",
            proof_fingerprint="ab" * 32,
            joined_at=datetime.now(UTC),
        )
        store.insert_member(member)

        assert store.get_member(PUBKEY) == member

    def test_missing_member(self, store: FileStore) -> None:
        with pytest.raises(StoreNotFound):
            store.get_member(PUBKEY)


class TestMessages:
    def test_ids_start_at_one_and_increase(self, store: FileStore) -> None:
        assert [store.insert_message(_message(str(n))) for n in range(3)] == [1, 2, 3]
        assert store.get_message(2).text == "1"
        assert store.get_message(2).likes == 0

    def test_latest_messages_newest_first(self, store: FileStore) -> None:
        for text in ("first", "second", "third"):
            store.insert_message(_message(text))

        latest = store.get_latest_messages(2)

        assert [message.id for message in latest] == [3, 2]
        assert [message.text for message in latest] == ["third", "second"]
        assert store.get_latest_messages(0) == []
        assert len(store.get_latest_messages(10)) == 3

    def test_likes_never_drop_below_zero(self, store: FileStore) -> None:
        message_id = store.insert_message(_message())

        assert store.update_likes(message_id, True) == 1
        assert store.update_likes(message_id, True) == 2
        assert store.update_likes(message_id, False) == 1
        assert store.update_likes(message_id, False) == 0
        assert store.update_likes(message_id, False) == 0
        assert store.get_likes(message_id) == 0

    def test_likes_persist_across_instances(self, store: FileStore) -> None:
        message_id = store.insert_message(_message())
        store.update_likes(message_id, True)

        reopened = FileStore(store.root)
        assert reopened.get_likes(message_id) == 1
        assert reopened.insert_message(_message()) == message_id + 1

    def test_missing_message(self, store: FileStore) -> None:
        with pytest.raises(StoreNotFound):
            store.get_message(1)
        with pytest.raises(StoreNotFound):
            store.update_likes(1, True)

    def test_corrupt_index_is_store_error(self, store: FileStore) -> None:
        (store.root / "messages" / "index.json").write_text("[1, 2]")
        with pytest.raises(StoreError):
            store.get_latest_messages(1)


class TestWriteFailures:
    def test_failed_replace_leaves_no_temp_file(self, store: FileStore) -> None:
        message_id = store.insert_message(_message())

        with patch("zkjwt.storage.file_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StoreError):
                store.update_likes(message_id, True)

        leftovers = [path.name for path in store.root.rglob("*.tmp")]
        assert leftovers == []
        assert store.get_likes(message_id) == 0

    def test_failed_index_write_restores_message(self, store: FileStore) -> None:
        message_id = store.insert_message(_message())
        real_write = FileStore._write_json

        def fail_on_index(path: Path, data: dict[str, Any]) -> None:
            if path.name == "index.json":
                raise StoreError("index is read-only")
            real_write(path, data)

        with patch.object(FileStore, "_write_json", side_effect=fail_on_index):
            with pytest.raises(StoreError):
                store.update_likes(message_id, True)

        assert store.get_likes(message_id) == 0
        assert store.get_latest_messages(1)[0].likes == 0
