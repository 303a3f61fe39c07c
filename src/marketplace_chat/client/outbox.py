"""Offline send queue for the chat client.

Sends that cannot reach the server are queued locally and retried by
``flush``, either manually or when connectivity comes back. Entries that keep
failing are retried on every flush until ``max_attempts`` is reached, after
which they move to the dead-letter list.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import secrets
import string
import tempfile
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Any, Literal, Protocol

from marketplace_chat.core.settings import settings

logger = logging.getLogger(__name__)

EntryType = Literal["start_conversation", "conversation_message"]

ENTRIES = "entries"
DEAD_LETTERS = "dead_letters"

_BASE36 = string.digits + string.ascii_lowercase


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def new_entry_id() -> str:
    """Return ``ob-<base36 epoch ms>-<random>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"ob-{_base36(int(time.time() * 1000))}-{suffix}"


@dataclass
class OutboxEntry:
    """A queued send."""

    id: str
    type: EntryType
    body: str
    created_at: str
    participant_id: str | None = None
    conversation_id: str | None = None
    attempts: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OutboxEntry:
        return cls(
            id=str(data["id"]),
            type=data["type"],
            body=str(data.get("body", "")),
            created_at=str(data.get("created_at", "")),
            participant_id=data.get("participant_id"),
            conversation_id=data.get("conversation_id"),
            attempts=int(data.get("attempts", 0)),
            last_error=data.get("last_error"),
        )


class OutboxStorage(Protocol):
    """Durable list storage keyed by name (``entries`` and ``dead_letters``)."""

    def read(self, name: str) -> list[dict[str, Any]]:
        ...

    def write(self, name: str, items: list[dict[str, Any]]) -> None:
        ...


class OutboxSender(Protocol):
    """The normal send path used to deliver queued entries."""

    async def start_conversation(self, participant_id: str) -> str:
        ...

    async def send_conversation_message(self, conversation_id: str, body: str) -> Any:
        ...


class InMemoryOutboxStorage:
    """Volatile storage, mainly for tests and short-lived clients."""

    def __init__(self) -> None:
        self._data: dict[str, list[dict[str, Any]]] = {}

    def read(self, name: str) -> list[dict[str, Any]]:
        return [dict(item) for item in self._data.get(name, [])]

    def write(self, name: str, items: list[dict[str, Any]]) -> None:
        self._data[name] = [dict(item) for item in items]


class JsonFileOutboxStorage:
    """Stores every list in one JSON document, replaced atomically on write."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = Lock()

    def _load(self) -> dict[str, list[dict[str, Any]]]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Outbox file %s is corrupt; starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def read(self, name: str) -> list[dict[str, Any]]:
        with self._lock:
            items = self._load().get(name, [])
        return [item for item in items if isinstance(item, dict)]

    def write(self, name: str, items: list[dict[str, Any]]) -> None:
        with self._lock:
            data = self._load()
            data[name] = items
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".outbox-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle)
                os.replace(tmp_path, self.path)
            except OSError:
                Path(tmp_path).unlink(missing_ok=True)
                raise


class Outbox:
    """Queue of pending sends with an at-least-once flush."""

    def __init__(
        self,
        storage: OutboxStorage,
        sender: OutboxSender,
        *,
        max_attempts: int | None = None,
        timeout_seconds: float = 10.0,
        online: bool = True,
    ) -> None:
        self.storage = storage
        self.sender = sender
        self.max_attempts = max_attempts
        self.timeout_seconds = timeout_seconds
        self._online = online
        self._flush_lock = asyncio.Lock()

    # --- queue access ----------------------------------------------------------------

    def entries(self) -> list[OutboxEntry]:
        return [OutboxEntry.from_dict(item) for item in self.storage.read(ENTRIES)]

    def dead_letters(self) -> list[OutboxEntry]:
        return [OutboxEntry.from_dict(item) for item in self.storage.read(DEAD_LETTERS)]

    def is_empty(self) -> bool:
        return not self.storage.read(ENTRIES)

    def _save(self, entries: list[OutboxEntry]) -> None:
        self.storage.write(ENTRIES, [entry.to_dict() for entry in entries])

    def _append(self, entry: OutboxEntry) -> OutboxEntry:
        entries = self.entries()
        entries.append(entry)
        self._save(entries)
        return entry

    def enqueue_start_conversation(self, participant_id: str, body: str) -> OutboxEntry:
        participant_id = (participant_id or "").strip()
        body = (body or "").strip()
        if not participant_id or not body:
            raise ValueError("participant_id and body are required")
        return self._append(
            OutboxEntry(
                id=new_entry_id(),
                type="start_conversation",
                participant_id=participant_id,
                body=body,
                created_at=datetime.now(UTC).isoformat(),
            )
        )

    def enqueue_conversation_message(self, conversation_id: str, body: str) -> OutboxEntry:
        conversation_id = (conversation_id or "").strip()
        body = (body or "").strip()
        if not conversation_id or not body:
            raise ValueError("conversation_id and body are required")
        return self._append(
            OutboxEntry(
                id=new_entry_id(),
                type="conversation_message",
                conversation_id=conversation_id,
                body=body,
                created_at=datetime.now(UTC).isoformat(),
            )
        )

    # --- delivery --------------------------------------------------------------------

    async def _deliver(self, entry: OutboxEntry) -> None:
        if entry.type == "start_conversation":
            conversation_id = await self.sender.start_conversation(entry.participant_id or "")
            await self.sender.send_conversation_message(conversation_id, entry.body)
        else:
            await self.sender.send_conversation_message(entry.conversation_id or "", entry.body)

    async def flush(self, max_batch: int = 10) -> int:
        """Try to send up to ``max_batch`` entries; return how many were sent.

        Failed entries stay queued for the next flush unless they have used up
        ``max_attempts``.
        """
        if self._flush_lock.locked():
            return 0
        async with self._flush_lock:
            batch = self.entries()[: max(0, max_batch)]
            sent = 0
            for entry in batch:
                try:
                    await asyncio.wait_for(self._deliver(entry), timeout=self.timeout_seconds)
                except Exception as exc:  # noqa: BLE001
                    self._record_failure(entry, exc)
                    continue
                self._remove(entry.id)
                sent += 1
            if batch:
                logger.info("Outbox flush sent %d of %d entries", sent, len(batch))
            return sent

    def _remove(self, entry_id: str) -> None:
        self._save([entry for entry in self.entries() if entry.id != entry_id])

    def _record_failure(self, entry: OutboxEntry, exc: Exception) -> None:
        reason = "timed out" if isinstance(exc, TimeoutError) else str(exc) or type(exc).__name__
        entries = self.entries()
        for stored in entries:
            if stored.id != entry.id:
                continue
            stored.attempts += 1
            stored.last_error = reason
            if self.max_attempts is not None and stored.attempts >= self.max_attempts:
                logger.warning(
                    "Outbox entry %s failed %d times; moving to dead letters: %s",
                    stored.id,
                    stored.attempts,
                    reason,
                )
                entries.remove(stored)
                dead = self.dead_letters()
                dead.append(stored)
                self.storage.write(DEAD_LETTERS, [item.to_dict() for item in dead])
            else:
                logger.warning("Outbox entry %s failed: %s", stored.id, reason)
            break
        self._save(entries)

    async def on_connectivity_change(self, online: bool) -> int:
        """Track connectivity; an offline to online transition triggers a flush."""
        was_online = self._online
        self._online = online
        if online and not was_online:
            return await self.flush()
        return 0


def create_outbox(storage: OutboxStorage, sender: OutboxSender, *, online: bool = True) -> Outbox:
    """Build an outbox using the configured retry limit and request timeout."""
    return Outbox(
        storage,
        sender,
        max_attempts=settings.outbox_max_attempts,
        timeout_seconds=settings.outbox_request_timeout_seconds,
        online=online,
    )
