"""Conversation record storage.

Persists the local records that correlate an owner and a chat object
with a remote conversation thread. The orchestrator only relies on the
four operations of ConversationStore.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import aiofiles

from shared.config import StoreSettings
from shared.errors import ConfigurationError, StoreError
from shared.logging import get_logger
from shared.models import ConversationRecord

logger = get_logger(__name__)


class ConversationStore(ABC):
    """Abstract persistence collaborator for conversation records."""

    @abstractmethod
    async def load_by_id(self, record_id: int) -> Optional[ConversationRecord]:
        """Load a record, or None if it does not exist."""
        pass

    @abstractmethod
    async def save(self, record: ConversationRecord) -> ConversationRecord:
        """
        Insert or update a record.

        A record without an id is inserted and receives the next id.

        Returns:
            The saved record, with its id assigned
        """
        pass

    @abstractmethod
    async def delete(self, record_id: int) -> bool:
        """Delete a record, returning whether it existed."""
        pass

    @abstractmethod
    async def list_by_owner(
        self,
        owner_id: Optional[str],
        object_id: int
    ) -> list[ConversationRecord]:
        """
        List the records of a chat object, newest first.

        Args:
            owner_id: Restrict to one owner; None lists every owner
            object_id: Chat object the records belong to
        """
        pass


def _newest_first(records: list[ConversationRecord]) -> list[ConversationRecord]:
    return sorted(records, key=lambda r: (r.created_at, r.id or 0), reverse=True)


class InMemoryConversationStore(ConversationStore):
    """Process-local store, used by default and in tests."""

    def __init__(self) -> None:
        self._records: dict[int, ConversationRecord] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def load_by_id(self, record_id: int) -> Optional[ConversationRecord]:
        record = self._records.get(record_id)
        return record.model_copy() if record else None

    async def save(self, record: ConversationRecord) -> ConversationRecord:
        async with self._lock:
            if record.id is None:
                record.id = self._next_id
                self._next_id += 1
            self._records[record.id] = record.model_copy()

        logger.debug("Conversation record saved", record_id=record.id)
        return record

    async def delete(self, record_id: int) -> bool:
        async with self._lock:
            return self._records.pop(record_id, None) is not None

    async def list_by_owner(
        self,
        owner_id: Optional[str],
        object_id: int
    ) -> list[ConversationRecord]:
        records = [
            r.model_copy() for r in self._records.values()
            if r.object_id == object_id and (owner_id is None or r.owner_id == owner_id)
        ]
        return _newest_first(records)


class JsonFileConversationStore(ConversationStore):
    """
    Store keeping every record in a single JSON document.

    The whole document is rewritten on each change; ids come from a
    sequence kept in the same document.
    """

    def __init__(self, path: str | Path = "data/conversations.json") -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

        # Ensure data directory exists
        self.path.parent.mkdir(parents=True, exist_ok=True)

    async def _read(self) -> dict:
        if not self.path.exists():
            return {"sequence": 0, "records": {}}

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                content = await f.read()
            document = json.loads(content) if content.strip() else {"sequence": 0, "records": {}}
        except (OSError, ValueError) as e:
            logger.error("Conversation store unreadable", path=str(self.path), error=str(e))
            raise StoreError(f"Conversation store {self.path} is unreadable: {e}") from e

        if not isinstance(document, dict) or "records" not in document:
            logger.error("Conversation store malformed", path=str(self.path))
            raise StoreError(f"Conversation store {self.path} is malformed")
        return document

    async def _write(self, document: dict) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(document, indent=2))
        tmp_path.replace(self.path)

    async def load_by_id(self, record_id: int) -> Optional[ConversationRecord]:
        document = await self._read()
        data = document["records"].get(str(record_id))
        return ConversationRecord.model_validate(data) if data else None

    async def save(self, record: ConversationRecord) -> ConversationRecord:
        async with self._lock:
            document = await self._read()
            if record.id is None:
                document["sequence"] = document.get("sequence", 0) + 1
                record.id = document["sequence"]
            document["records"][str(record.id)] = record.model_dump(mode="json")
            await self._write(document)

        logger.debug("Conversation record saved", record_id=record.id, path=str(self.path))
        return record

    async def delete(self, record_id: int) -> bool:
        async with self._lock:
            document = await self._read()
            if document["records"].pop(str(record_id), None) is None:
                return False
            await self._write(document)
            return True

    async def list_by_owner(
        self,
        owner_id: Optional[str],
        object_id: int
    ) -> list[ConversationRecord]:
        document = await self._read()
        records = [
            ConversationRecord.model_validate(data)
            for data in document["records"].values()
        ]
        return _newest_first([
            r for r in records
            if r.object_id == object_id and (owner_id is None or r.owner_id == owner_id)
        ])


def create_store(settings: StoreSettings) -> ConversationStore:
    """
    Create the configured conversation store.

    Raises:
        ConfigurationError: If the backend is unknown
    """
    if settings.backend == "memory":
        return InMemoryConversationStore()
    if settings.backend == "json":
        return JsonFileConversationStore(settings.path)

    raise ConfigurationError(
        f"Unsupported store backend: {settings.backend}. Supported: ['memory', 'json']"
    )
