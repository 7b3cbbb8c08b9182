"""
Prompt History Manager

Owns the list of prompt records, keeps it under a capacity limit and
derives optimization chains from it. The whole list lives under a single
storage key as a JSON array, newest record first.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from promptopt.storage.base import StorageProvider

from .errors import (
    ChainNotFoundError,
    HistoryNotInitializedError,
    RecordNotFoundError,
    RecordValidationError,
    StorageError,
    StorageUnavailableError,
)
from .models import PromptChain, PromptRecord
from .validator import validate_record

if TYPE_CHECKING:
    from promptopt.models.manager import ModelManager

logger = logging.getLogger("promptopt.history")

DEFAULT_STORAGE_KEY = "prompt_history"
DEFAULT_MAX_RECORDS = 50
_PROBE_KEY = "_test_storage_"

RecordInput = Union[PromptRecord, Mapping[str, Any]]


def now_ms() -> int:
    return int(time.time() * 1000)


class HistoryManager:
    """Manages prompt record storage, capacity and chain views."""

    def __init__(
        self,
        storage: StorageProvider,
        max_records: int = DEFAULT_MAX_RECORDS,
        storage_key: str = DEFAULT_STORAGE_KEY,
        model_manager: Optional["ModelManager"] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        """
        Initialize history manager

        Args:
            storage: Backing key-value store
            max_records: Maximum number of records to keep. Oldest are evicted silently.
            storage_key: Key holding the serialized record list
            model_manager: Optional model manager used to fill in display model names
            id_factory: Generator for record and chain ids
        """
        if max_records < 1:
            raise ValueError("max_records must be at least 1")
        self.storage = storage
        self.max_records = max_records
        self.storage_key = storage_key
        self.model_manager = model_manager
        self._new_id = id_factory
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def init(self) -> None:
        """Verify the store is writable with a throwaway key."""
        try:
            await self.storage.set_item(_PROBE_KEY, "test")
            await self.storage.remove_item(_PROBE_KEY)
        except Exception as exc:
            logger.error("Storage probe failed: %s", exc)
            raise StorageUnavailableError(f"Storage is unavailable: {exc}") from exc
        self._initialized = True

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise HistoryNotInitializedError()

    # -- persistence -------------------------------------------------------

    async def _load(self) -> List[PromptRecord]:
        try:
            raw = await self.storage.get_item(self.storage_key)
        except Exception as exc:
            raise StorageError(f"Failed to get history records: {exc}", "read") from exc
        if not raw:
            return []
        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError("expected a JSON array")
            return [PromptRecord.model_validate(item) for item in data]
        except (ValueError, ValidationError) as exc:
            raise StorageError(f"Stored history is corrupted: {exc}", "read") from exc

    async def _save(self, records: List[PromptRecord]) -> None:
        payload = json.dumps([r.model_dump(mode="json") for r in records], ensure_ascii=False)
        try:
            await self.storage.set_item(self.storage_key, payload)
        except Exception as exc:
            raise StorageError(f"Failed to save history records: {exc}", "write") from exc

    # -- record operations -------------------------------------------------

    def _to_record(self, candidate: RecordInput) -> PromptRecord:
        errors = validate_record(candidate)
        if errors:
            raise RecordValidationError("Record validation failed", errors)
        if isinstance(candidate, PromptRecord):
            return candidate
        try:
            return PromptRecord.model_validate(dict(candidate))
        except ValidationError as exc:
            errors = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
            raise RecordValidationError("Record validation failed", errors) from exc

    @staticmethod
    def _integrity_errors(record: PromptRecord, existing: List[PromptRecord]) -> List[str]:
        errors = []
        by_id = {r.id: r for r in existing}
        if record.id in by_id:
            errors.append(f"id: record with ID {record.id} already exists")
        if any(r.chain_id == record.chain_id and r.version == record.version for r in existing):
            errors.append(f"version: chain {record.chain_id} already has version {record.version}")
        if record.previous_id:
            previous = by_id.get(record.previous_id)
            # A previous record that was evicted or deleted is tolerated
            if previous is not None:
                if previous.chain_id != record.chain_id:
                    errors.append("previous_id: referenced record belongs to another chain")
                elif previous.version >= record.version:
                    errors.append("previous_id: referenced record must have a lower version")
        return errors

    async def _resolve_model_name(self, model_key: str) -> Optional[str]:
        if self.model_manager is None or not model_key:
            return None
        try:
            config = await self.model_manager.get_model(model_key)
        except Exception as exc:
            # Display-only field; the record is stored without it
            logger.warning("Failed to resolve model name for %s: %s", model_key, exc)
            return None
        return config.default_model if config else None

    async def add_record(self, record: RecordInput) -> PromptRecord:
        """
        Validate and store a record as the newest entry.

        Raises:
            HistoryNotInitializedError: init() has not succeeded
            RecordValidationError: Missing/invalid fields or chain conflicts
            StorageError: Reading or writing the store failed
        """
        self._ensure_initialized()
        new_record = self._to_record(record)

        records = await self._load()
        errors = self._integrity_errors(new_record, records)
        if errors:
            raise RecordValidationError("Record validation failed", errors)

        if new_record.model_key and not new_record.model_name:
            model_name = await self._resolve_model_name(new_record.model_key)
            if model_name:
                new_record = new_record.model_copy(update={"model_name": model_name})

        records.insert(0, new_record)
        evicted = len(records) - self.max_records
        if evicted > 0:
            logger.debug("History over capacity, evicting %d oldest record(s)", evicted)
        await self._save(records[: self.max_records])
        return new_record

    async def get_records(self) -> List[PromptRecord]:
        """Get all records, newest first."""
        self._ensure_initialized()
        return await self._load()

    async def get_record(self, record_id: str) -> PromptRecord:
        self._ensure_initialized()
        for record in await self._load():
            if record.id == record_id:
                return record
        raise RecordNotFoundError(record_id)

    async def delete_record(self, record_id: str) -> None:
        self._ensure_initialized()
        records = await self._load()
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            raise RecordNotFoundError(record_id)
        await self._save(remaining)

    async def get_iteration_chain(self, record_id: str) -> List[PromptRecord]:
        """
        Walk previous_id links back from record_id.

        Returns:
            Records oldest first. Stops at the first link that cannot be
            resolved, so a deleted or evicted ancestor yields the partial
            chain gathered so far. An unknown record_id yields [].
        """
        self._ensure_initialized()
        by_id = {r.id: r for r in await self._load()}
        chain: List[PromptRecord] = []
        seen = set()
        current_id: Optional[str] = record_id

        while current_id and current_id not in seen:
            record = by_id.get(current_id)
            if record is None:
                if chain:
                    logger.warning(
                        "Iteration chain for %s is broken at missing record %s", record_id, current_id
                    )
                break
            seen.add(current_id)
            chain.insert(0, record)
            current_id = record.previous_id

        return chain

    async def clear_history(self) -> None:
        """Remove every record."""
        self._ensure_initialized()
        try:
            await self.storage.remove_item(self.storage_key)
        except Exception as exc:
            raise StorageError(f"Failed to clear history: {exc}", "delete") from exc

    async def search(self, query: str, limit: Optional[int] = None) -> List[PromptRecord]:
        """Case-insensitive search over original and optimized text, newest first."""
        self._ensure_initialized()
        query_lower = query.lower()
        results = [
            r
            for r in await self._load()
            if query_lower in r.original_prompt.lower() or query_lower in r.optimized_prompt.lower()
        ]
        return results[:limit] if limit else results

    # -- chain operations --------------------------------------------------

    async def get_chain(self, chain_id: str) -> PromptChain:
        self._ensure_initialized()
        chain_records = [r for r in await self._load() if r.chain_id == chain_id]
        if not chain_records:
            raise ChainNotFoundError(chain_id)
        return PromptChain.from_records(chain_records)

    async def get_all_chains(self) -> List[PromptChain]:
        """Group all records by chain, ordered by chain id."""
        self._ensure_initialized()
        groups: Dict[str, List[PromptRecord]] = defaultdict(list)
        for record in await self._load():
            groups[record.chain_id].append(record)
        return [PromptChain.from_records(groups[chain_id]) for chain_id in sorted(groups)]

    async def delete_chain(self, chain_id: str) -> int:
        """
        Delete every record of a chain.

        Returns:
            Number of records removed
        """
        self._ensure_initialized()
        records = await self._load()
        remaining = [r for r in records if r.chain_id != chain_id]
        removed = len(records) - len(remaining)
        if removed == 0:
            raise ChainNotFoundError(chain_id)
        await self._save(remaining)
        return removed

    async def create_new_chain(self, record: Mapping[str, Any]) -> PromptChain:
        """
        Start a new chain from an initial optimization.

        ``chain_id`` is generated unless supplied. ``version`` is forced to 1,
        ``type`` to "optimize" and ``previous_id`` cleared. ``id`` and
        ``timestamp`` are generated when absent.
        """
        self._ensure_initialized()
        data = dict(record)
        data["chain_id"] = data.get("chain_id") or self._new_id()
        data["id"] = data.get("id") or self._new_id()
        data["timestamp"] = data.get("timestamp") or now_ms()
        data["version"] = 1
        data["type"] = "optimize"
        data["previous_id"] = None

        await self.add_record(data)
        return await self.get_chain(data["chain_id"])

    async def add_iteration(
        self,
        chain_id: str,
        original_prompt: str,
        optimized_prompt: str,
        model_key: str,
        template_id: str,
        iteration_note: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PromptChain:
        """
        Append an iteration after the chain's current record.

        Raises:
            ChainNotFoundError: No record has chain_id
        """
        chain = await self.get_chain(chain_id)
        latest = chain.current_record

        await self.add_record(
            {
                "id": self._new_id(),
                "original_prompt": original_prompt,
                "optimized_prompt": optimized_prompt,
                "type": "iterate",
                "chain_id": chain_id,
                "version": latest.version + 1,
                "previous_id": latest.id,
                "timestamp": now_ms(),
                "model_key": model_key,
                "template_id": template_id,
                "iteration_note": iteration_note,
                "metadata": metadata or {},
            }
        )
        return await self.get_chain(chain_id)

    async def import_records(self, records: Iterable[RecordInput]) -> int:
        """
        Replace the stored history with ``records`` (newest first).

        Invalid entries, and entries that clash with one already accepted
        (same id, same chain version, or a previous link into another chain
        or to a version that is not lower), are skipped with a warning. The
        result is capped at max_records.

        Returns:
            Number of records imported
        """
        self._ensure_initialized()
        accepted: List[PromptRecord] = []
        for index, candidate in enumerate(records):
            try:
                record = self._to_record(candidate)
            except RecordValidationError as exc:
                logger.warning("Skipping history record #%d: %s", index, exc)
                continue
            errors = self._integrity_errors(record, accepted)
            if errors:
                logger.warning("Skipping history record #%d: %s", index, "; ".join(errors))
                continue
            accepted.append(record)

        # Newest first means a child usually precedes its parent
        by_id = {r.id: r for r in accepted}
        linked: List[PromptRecord] = []
        for record in accepted:
            previous = by_id.get(record.previous_id) if record.previous_id else None
            if previous is not None and (previous.chain_id != record.chain_id or previous.version >= record.version):
                logger.warning("Skipping history record %s: previous_id points outside its chain history", record.id)
                continue
            linked.append(record)
        linked = linked[: self.max_records]
        await self._save(linked)
        return len(linked)


__all__ = ["HistoryManager", "DEFAULT_MAX_RECORDS", "DEFAULT_STORAGE_KEY", "now_ms"]
