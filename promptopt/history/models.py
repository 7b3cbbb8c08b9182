from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

RecordType = Literal["optimize", "iterate"]
RECORD_TYPES = ("optimize", "iterate")


class PromptRecord(BaseModel):
    """One optimization or iteration event. Immutable once created."""

    model_config = ConfigDict(frozen=True, extra="ignore", protected_namespaces=())

    id: str
    original_prompt: str
    optimized_prompt: str
    type: RecordType
    chain_id: str
    version: int = Field(..., ge=1)
    previous_id: Optional[str] = None
    timestamp: int  # epoch milliseconds
    model_key: str
    model_name: Optional[str] = None  # display only, resolved from model_key
    template_id: str
    iteration_note: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PromptChain(BaseModel):
    """Read-only view over all records sharing a chain_id."""

    model_config = ConfigDict(frozen=True)

    chain_id: str
    root_record: PromptRecord
    current_record: PromptRecord
    versions: List[PromptRecord]

    @classmethod
    def from_records(cls, records: Sequence[PromptRecord]) -> "PromptChain":
        """
        Build a chain from its records in any order.

        The lowest version is the root (version 1 unless it was evicted),
        the highest is the current record.

        Raises:
            ValueError: If records is empty.
        """
        if not records:
            raise ValueError("A chain needs at least one record")
        ordered = sorted(records, key=lambda r: r.version)
        return cls(
            chain_id=ordered[0].chain_id,
            root_record=ordered[0],
            current_record=ordered[-1],
            versions=ordered,
        )
