# =============================================================================
# finca_core/offline/operations.py
# Pending Operation Types
# =============================================================================
"""
Operation records flowing through the offline queue.

``NewOperation`` is what repositories hand to the queue; ``PendingOperation``
is what the local store hands back, with its id, timestamp and sync flag.
"""

from __future__ import annotations
import json
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping

import numpy as np

from finca_core.errors import MissingIdentifierError


# Fields that only exist in the local cache and never reach Supabase
LOCAL_FIELDS = ("pending",)


class OperationKind(Enum):
    """Kind of mutation replayed against the remote store."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    @property
    def requires_id(self) -> bool:
        return self is not OperationKind.INSERT


@dataclass
class NewOperation:
    """A mutation about to be queued (no id, timestamp or sync flag yet)."""
    collection: str
    kind: OperationKind
    payload: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Reject UPDATE/DELETE operations that do not name a record."""
        if self.kind.requires_id and not has_identifier(self.payload):
            raise MissingIdentifierError(
                f"{self.kind.value} on '{self.collection}' needs an id",
                collection=self.collection,
                kind=self.kind.value,
            )


@dataclass
class PendingOperation:
    """A queued mutation as persisted by the local store."""
    id: int
    collection: str
    kind: OperationKind
    payload: Dict[str, Any]
    enqueued_at: datetime
    synced: bool = False


def has_identifier(payload: Mapping[str, Any]) -> bool:
    record_id = payload.get("id")
    return record_id is not None and record_id != ""


def strip_local_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``payload`` without local bookkeeping fields."""
    return {k: v for k, v in payload.items() if k not in LOCAL_FIELDS}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return None if np.isnan(value) else float(value)
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _clean_nan(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, dict):
        return {k: _clean_nan(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_clean_nan(v) for v in value]
    return value


def to_json(payload: Mapping[str, Any]) -> str:
    """Serialize a record, coercing numpy/pandas scalars and dates."""
    return json.dumps(_clean_nan(dict(payload)), default=_json_default)


def from_json(text: str) -> Dict[str, Any]:
    return json.loads(text) if text else {}
