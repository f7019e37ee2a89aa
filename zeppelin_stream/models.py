from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

EVENT_CONNECTED = "connected"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def coerce_payload_dict(raw: Any) -> Dict[str, Any]:
    if raw is None:
        return {}

    candidate = raw
    if hasattr(candidate, "to_dict") and callable(candidate.to_dict):
        candidate = candidate.to_dict()

    if isinstance(candidate, Mapping):
        return {str(key): value for key, value in candidate.items()}

    return {"value": candidate}


def encode_payload(payload: Any) -> bytes:
    """Serialize a broadcast payload once; raises on unserializable input."""
    dump_json = getattr(payload, "model_dump_json", None)
    if callable(dump_json):
        return dump_json(exclude_none=True).encode("utf-8")
    if hasattr(payload, "to_dict") and callable(payload.to_dict):
        payload = payload.to_dict()
    return json.dumps(payload, ensure_ascii=True, allow_nan=False, separators=(",", ":")).encode("utf-8")


class NodeModel(BaseModel):
    id: str
    type: str = ""
    label: str = ""
    rig: Optional[str] = None
    state: str = ""
    metadata: Optional[Dict[str, str]] = None

    model_config = ConfigDict(extra="ignore")


class EdgeModel(BaseModel):
    source: str
    target: str
    type: str
    label: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    model_config = ConfigDict(extra="ignore")


class ActivityModel(BaseModel):
    timestamp: str = Field(default_factory=utc_now_iso)
    event: str = ""
    agent: str = ""
    detail: str = ""

    model_config = ConfigDict(extra="ignore")


class SummaryModel(BaseModel):
    rig_count: int = 0
    active_polecats: int = 0
    open_beads: int = 0
    active_convoys: int = 0

    model_config = ConfigDict(extra="ignore")


class SnapshotResponse(BaseModel):
    type: str = "snapshot"
    timestamp: str = Field(default_factory=utc_now_iso)
    nodes: List[NodeModel] = Field(default_factory=list)
    edges: List[EdgeModel] = Field(default_factory=list)
    activity: List[ActivityModel] = Field(default_factory=list)
    summary: SummaryModel = Field(default_factory=SummaryModel)

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_snapshot(cls, raw: Any) -> "SnapshotResponse":
        data = coerce_payload_dict(raw)
        return cls(
            timestamp=_coerce_timestamp(data.get("timestamp")),
            nodes=[NodeModel.model_validate(node) for node in _as_list(data.get("nodes"))],
            edges=[EdgeModel.model_validate(edge) for edge in _as_list(data.get("edges"))],
            activity=[ActivityModel.model_validate(entry) for entry in _as_list(data.get("activity"))],
            summary=SummaryModel.model_validate(data.get("summary") or {}),
        )


class DiffResponse(BaseModel):
    type: str = "diff"
    timestamp: str = Field(default_factory=utc_now_iso)
    nodes_added: Optional[List[NodeModel]] = None
    nodes_removed: Optional[List[str]] = None
    nodes_updated: Optional[List[NodeModel]] = None
    edges_added: Optional[List[EdgeModel]] = None
    edges_removed: Optional[List[str]] = None
    activity_append: Optional[List[ActivityModel]] = None
    summary: Optional[SummaryModel] = None

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_diff(cls, raw: Any) -> "DiffResponse":
        data = coerce_payload_dict(raw)
        summary = data.get("summary")
        return cls(
            timestamp=_coerce_timestamp(data.get("timestamp")),
            nodes_added=_models_or_none(NodeModel, data.get("nodes_added")),
            nodes_removed=_strings_or_none(data.get("nodes_removed")),
            nodes_updated=_models_or_none(NodeModel, data.get("nodes_updated")),
            edges_added=_models_or_none(EdgeModel, data.get("edges_added")),
            edges_removed=_strings_or_none(data.get("edges_removed")),
            activity_append=_models_or_none(ActivityModel, data.get("activity_append")),
            summary=SummaryModel.model_validate(summary) if isinstance(summary, Mapping) else None,
        )


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _models_or_none(model: type[BaseModel], value: Any) -> Optional[List[Any]]:
    items = _as_list(value)
    if not items:
        return None
    return [model.model_validate(item) for item in items]


def _strings_or_none(value: Any) -> Optional[List[str]]:
    items = _as_list(value)
    if not items:
        return None
    return [str(item) for item in items]


def _coerce_timestamp(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return utc_now_iso()
