"""
In-memory view of detection requests.

ORM rows from ``models.py`` are converted into these frozen dataclasses at the
data-access boundary so the grouping / merge pipeline stays a set of pure
functions over plain values.
"""
from __future__ import annotations

import ast
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from config import UNKNOWN_SESSION
from models import AIRequest


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 ``createdAt`` value into an aware datetime.

    A trailing ``Z`` is accepted; values without an offset are read as UTC.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_box(raw: Any) -> Tuple[float, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = ast.literal_eval(raw)
    return tuple(float(v) for v in raw)


@dataclass(frozen=True)
class Detection:
    confidence: float
    box: Tuple[float, ...]
    label: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"confidence": self.confidence, "box": list(self.box)}
        if self.label is not None:
            data["class"] = self.label
        return data


@dataclass(frozen=True)
class DetectionRequest:
    id: str
    user_id: str
    file_name: str
    download_url: str
    created_at: str
    status: str = "pending"
    session_id: str = UNKNOWN_SESSION
    processing_start_time: Optional[datetime] = None
    processing_end_time: Optional[datetime] = None
    apple_detections: Tuple[Detection, ...] = ()
    tree_detections: Tuple[Detection, ...] = ()
    visualizations: Tuple[str, ...] = ()

    @property
    def created(self) -> datetime:
        return parse_timestamp(self.created_at)

    @property
    def apple_count(self) -> int:
        return len(self.apple_detections)

    @property
    def tree_count(self) -> int:
        return len(self.tree_detections)

    @property
    def preview_url(self) -> str:
        return self.visualizations[0] if self.visualizations else self.download_url

    @property
    def processing_time(self) -> str:
        if not self.processing_start_time or not self.processing_end_time:
            return "N/A"
        seconds = int((self.processing_end_time - self.processing_start_time).total_seconds())
        minutes, seconds = divmod(max(seconds, 0), 60)
        return f"{minutes % 60:02d}:{seconds:02d}"

    def created_at_display(self, tz: ZoneInfo) -> str:
        return self.created.astimezone(tz).strftime("%d/%m/%Y %H:%M:%S")

    def labelled_detections(self) -> List[Detection]:
        """Apple then tree detections, each tagged with its class."""
        return [
            Detection(d.confidence, d.box, "apple") for d in self.apple_detections
        ] + [
            Detection(d.confidence, d.box, "tree") for d in self.tree_detections
        ]

    @classmethod
    def from_model(cls, row: AIRequest) -> "DetectionRequest":
        apples, trees = [], []
        for obj in row.detections:
            detection = Detection(
                confidence=float(obj.confidence or 0.0),
                box=_parse_box(obj.box),
                label=obj.label,
            )
            if obj.kind == "apple":
                apples.append(detection)
            elif obj.kind == "tree":
                trees.append(detection)
        return cls(
            id=row.id,
            user_id=row.user_id,
            file_name=row.file_name,
            download_url=row.download_url or "",
            created_at=row.created_at,
            status=row.status or "pending",
            session_id=row.session_id or UNKNOWN_SESSION,
            processing_start_time=row.processing_start_time,
            processing_end_time=row.processing_end_time,
            apple_detections=tuple(apples),
            tree_detections=tuple(trees),
            visualizations=tuple(row.visualizations or ()),
        )

    def as_dict(self, tz: Optional[ZoneInfo] = None) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "fileName": self.file_name,
            "downloadURL": self.download_url,
            "createdAt": self.created_at,
            "status": self.status,
            "sessionId": self.session_id,
            "userId": self.user_id,
            "appleDetections": [d.as_dict() for d in self.apple_detections],
            "treeDetections": [d.as_dict() for d in self.tree_detections],
            "visualizations": list(self.visualizations),
            "previewURL": self.preview_url,
            "processingTime": self.processing_time,
            "detections": [d.as_dict() for d in self.labelled_detections()],
        }
        if tz is not None:
            data["createdAtDisplay"] = self.created_at_display(tz)
        return data


def requests_from_models(rows: Sequence[AIRequest]) -> List[DetectionRequest]:
    return [DetectionRequest.from_model(row) for row in rows]
