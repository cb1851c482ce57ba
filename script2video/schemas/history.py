"""
Pydantic schema for stored video history records.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .timeline import ScriptTimeline


class HistoryRecord(BaseModel):
    """
    A completed composition stored for replay.

    id is a UUID string assigned by the store; migrated_from holds the
    legacy integer key when the record was upgraded from the old shape.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    timeline: ScriptTimeline
    title: str
    created_at: datetime
    thumbnail_url: str = ""
    migrated_from: Optional[int] = None
