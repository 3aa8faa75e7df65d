from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON, DateTime
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from enum import Enum


def utcnow() -> datetime:
    """Timezone-aware UTC now; naive datetimes are rejected on write"""
    return datetime.now(timezone.utc)


class ParseStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PARSED = "parsed"
    FAILED = "failed"


# Allowed status changes; parsed and failed are terminal
STATUS_TRANSITIONS = {
    ParseStatus.UPLOADED: {ParseStatus.PROCESSING, ParseStatus.FAILED},
    ParseStatus.PROCESSING: {ParseStatus.PARSED, ParseStatus.FAILED},
    ParseStatus.PARSED: set(),
    ParseStatus.FAILED: set(),
}


class ParseJob(SQLModel, table=True):
    __tablename__ = "plan_parses"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    project_id: str = Field(index=True, max_length=64)
    estimate_id: Optional[str] = Field(default=None, max_length=64)
    upload_id: Optional[str] = Field(default=None, index=True, max_length=64)
    file_urls: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    status: ParseStatus = Field(default=ParseStatus.UPLOADED, index=True)

    # Results
    parse_result_json: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    pages_of_interest: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    source_file_pages: Optional[int] = Field(default=None)
    processing_time_ms: Optional[int] = Field(default=None)

    # Failure details
    error_code: Optional[str] = Field(default=None, max_length=64)
    error_message: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    started_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    parsed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
