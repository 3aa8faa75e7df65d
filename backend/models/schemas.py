from pydantic import BaseModel, Field, validator
from typing import Optional, Any, List, Literal


class ParseRequest(BaseModel):
    project_id: str = Field(..., alias="projectId", min_length=1)
    estimate_id: Optional[str] = Field(None, alias="estimateId")
    file_urls: List[str] = Field(..., alias="fileUrls", min_length=1, max_length=10)
    upload_id: Optional[str] = Field(None, alias="uploadId")
    upload_ids: Optional[List[str]] = Field(None, alias="uploadIds")
    resolve_from_project: bool = Field(False, alias="resolveFromProject")
    run_async: bool = Field(False, alias="async")  # Queue on the worker instead of parsing inline

    class Config:
        populate_by_name = True

    @validator('file_urls')
    def non_blank_urls(cls, v):
        if any(not isinstance(u, str) or not u.strip() for u in v):
            raise ValueError("fileUrls must not contain blank entries")
        return [u.strip() for u in v]


class ParseResponse(BaseModel):
    success: bool
    plan_parse_id: Optional[str] = Field(None, alias="planParseId")
    rooms: List[Any] = []
    line_item_scaffold: List[Any] = Field(default_factory=list, alias="lineItemScaffold")
    sheets: List[Any] = []
    sheets_detected: int = Field(0, alias="sheetsDetected")
    assumptions: List[str] = []
    warnings: List[str] = []
    missing_info: List[str] = Field(default_factory=list, alias="missingInfo")
    page_classifications: List[Any] = Field(default_factory=list, alias="pageClassifications")
    total_pages: int = Field(0, alias="totalPages")
    relevant_pages: List[int] = Field(default_factory=list, alias="relevantPages")
    processing_time_ms: int = Field(0, alias="processingTimeMs")
    error_code: Optional[str] = Field(None, alias="errorCode")

    class Config:
        populate_by_name = True


class JobQueuedResponse(BaseModel):
    job_id: str = Field(..., alias="jobId")
    status: str

    class Config:
        populate_by_name = True


class JobStatus(BaseModel):
    job_id: str = Field(..., alias="jobId")
    status: Literal["uploaded", "processing", "parsed", "failed"]
    result: Optional[Any] = None
    error_code: Optional[str] = Field(None, alias="errorCode")
    error: Optional[str] = None
    processing_time_ms: Optional[int] = Field(None, alias="processingTimeMs")

    class Config:
        populate_by_name = True


class ClientPageImage(BaseModel):
    page_number: int = Field(..., alias="pageNumber", gt=0)
    base64: str = Field(..., min_length=100)  # at least a tiny image

    class Config:
        populate_by_name = True


class VisionFallbackRequest(BaseModel):
    project_id: str = Field(..., alias="projectId", min_length=1)
    estimate_id: Optional[str] = Field(None, alias="estimateId")
    pages: List[ClientPageImage] = Field(..., min_length=1, max_length=5)

    class Config:
        populate_by_name = True


class VisionFallbackResponse(BaseModel):
    success: bool
    rooms: List[Any] = []
    assumptions: List[str] = []
    warnings: List[str] = []
    missing_info: List[str] = Field(default_factory=list, alias="missingInfo")

    class Config:
        populate_by_name = True
