# app/schemas/job.py
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Any, List


class SearchParams(BaseModel):
    """
    Echo of the parameters a job was triggered with.
    Filled best-effort from the delivered records when no trigger was seen.
    """

    model_config = ConfigDict(extra="allow")

    keyword: Optional[str] = None
    location: Optional[str] = None
    country: Optional[str] = None
    domain: Optional[str] = None
    companyUrls: Optional[List[str]] = None


class JobCounters(BaseModel):
    resultCount: int = 0


class JobMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    triggeredAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    processedAt: Optional[datetime] = None
    lastStatusUpdate: Optional[datetime] = None
    fixedAt: Optional[datetime] = None

    # Last delivery (completion, status-only or manual), verbatim
    webhookPayload: Optional[Any] = None

    error: Optional[str] = None


class JobRecord(BaseModel):
    """
    The only persisted entity: one triggered (or delivered) BrightData job.
    """

    batchId: str = Field(..., min_length=1, description="BrightData snapshot id")

    # triggered | completed | processed | anything the caller sends
    status: str = "completed"
    category: str = "unknown"

    results: List[Any] = Field(default_factory=list)
    searchParams: SearchParams = Field(default_factory=SearchParams)
    counters: JobCounters = Field(default_factory=JobCounters)
    metadata: JobMetadata = Field(default_factory=JobMetadata)

    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
