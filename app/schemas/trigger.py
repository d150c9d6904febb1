# app/schemas/trigger.py
from pydantic import BaseModel, Field
from typing import Optional, List, Literal

TriggerType = Literal["job_search", "linkedin_companies", "both_platforms"]


class TriggerRequest(BaseModel):
    """
    Unified trigger request.
    Handles ALL of:
    - keyword job search (single platform)
    - LinkedIn company lookup
    - LinkedIn + Indeed job search at once
    """

    type: Optional[TriggerType] = Field(
        None,
        description="Inferred from the body when omitted"
    )

    # -------------------------
    # Job search
    # -------------------------
    keyword: Optional[str] = None
    location: Optional[str] = None
    country: Optional[str] = None

    # -------------------------
    # Company lookup
    # -------------------------
    companyUrls: Optional[List[str]] = Field(
        None,
        description="LinkedIn company page URLs"
    )

    def trigger_type(self) -> str:
        """
        Helper to detect trigger type.
        """
        if self.type:
            return self.type
        if self.companyUrls is not None:
            return "linkedin_companies"
        return "job_search"


class SnapshotSaveRequest(BaseModel):
    """
    Manual save of a delivery copied from elsewhere (e.g. a webhook inspector).
    """

    batchId: str = Field(..., min_length=1)
    data: dict
    saveToStore: bool = True
