"""
Credential and report models exchanged with external collaborators.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Credentials(BaseModel):
    """
    Bearer credentials returned by the Token & Credential service.

    Attributes:
        user_id: Subject the credentials belong to
        access_token: Bearer token used for report fetches
        refresh_token: Token used by the credential service to refresh
        created_at: When the credentials were issued
        expires_at: When the access token expires, if known
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    user_id: str
    access_token: str = Field(..., min_length=1)
    refresh_token: str = ""
    created_at: datetime | None = None
    expires_at: datetime | None = None


class DateRange(BaseModel):
    start_date: str = "30daysAgo"
    end_date: str = "today"


class ReportHeader(BaseModel):
    name: str
    display_name: str = ""
    type: str = ""


class TabularReport(BaseModel):
    """
    Tabular result of a report fetch. Rows hold dimension values and metric
    values positionally aligned with the headers.
    """

    model_config = ConfigDict(extra="ignore")

    dimension_headers: list[ReportHeader] = Field(default_factory=list)
    metric_headers: list[ReportHeader] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
