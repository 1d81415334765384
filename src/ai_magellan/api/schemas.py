from typing import Literal, Optional

from pydantic import AnyHttpUrl, BaseModel, Field


class HealthCheckRequest(BaseModel):
    limit: Optional[int] = None


class ListingSubmit(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    url: AnyHttpUrl
    description: str = ""
    submitted_by: Optional[str] = None


class ListingModerate(BaseModel):
    status: Literal["pending", "approved", "rejected"]
