"""
Pydantic schemas for agency job endpoints.
"""
from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field


class AgencyJobCreate(BaseModel):
    """Schema for an agency posting a job for a client."""
    client_company_id: int = Field(..., description="Hiring (client) company ID")
    title: str = Field(..., description="Job title", min_length=1, max_length=255)
    category: Optional[str] = Field(None, description="Job category", max_length=100)
    location: Optional[str] = Field(None, description="Job location", max_length=255)

    class Config:
        json_schema_extra = {
            "example": {
                "client_company_id": 42,
                "title": "Senior Backend Engineer",
                "category": "engineering",
                "location": "Bengaluru"
            }
        }


class AgencyJobUpdate(BaseModel):
    """Schema for updating an agency-posted job."""
    title: Optional[str] = Field(None, description="Job title", min_length=1, max_length=255)
    category: Optional[str] = Field(None, description="Job category", max_length=100)
    location: Optional[str] = Field(None, description="Job location", max_length=255)
    status: Optional[str] = Field(
        None,
        description="Job status",
        pattern="^(active|closed)$"
    )


class JobResponse(BaseModel):
    """Job with its attribution fields."""
    id: int = Field(..., description="Job ID")
    company_id: int = Field(..., description="Owning (hiring) company ID")
    title: str = Field(..., description="Job title")
    category: Optional[str] = None
    location: Optional[str] = None
    status: str = Field(..., description="Job status")
    hiring_company_id: Optional[int] = Field(None, description="Hiring company")
    posted_by_agency_id: Optional[int] = Field(None, description="Posting agency, if agency-posted")
    is_agency_posted: bool = Field(..., description="Posted by an agency on behalf of the hiring company")
    authorization_id: Optional[int] = Field(None, description="Authorization that allowed the posting")
    created_at: datetime = Field(..., description="Job creation timestamp")
    updated_at: datetime = Field(..., description="Job last update timestamp")

    class Config:
        from_attributes = True


class JobPermissionResponse(BaseModel):
    """Current permissions of the posting agency on one job."""
    job_id: int
    authorization_id: Optional[int] = None
    permissions: Dict[str, bool] = Field(..., description="Action -> allowed")
    denials: Dict[str, Any] = Field(default_factory=dict, description="Action -> reason code for denied actions")
