"""
Common schema types used across the API.
"""

from typing import List, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response."""
    
    detail: str
    code: Optional[str] = None


class ForbiddenResponse(ErrorResponse):
    """Denied permission check, listing the permissions that were tried."""

    code: Optional[str] = "forbidden"
    required_permissions: List[str] = Field(default_factory=list)
