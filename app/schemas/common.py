"""
Envelopes shared by the health and admin routes.
"""
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

ComponentStatus = Literal["healthy", "warning", "error"]

_SEVERITY = {"healthy": 0, "warning": 1, "error": 2}


class HealthResponse(BaseModel):
    """Schema for health check response."""
    success: bool = Field(..., description="Whether service is healthy")
    data: Dict[str, Any] = Field(..., description="Health check data")
    message: str = Field(..., description="Health check message")


class ComponentHealth(BaseModel):
    status: ComponentStatus
    detail: str = ""


class SystemHealthResponse(BaseModel):
    timestamp: str
    overall_status: ComponentStatus = "healthy"
    components: Dict[str, ComponentHealth] = Field(default_factory=dict)
    issues: List[str] = Field(default_factory=list)
    errors: Dict[str, Any] = Field(default_factory=dict, description="Error counters since startup")

    def add(self, name: str, status: ComponentStatus, detail: str = "", issue: Optional[str] = None) -> None:
        """Record a component; the worst component status becomes the overall status."""
        self.components[name] = ComponentHealth(status=status, detail=detail)
        if issue:
            self.issues.append(issue)
        if _SEVERITY[status] > _SEVERITY[self.overall_status]:
            self.overall_status = status
