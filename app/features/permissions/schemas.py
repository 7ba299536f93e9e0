"""
Pydantic schemas for the permission API.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


def _lowercase_name(v: str) -> str:
    v = v.strip().lower()
    if not v.replace("_", "").replace("-", "").isalnum():
        raise ValueError("must contain only alphanumeric characters, underscores, and hyphens")
    return v


# ============================================================================
# Catalog
# ============================================================================

class PermissionResponse(BaseModel):
    key: str
    module: str
    action: str


class TemplateResponse(BaseModel):
    name: str
    actions: List[str]


# ============================================================================
# Checks
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking whether the caller holds a permission."""
    module: str = Field(..., min_length=1, max_length=50)
    action: str = Field(..., min_length=1, max_length=50)


class PermissionCheckResponse(BaseModel):
    module: str
    action: str
    allowed: bool


class EffectivePermissionsResponse(BaseModel):
    """Every permission the caller currently satisfies."""
    user_id: str
    role: str
    is_superadmin: bool
    permissions: List[str] = []


# ============================================================================
# Role grants
# ============================================================================

class RoleGrantRequest(BaseModel):
    """
    Schema for granting or revoking a permission on a role.

    The role is stored exactly as given, matching User.role and the
    /roles/{role} routes.
    """
    role: str = Field(..., min_length=1, max_length=50)
    module: str = Field(..., min_length=1, max_length=50)
    action: str = Field(..., min_length=1, max_length=50)
    granted: bool


class RoleGrantResponse(BaseModel):
    """Result of a role grant write: the role and canonical key stored."""
    ok: bool = True
    role: str
    key: str


class RoleGrantsResponse(BaseModel):
    role: str
    permissions: List[str] = []


# ============================================================================
# User overrides
# ============================================================================

class UserOverrideRequest(BaseModel):
    """Schema for setting a per-user grant or revoke."""
    module: str = Field(..., min_length=1, max_length=50)
    action: str = Field(..., min_length=1, max_length=50)
    granted: bool


class UserOverridesResponse(BaseModel):
    user_id: str
    overrides: Dict[str, bool] = {}


class MutationResponse(BaseModel):
    """Result of a single grant/override write; key is the canonical key stored."""
    ok: bool = True
    key: str


# ============================================================================
# Templates
# ============================================================================

class ApplyTemplateRequest(BaseModel):
    template: str = Field(..., min_length=1, max_length=50)

    @field_validator("template")
    @classmethod
    def template_format(cls, v: str) -> str:
        return _lowercase_name(v)


class TemplateFailureResponse(BaseModel):
    key: str
    error: str


class TemplateReportResponse(BaseModel):
    """
    Outcome of a template application.

    A non-empty failed list means the role is in a mixed state; fetch
    GET /permissions/roles/{role}?fresh=true to see what was stored.
    """
    role: str
    template: str
    succeeded: List[str] = []
    failed: List[TemplateFailureResponse] = []

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    id: str
    actor_id: Optional[str]
    action: str
    subject_type: str
    subject_id: str
    details: Optional[Dict[str, Any]]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
