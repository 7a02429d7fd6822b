"""Customer models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

CustomerStatus = Literal["active", "inactive", "suspended"]
BillingTier = Literal["free", "basic", "professional", "enterprise"]


class UsageStatistics(BaseModel):
    total_projects: int = 0
    total_jobs: int = 0
    storage_used_bytes: int = 0
    records_generated: int = 0
    last_activity_at: Optional[datetime] = None


class ContactInfo(BaseModel):
    primary_contact_name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    address: Optional[str] = None


class SubscriptionDetails(BaseModel):
    plan: Optional[str] = None
    start_date: Optional[datetime] = None
    renewal_date: Optional[datetime] = None
    auto_renew: bool = False


class CustomerSettings(BaseModel):
    storage_quota_gb: int = Field(default=100, ge=0)
    max_projects: int = Field(default=5, ge=0)


class ServiceAccountRef(BaseModel):
    account_id: str
    email: str
    key_ref: Optional[str] = None
    key_id: Optional[str] = None
    created_at: datetime
    last_rotated_at: Optional[datetime] = None


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    status: CustomerStatus = "active"
    billing_tier: BillingTier = "free"
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    subscription_details: SubscriptionDetails = Field(default_factory=SubscriptionDetails)
    settings: CustomerSettings = Field(default_factory=CustomerSettings)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    status: Optional[CustomerStatus] = None
    billing_tier: Optional[BillingTier] = None
    contact_info: Optional[ContactInfo] = None
    subscription_details: Optional[SubscriptionDetails] = None
    settings: Optional[CustomerSettings] = None
    metadata: Optional[Dict[str, Any]] = None


class CustomerResponse(BaseModel):
    id: str
    name: str
    email: str
    status: CustomerStatus
    billing_tier: BillingTier
    usage_statistics: UsageStatistics = Field(default_factory=UsageStatistics)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    subscription_details: SubscriptionDetails = Field(default_factory=SubscriptionDetails)
    settings: CustomerSettings = Field(default_factory=CustomerSettings)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    service_account: Optional[ServiceAccountRef] = None
    created_at: datetime
    updated_at: datetime


class CursorPagination(BaseModel):
    has_more: bool
    next_cursor: Optional[str] = None
    count: int


class CustomerListResponse(BaseModel):
    customers: List[CustomerResponse]
    pagination: CursorPagination


class UsageUpdate(BaseModel):
    total_projects: Optional[int] = Field(default=None, ge=0)
    total_jobs: Optional[int] = Field(default=None, ge=0)
    storage_used_bytes: Optional[int] = Field(default=None, ge=0)
    records_generated: Optional[int] = Field(default=None, ge=0)


class CustomerUsageResponse(BaseModel):
    customer_id: str
    usage_statistics: UsageStatistics
    live: Dict[str, Any]


class AuditLogEntry(BaseModel):
    id: str
    customer_id: str
    action: str
    actor: str
    changes: Dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = None
    timestamp: datetime


class ServiceAccountKeyResponse(BaseModel):
    customer_id: str
    account_id: str
    key_ref: str
    key: Dict[str, Any]
