"""Customer admin API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query

from syndata.admin.dependencies import require_admin
from syndata.customers.audit import AuditService
from syndata.customers.models import (
    AuditLogEntry,
    CursorPagination,
    CustomerCreate,
    CustomerListResponse,
    CustomerResponse,
    CustomerUpdate,
    CustomerUsageResponse,
    ServiceAccountKeyResponse,
    ServiceAccountRef,
    UsageUpdate,
)
from syndata.customers.service import CustomerService
from syndata.customers.service_accounts import ServiceAccountService

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.get("", response_model=CustomerListResponse)
async def list_customers(
    status: Optional[str] = Query(None, pattern="^(active|inactive|suspended)$"),
    billing_tier: Optional[str] = Query(None, pattern="^(free|basic|professional|enterprise)$"),
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None, description="Id of the last customer on the previous page"),
    sort: str = Query("created_at", pattern="^(created_at|updated_at|name)$"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    actor: str = Depends(require_admin),
):
    page = await CustomerService.list_customers(
        status=status, billing_tier=billing_tier, limit=limit, cursor=cursor, sort=sort, order=order
    )
    return CustomerListResponse(
        customers=page.items,
        pagination=CursorPagination(has_more=page.has_more, next_cursor=page.next_cursor, count=len(page.items)),
    )


@router.post("", response_model=CustomerResponse, status_code=201)
async def create_customer(body: CustomerCreate, actor: str = Depends(require_admin)):
    return await CustomerService.create_customer(body, actor)


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: str = Path(..., description="Customer ID"),
    actor: str = Depends(require_admin),
):
    return await CustomerService.get_customer(customer_id)


@router.patch("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    body: CustomerUpdate,
    customer_id: str = Path(..., description="Customer ID"),
    actor: str = Depends(require_admin),
):
    return await CustomerService.update_customer(customer_id, body, actor)


@router.delete("/{customer_id}", response_model=CustomerResponse)
async def delete_customer(
    customer_id: str = Path(..., description="Customer ID"),
    actor: str = Depends(require_admin),
):
    """Suspends the customer; records are kept."""
    return await CustomerService.delete_customer(customer_id, actor)


# ==================== Usage & audit ====================

@router.get("/{customer_id}/usage", response_model=CustomerUsageResponse)
async def get_customer_usage(
    customer_id: str = Path(..., description="Customer ID"),
    actor: str = Depends(require_admin),
):
    return await CustomerService.get_usage(customer_id)


@router.patch("/{customer_id}/usage", response_model=CustomerUsageResponse)
async def update_customer_usage(
    body: UsageUpdate,
    customer_id: str = Path(..., description="Customer ID"),
    actor: str = Depends(require_admin),
):
    return await CustomerService.update_usage(customer_id, body, actor)


@router.get("/{customer_id}/audit-log", response_model=List[AuditLogEntry])
async def get_audit_log(
    customer_id: str = Path(..., description="Customer ID"),
    limit: int = Query(50, ge=1, le=100),
    actor: str = Depends(require_admin),
):
    await CustomerService.get_customer(customer_id)
    return await AuditService.list_for_customer(customer_id, limit)


# ==================== Service account ====================

@router.get("/{customer_id}/service-account", response_model=ServiceAccountRef)
async def get_service_account(
    customer_id: str = Path(..., description="Customer ID"),
    actor: str = Depends(require_admin),
):
    return await ServiceAccountService.get_info(customer_id)


@router.post("/{customer_id}/service-account", response_model=ServiceAccountRef, status_code=201)
async def provision_service_account(
    customer_id: str = Path(..., description="Customer ID"),
    actor: str = Depends(require_admin),
):
    return await ServiceAccountService.provision(customer_id, actor)


@router.post("/{customer_id}/service-account/rotate", response_model=ServiceAccountRef)
async def rotate_service_account_key(
    customer_id: str = Path(..., description="Customer ID"),
    actor: str = Depends(require_admin),
):
    """Issue a new key, then revoke every older one."""
    return await ServiceAccountService.rotate(customer_id, actor)


@router.get("/{customer_id}/service-account/key", response_model=ServiceAccountKeyResponse)
async def get_service_account_key(
    customer_id: str = Path(..., description="Customer ID"),
    confirmed: bool = Query(False, description="Must be true"),
    reason: Optional[str] = Query(None, max_length=500, description="Why the key is needed (audited)"),
    actor: str = Depends(require_admin),
):
    """Return the raw key material. Every access is written to the audit log."""
    return await ServiceAccountService.get_key(customer_id, actor, confirmed, reason)


@router.delete("/{customer_id}/service-account")
async def delete_service_account(
    customer_id: str = Path(..., description="Customer ID"),
    actor: str = Depends(require_admin),
):
    await ServiceAccountService.delete(customer_id, actor)
    return {"success": True}
