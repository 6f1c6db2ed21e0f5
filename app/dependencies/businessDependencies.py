from typing import Annotated
from fastapi import Depends, Request, HTTPException, status
from uuid import UUID


def get_business_id(request: Request) -> UUID:
    """Extract business_id from request state set by TenantMiddleware"""
    if not hasattr(request.state, 'business_id'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Business context not found. Ensure X-Business-ID header is provided."
        )
    return request.state.business_id


BusinessId = Annotated[UUID, Depends(get_business_id)]
