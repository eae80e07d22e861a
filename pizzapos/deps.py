from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from pizzapos.db import get_db
from pizzapos.models.core import Tenant

# Authentication lives in front of this service; callers pass the already
# resolved tenant and user as headers.

def require_tenant(x_tenant_id: str | None = Header(default=None), db: Session = Depends(get_db)) -> str:
    if not x_tenant_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Tenant-ID header is required")
    if db.get(Tenant, x_tenant_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="tenant not found")
    return x_tenant_id

def current_actor(x_user_id: str | None = Header(default=None)) -> str | None:
    return x_user_id or None
