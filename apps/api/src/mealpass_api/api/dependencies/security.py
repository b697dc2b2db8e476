from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Header, HTTPException, status

from mealpass_api.core.settings import settings


@dataclass(frozen=True)
class ScannerContext:
    """Identity of the staff device submitting scans."""

    scanner_id: str
    tenant_id: UUID | None
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return bool(self.role) and self.role.lower() in settings.admin_scanner_roles


async def require_scanner_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    if not settings.scanner_api_key:
        return

    if x_api_key != settings.scanner_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


async def require_scanner(
    scanner_id: str | None = Header(None, alias="X-Scanner-Id"),
    tenant_id: str | None = Header(None, alias="X-Tenant-Id"),
    role: str | None = Header(None, alias="X-Scanner-Role"),
) -> ScannerContext:
    """Resolve the scanning device from forwarded headers."""

    if not scanner_id or not scanner_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing scanner identity",
        )

    tenant_uuid: UUID | None = None
    if tenant_id:
        try:
            tenant_uuid = UUID(tenant_id)
        except ValueError as error:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid tenant identifier",
            ) from error

    return ScannerContext(scanner_id=scanner_id.strip(), tenant_id=tenant_uuid, role=role)
