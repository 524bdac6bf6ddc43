"""Gateway authentication dependencies.

Token verification happens at the gateway in front of this service. The
gateway proves itself with a shared key and forwards the verified
principal as headers, which are turned into an :class:`Actor` here.
"""

from fastapi import Header, HTTPException, Request

from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.schemas import ErrorResponse
from compliance_engine.common.tenancy import Actor, ClientContext, UserRole


async def require_gateway_key(
    x_gateway_key: str = Header(..., alias="X-Gateway-Key"),
) -> str:
    """FastAPI dependency that validates the gateway key from header."""
    from compliance_engine.common.config import get_settings

    settings = get_settings()
    if x_gateway_key != settings.gateway_key:
        raise HTTPException(status_code=403, detail="Invalid gateway key")
    return x_gateway_key


async def resolve_actor(
    x_gateway_key: str = Header(..., alias="X-Gateway-Key"),
    x_actor_id: str = Header(..., alias="X-Actor-Id"),
    x_actor_organization: str = Header(..., alias="X-Actor-Organization"),
    x_actor_role: str = Header(..., alias="X-Actor-Role"),
) -> Actor:
    """FastAPI dependency that builds the acting principal from gateway headers."""
    await require_gateway_key(x_gateway_key)
    try:
        role = UserRole(x_actor_role)
    except ValueError:
        raise HTTPException(status_code=403, detail=f"Unknown role '{x_actor_role}'")
    if not x_actor_organization and role != UserRole.SUPER_ADMIN:
        raise HTTPException(status_code=403, detail="Actor organization is required")
    return Actor(
        user_id=x_actor_id,
        organization_id=x_actor_organization or None,
        role=role,
    )


async def client_context(request: Request) -> ClientContext:
    ip_address = request.client.host if request.client else None
    return ClientContext(
        ip_address=ip_address or "Unknown",
        user_agent=request.headers.get("user-agent") or "Unknown",
    )


def to_http_exception(exc: ComplianceError) -> HTTPException:
    """Translate a service error into the HTTP error envelope."""
    headers = {"Retry-After": "5"} if exc.status_code == 503 else None
    body = ErrorResponse(
        error=exc.__class__.__name__,
        code=exc.code,
        detail=exc.message,
    )
    return HTTPException(
        status_code=exc.status_code, detail=body.model_dump(), headers=headers,
    )
