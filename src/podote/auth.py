from __future__ import annotations

from fastapi import HTTPException, Request, status

from .settings import get_settings


# PUBLIC_INTERFACE
def get_user_id_dependency():
    """
    Return a FastAPI dependency callable that resolves the acting user id.

    The id is read from the header named by settings.user_id_header
    (X-User-Id by default). It is trusted as-is: verifying who the caller is
    belongs to whatever gateway sits in front of this service.

    Behavior:
    - Header present and non-blank: the stripped value is returned.
    - Header missing or blank: raises 401.

    Usage:
        from .auth import get_user_id_dependency
        current_user_id = get_user_id_dependency()
        @router.get("/")
        def handler(user_id: str = Depends(current_user_id)) ...
    """
    header_name = get_settings().user_id_header

    async def _resolve(request: Request) -> str:
        """
        Resolve the acting user id from the request headers.

        Raises:
            HTTPException(401) if the header is missing or blank.
        """
        raw = request.headers.get(header_name)
        if raw is None or not raw.strip():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Missing {header_name} header",
            )
        return raw.strip()

    return _resolve
