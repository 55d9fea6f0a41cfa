"""
Caller identity for HTTP routes.

Authentication happens upstream; requests arrive with the resolved user id in
the X-User-Id header. The id must belong to a known user.
"""
from typing import Optional

from fastapi import Header, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool


async def get_current_user(
    request: Request,
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> dict:
    """
    Dependency returning {"user_id", "role"} for the caller.

    Raises:
        HTTPException 401 if the header is missing or the user is unknown
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    user = await run_in_threadpool(request.app.state.directory.get_user, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )
    return {"user_id": user["id"], "role": user["role"]}
