"""
Session administration API endpoints.

The store is read from ``app.state.session_store``, set by whoever wires the
application.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from sessionstore.core.schemas.session import (
    DestroySessionsRequest,
    SessionItem,
    SessionListResponse,
)
from sessionstore.core.session_store import SessionStore, StorageError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_session_store(request: Request) -> SessionStore:
    """Dependency returning the application's session store"""
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session store not configured",
        )
    return store


def _unavailable(action: str, error: StorageError) -> HTTPException:
    logger.error(f"Error {action}: {error}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Error {action}",
    )


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(store: SessionStore = Depends(get_session_store)) -> SessionListResponse:
    """
    List all active sessions.

    Sessions whose body is not a JSON object are skipped.
    """
    try:
        payloads = await store.all()
    except StorageError as e:
        raise _unavailable("listing sessions", e)

    sessions = [SessionItem.from_payload(p) for p in payloads if isinstance(p, dict)]
    return SessionListResponse(count=len(sessions), sessions=sessions)


@router.get("/sessions/{sid}", response_model=SessionItem)
async def get_session(sid: str, store: SessionStore = Depends(get_session_store)) -> SessionItem:
    """
    Get one active session.

    Args:
        sid: Session identifier

    Returns:
        The session body, 404 when absent or expired
    """
    try:
        payload = await store.get(sid)
    except StorageError as e:
        raise _unavailable("reading session", e)

    if payload is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return SessionItem(id=sid, data=payload if isinstance(payload, dict) else {"value": payload})


@router.delete("/sessions/{sid}", status_code=status.HTTP_204_NO_CONTENT)
async def destroy_session(sid: str, store: SessionStore = Depends(get_session_store)) -> Response:
    """Destroy one session. Unknown ids are not an error."""
    try:
        await store.destroy(sid)
    except StorageError as e:
        raise _unavailable("destroying session", e)
    logger.info("Session destroyed via API")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/destroy", status_code=status.HTTP_204_NO_CONTENT)
async def destroy_sessions(
    body: DestroySessionsRequest,
    store: SessionStore = Depends(get_session_store),
) -> Response:
    """Destroy several sessions at once."""
    try:
        await store.destroy(body.ids)
    except StorageError as e:
        raise _unavailable("destroying sessions", e)
    logger.info("Sessions destroyed via API", extra={"count": len(body.ids)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
