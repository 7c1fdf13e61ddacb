"""REST API for listing and managing stored notifications."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from chatline.domain.notifications.service import NotificationFanout
from chatline.domain.realtime.exceptions import AuthorizationError, NotFoundError, RealtimeError
from chatline.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_fanout(request: Request) -> NotificationFanout:
	return request.app.state.realtime.fanout


def _map_error(exc: RealtimeError) -> HTTPException:
	if isinstance(exc, NotFoundError):
		return HTTPException(status.HTTP_404_NOT_FOUND, detail="notification_not_found")
	if isinstance(exc, AuthorizationError):
		return HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)


@router.get("")
async def list_notifications(
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=20, ge=1, le=100),
	unread_only: bool = Query(default=False),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	fanout: NotificationFanout = Depends(get_fanout),
) -> dict:
	return await fanout.list_page(auth_user.id, page=page, limit=limit, unread_only=unread_only)


@router.get("/unread-count")
async def unread_count(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	fanout: NotificationFanout = Depends(get_fanout),
) -> dict:
	return {"unread_count": await fanout.unread_count(auth_user.id)}


@router.put("/mark-all-read")
async def mark_all_read(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	fanout: NotificationFanout = Depends(get_fanout),
) -> dict:
	updated = await fanout.mark_all_read(auth_user.id)
	return {"ok": True, "updated": updated}


@router.put("/{notification_id}/read")
async def mark_read(
	notification_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	fanout: NotificationFanout = Depends(get_fanout),
) -> dict:
	try:
		return await fanout.set_read(auth_user.id, notification_id, True)
	except (NotFoundError, AuthorizationError) as exc:
		raise _map_error(exc) from None


@router.put("/{notification_id}/unread")
async def mark_unread(
	notification_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	fanout: NotificationFanout = Depends(get_fanout),
) -> dict:
	try:
		return await fanout.set_read(auth_user.id, notification_id, False)
	except (NotFoundError, AuthorizationError) as exc:
		raise _map_error(exc) from None


# Registered ahead of /{notification_id} so "delete-read" is not taken as an id
@router.delete("/delete-read")
async def delete_read(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	fanout: NotificationFanout = Depends(get_fanout),
) -> dict:
	deleted = await fanout.delete_read(auth_user.id)
	return {"ok": True, "deleted": deleted}


@router.delete("/{notification_id}")
async def delete_notification(
	notification_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	fanout: NotificationFanout = Depends(get_fanout),
) -> dict:
	try:
		await fanout.delete(auth_user.id, notification_id)
	except (NotFoundError, AuthorizationError) as exc:
		raise _map_error(exc) from None
	return {"ok": True}
