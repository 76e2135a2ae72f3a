import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from kyc_workflow.core.security import decode_token
from kyc_workflow.schemas.enums import UserRole
from kyc_workflow.services.auth_service import auth_service
from kyc_workflow.services.notification_service import NotificationEvent, NotificationType, notification_service

router = APIRouter(tags=["Notifications"])

logger = logging.getLogger(__name__)


async def _authenticate(token: str):
    payload = decode_token(token) if token else None
    if not payload or not payload.get("sub"):
        return None
    user = await auth_service.get_user_by_email(payload["sub"])
    if user is None or not user.get("is_active", True):
        return None
    return user


# Pushes workflow notifications to the connected user (and to admins)
@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, token: str = Query(default="")):
    user = await _authenticate(token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    manager = notification_service.manager
    manager.connect(websocket, user["id"], user["role"])
    await websocket.send_json(NotificationEvent(
        type=NotificationType.CONNECTION_ESTABLISHED,
        payload={"user_id": user["id"], "role": user["role"]},
        target_user_id=user["id"],
    ).message())

    try:
        while True:
            message = await websocket.receive_json()
            kind = message.get("type") if isinstance(message, dict) else None
            if kind == "PING":
                await websocket.send_json({"type": "PONG"})
            elif kind == "SUBSCRIBE_VERIFICATIONS":
                if user["role"] == UserRole.ADMIN.value:
                    await websocket.send_json({"type": "SUBSCRIBED", "data": {"channel": "verifications"}})
                else:
                    await websocket.send_json({"type": "ERROR", "data": {"message": "Admin role required"}})
            else:
                logger.debug("Ignoring WebSocket message from %s: %s", user["id"], kind)
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        # receive_json on a non-JSON frame
        logger.warning("Closing WebSocket for %s after bad frame: %s", user["id"], e)
        await websocket.close(code=status.WS_1003_UNSUPPORTED_DATA)
    finally:
        manager.disconnect(websocket, user["id"])
