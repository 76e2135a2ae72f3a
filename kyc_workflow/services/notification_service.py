"""
Notification fan-out.

Workflow operations call ``notify`` (and ``queue_email``) from inside a
state transition. Both only put an item on an in-process queue and never
raise. A dispatcher task started with the application drains the queue
and does the actual delivery: WebSocket pushes through the
``ConnectionManager`` and emails through ``email_service``. Delivery
failures are logged and dropped.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from fastapi import WebSocket

from kyc_workflow.schemas.enums import UserRole
from kyc_workflow.services.email_service import email_service

logger = logging.getLogger(__name__)

QUEUE_MAX_SIZE = 1000


class NotificationType(str, Enum):
    CONNECTION_ESTABLISHED = "CONNECTION_ESTABLISHED"
    NEW_USER_REGISTERED = "NEW_USER_REGISTERED"
    VERIFICATION_STATUS_UPDATE = "VERIFICATION_STATUS_UPDATE"
    USER_VERIFICATION_UPDATED = "USER_VERIFICATION_UPDATED"
    ROLE_UPDATED = "ROLE_UPDATED"
    USER_DELETED = "USER_DELETED"
    DOCUMENT_RECORD_UPDATED = "DOCUMENT_RECORD_UPDATED"
    VERIFICATION_RECORD_UPDATED = "VERIFICATION_RECORD_UPDATED"


class Broadcast(str, Enum):
    ADMINS = "admins"
    ALL = "all"


@dataclass
class NotificationEvent:
    type: NotificationType
    payload: Dict[str, Any]
    target_user_id: Optional[str] = None
    broadcast: Optional[Broadcast] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def message(self) -> Dict[str, Any]:
        return {"type": NotificationType(self.type).value, "data": self.payload, "timestamp": self.timestamp}


@dataclass
class EmailJob:
    to: str
    template_kind: str
    context: Dict[str, Any] = field(default_factory=dict)


class ConnectionManager:
    """Tracks open WebSockets per user and the subset belonging to admins."""

    def __init__(self):
        self.user_connections: Dict[str, Set[WebSocket]] = {}
        self.admin_connections: Set[WebSocket] = set()

    def connect(self, websocket: WebSocket, user_id: str, role: Optional[str]) -> None:
        self.user_connections.setdefault(str(user_id), set()).add(websocket)
        if role == UserRole.ADMIN.value:
            self.admin_connections.add(websocket)
        logger.info("WebSocket connected for user %s (role=%s)", user_id, role)

    def disconnect(self, websocket: WebSocket, user_id: str) -> None:
        sockets = self.user_connections.get(str(user_id))
        if sockets is not None:
            sockets.discard(websocket)
            if not sockets:
                self.user_connections.pop(str(user_id), None)
        self.admin_connections.discard(websocket)
        logger.info("WebSocket disconnected for user %s", user_id)

    def connection_count(self) -> int:
        return sum(len(s) for s in self.user_connections.values())

    async def _send(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning("Dropping notification for a closed socket: %s", e)
            return False

    async def _send_all(self, sockets: List[WebSocket], message: Dict[str, Any]) -> int:
        delivered = 0
        for websocket in sockets:
            if await self._send(websocket, message):
                delivered += 1
        return delivered

    async def send_to_user(self, user_id: str, message: Dict[str, Any]) -> int:
        return await self._send_all(list(self.user_connections.get(str(user_id), ())), message)

    async def send_to_admins(self, message: Dict[str, Any]) -> int:
        return await self._send_all(list(self.admin_connections), message)

    async def send_to_all(self, message: Dict[str, Any]) -> int:
        sockets = [ws for group in self.user_connections.values() for ws in group]
        return await self._send_all(sockets, message)

    async def deliver(self, event: NotificationEvent) -> int:
        message = event.message()
        if event.broadcast == Broadcast.ALL:
            return await self.send_to_all(message)
        if event.broadcast == Broadcast.ADMINS:
            return await self.send_to_admins(message)
        if event.target_user_id:
            return await self.send_to_user(event.target_user_id, message)
        logger.warning("Notification %s has no target; dropped", event.type)
        return 0


class NotificationService:
    def __init__(self, manager: Optional[ConnectionManager] = None):
        self.manager = manager or ConnectionManager()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_MAX_SIZE)
        self._task: Optional[asyncio.Task] = None

    def _enqueue(self, item: Union[NotificationEvent, EmailJob]) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.error("Notification queue full; dropping %s", item)
        except Exception as e:
            logger.error("Failed to enqueue notification: %s", e)

    def notify(self, event: NotificationEvent) -> None:
        self._enqueue(event)

    def notify_user(self, user_id: str, type: NotificationType, payload: Dict[str, Any]) -> None:
        self.notify(NotificationEvent(type=type, payload=payload, target_user_id=str(user_id)))

    def notify_admins(self, type: NotificationType, payload: Dict[str, Any]) -> None:
        self.notify(NotificationEvent(type=type, payload=payload, broadcast=Broadcast.ADMINS))

    def notify_all(self, type: NotificationType, payload: Dict[str, Any]) -> None:
        self.notify(NotificationEvent(type=type, payload=payload, broadcast=Broadcast.ALL))

    def queue_email(self, to: Optional[str], template_kind: str, context: Optional[Dict[str, Any]] = None) -> None:
        if not to:
            logger.warning("No recipient for %s email; skipped", template_kind)
            return
        self._enqueue(EmailJob(to=to, template_kind=template_kind, context=context or {}))

    def pending(self) -> int:
        return self._queue.qsize()

    async def _dispatch(self, item: Union[NotificationEvent, EmailJob]) -> None:
        try:
            if isinstance(item, EmailJob):
                result = await email_service.send(item.to, item.template_kind, item.context)
                if not result.success:
                    logger.error("Email %s to %s failed: %s", item.template_kind, item.to, result.error)
            else:
                await self.manager.deliver(item)
        except Exception as e:
            logger.error("Notification delivery failed: %s", e)

    async def drain(self) -> int:
        """Deliver everything currently queued and return how many items."""
        handled = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return handled
            await self._dispatch(item)
            self._queue.task_done()
            handled += 1

    async def _run(self) -> None:
        logger.info("Notification dispatcher started")
        while True:
            item = await self._queue.get()
            await self._dispatch(item)
            self._queue.task_done()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        # flush what the dispatcher did not get to
        await self.drain()
        logger.info("Notification dispatcher stopped")

    def reset(self) -> None:
        """Fresh queue and connection registry (used between tests)."""
        self._queue = asyncio.Queue(maxsize=QUEUE_MAX_SIZE)
        self.manager = ConnectionManager()
        self._task = None


notification_service = NotificationService()
