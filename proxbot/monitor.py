import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, Set, Union

from proxbot.client import HostStatus, StatusClient
from proxbot.formatting import OFFLINE_PRESENCE, format_presence


logger: logging.Logger = logging.getLogger(__name__)

ONLINE_MESSAGE: str = "The proxmox server is back online!"
OFFLINE_MESSAGE: str = "Proxmox server is offline!"

PresenceUpdater = Callable[[str, bool], Awaitable[None]]
OwnerNotifier = Callable[[str], Awaitable[None]]


class _Unavailable(Enum):
    UNAVAILABLE = "unavailable"


UNAVAILABLE = _Unavailable.UNAVAILABLE
PollResult = Union[HostStatus, _Unavailable]


class PollState:
    """Reachability flag carried between polls. Only the monitor writes it."""

    def __init__(self) -> None:
        self.host_reachable: bool = True


# ------------------------------
# Presence monitor
# ------------------------------
class PresenceMonitor:
    """
    Polls the Proxmox host, keeps the bot presence current and tells the
    owner when the host goes offline or comes back.

    The owner is notified exactly once per reachability transition. poll()
    never raises: failures resolve to the UNAVAILABLE sentinel.
    """

    def __init__(
        self,
        client: StatusClient,
        update_presence: PresenceUpdater,
        notify_owner: Optional[OwnerNotifier] = None,
    ) -> None:
        self.client = client
        self.update_presence = update_presence
        self.notify_owner = notify_owner

        self._state = PollState()
        self._in_flight: bool = False
        self._notifications: Set[asyncio.Task] = set()

    @property
    def reachable(self) -> bool:
        return self._state.host_reachable

    async def poll(self) -> PollResult:
        if self._in_flight:
            logger.debug("Previous poll still running, skipping this tick")
            return UNAVAILABLE

        self._in_flight = True
        try:
            return await self._poll_once()
        finally:
            self._in_flight = False

    async def _poll_once(self) -> PollResult:
        try:
            status: HostStatus = await self.client.fetch_host_status()
        except Exception as poll_error:
            logger.error("Failed to fetch Proxmox status: %s", poll_error)
            if self._state.host_reachable:
                self._state.host_reachable = False
                logger.warning("Proxmox host is now unreachable")
                self._send_notification(OFFLINE_MESSAGE)
            await self._set_presence(OFFLINE_PRESENCE, available=False)
            return UNAVAILABLE

        if not self._state.host_reachable:
            self._state.host_reachable = True
            logger.info("Proxmox host is reachable again")
            self._send_notification(ONLINE_MESSAGE)

        presence: str = format_presence(status)
        logger.debug("Poll succeeded for node %s: %s", status["node"], presence)
        await self._set_presence(presence, available=True)
        return status

    async def _set_presence(self, text: str, available: bool) -> None:
        try:
            await self.update_presence(text, available)
        except Exception as presence_error:
            logger.warning("Failed to update presence: %s", presence_error)

    def _send_notification(self, message: str) -> None:
        if self.notify_owner is None:
            return
        task: asyncio.Task = asyncio.create_task(self.notify_owner(message))
        self._notifications.add(task)
        task.add_done_callback(self._notification_done)

    def _notification_done(self, task: asyncio.Task) -> None:
        self._notifications.discard(task)
        if task.cancelled():
            return
        notify_error = task.exception()
        if notify_error is not None:
            logger.warning("Failed to notify owner: %s", notify_error)

    async def drain_notifications(self) -> None:
        """Wait for pending owner notifications (used on shutdown)."""
        if self._notifications:
            await asyncio.gather(*self._notifications, return_exceptions=True)
