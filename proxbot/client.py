import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, NamedTuple, Optional, TypedDict

import urllib3
from proxmoxer import ProxmoxAPI


logger: logging.Logger = logging.getLogger(__name__)

QEMU: str = "qemu"
LXC: str = "lxc"
GUEST_KINDS: tuple = (QEMU, LXC)
POWER_ACTIONS: tuple = ("start", "stop", "reboot")


# ------------------------------
# Type definitions
# ------------------------------
class UsageDict(TypedDict):
    used: int
    total: int


class HostStatus(TypedDict):
    node: str
    cpu: float
    memory: UsageDict
    swap: UsageDict
    uptime: int
    loadavg: List[float]
    wait: float
    pveversion: str
    kversion: str


class GuestSummary(TypedDict):
    vmid: str
    name: str
    kind: str
    status: str


class LookupOutcome(Enum):
    FOUND = "found"
    NOT_FOUND = "not-found"
    LOOKUP_FAILED = "lookup-failed"


class GuestLookup(NamedTuple):
    outcome: LookupOutcome
    node: Optional[str] = None
    guest: Optional[GuestSummary] = None
    error: Optional[str] = None


class ProxmoxError(Exception):
    pass


class NoNodesError(ProxmoxError):
    def __init__(self) -> None:
        super().__init__("Proxmox returned an empty node list")


# ------------------------------
# Payload parsing
# ------------------------------
def _usage(raw: Any) -> UsageDict:
    raw = raw or {}
    return {"used": int(raw.get("used", 0)), "total": int(raw.get("total", 0))}


def parse_host_status(node: str, raw: Dict[str, Any]) -> HostStatus:
    loadavg: List[float] = [float(value) for value in raw.get("loadavg", [])][:3]
    loadavg += [0.0] * (3 - len(loadavg))
    return {
        "node": node,
        "cpu": float(raw.get("cpu", 0.0)),
        "memory": _usage(raw.get("memory")),
        "swap": _usage(raw.get("swap")),
        "uptime": int(raw.get("uptime", 0)),
        "loadavg": loadavg,
        "wait": float(raw.get("wait", 0.0)),
        "pveversion": str(raw.get("pveversion", "N/A")),
        "kversion": str(raw.get("kversion", "N/A")),
    }


def parse_guest(kind: str, raw: Dict[str, Any]) -> GuestSummary:
    vmid: str = str(raw.get("vmid", ""))
    return {
        "vmid": vmid,
        "name": str(raw.get("name") or vmid),
        "kind": kind,
        "status": str(raw.get("status", "unknown")),
    }


# ------------------------------
# Proxmox session
# ------------------------------
class ProxmoxSession:
    """One authenticated REST session against the Proxmox API."""

    def __init__(self, api: Any) -> None:
        self.api = api

    def list_nodes(self) -> List[str]:
        return [str(entry["node"]) for entry in self.api.nodes.get()]

    def get_node_status(self, node: str) -> HostStatus:
        return parse_host_status(node, self.api.nodes(node).status.get())

    def list_guests(self, node: str, kind: str) -> List[GuestSummary]:
        guests = getattr(self.api.nodes(node), kind).get()
        return [parse_guest(kind, raw) for raw in guests]

    def get_guest_status(self, node: str, kind: str, guest_id: str) -> GuestSummary:
        raw = getattr(self.api.nodes(node), kind)(guest_id).status.current.get()
        guest: GuestSummary = parse_guest(kind, raw)
        if not guest["vmid"]:
            guest["vmid"] = str(guest_id)
        return guest

    def set_guest_power(self, node: str, kind: str, guest_id: str, action: str) -> Any:
        if action not in POWER_ACTIONS:
            raise ValueError(f"Unsupported power action: {action}")
        status_resource = getattr(self.api.nodes(node), kind)(guest_id).status
        return getattr(status_resource, action).post()

    def first_node(self) -> str:
        nodes: List[str] = self.list_nodes()
        if not nodes:
            raise NoNodesError()
        return nodes[0]


# ------------------------------
# Status client
# ------------------------------
class StatusClient:
    """
    Opens Proxmox sessions and runs the blocking REST calls off the event loop.

    Every public coroutine opens a fresh session, so concurrent callers never
    share connection state.
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        verify_ssl: bool = False,
        timeout: float = 10.0,
        api_factory: Callable[..., Any] = ProxmoxAPI,
    ) -> None:
        self.host = host
        self.user = user
        self.password = password
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.api_factory = api_factory

        if not self.verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def connect(self) -> ProxmoxSession:
        logger.debug("Opening Proxmox session to %s as %s", self.host, self.user)
        api = self.api_factory(
            self.host,
            user=self.user,
            password=self.password,
            verify_ssl=self.verify_ssl,
            timeout=self.timeout,
        )
        return ProxmoxSession(api)

    def _fetch_host_status_sync(self) -> HostStatus:
        session: ProxmoxSession = self.connect()
        return session.get_node_status(session.first_node())

    def _fetch_guests_sync(self) -> List[GuestSummary]:
        session: ProxmoxSession = self.connect()
        node: str = session.first_node()
        guests: List[GuestSummary] = []
        for kind in GUEST_KINDS:
            guests.extend(session.list_guests(node, kind))
        return guests

    def _lookup_guest_sync(self, guest_id: str) -> GuestLookup:
        try:
            session: ProxmoxSession = self.connect()
            node: str = session.first_node()
            for kind in GUEST_KINDS:
                for guest in session.list_guests(node, kind):
                    if guest["vmid"] == guest_id:
                        current: GuestSummary = session.get_guest_status(
                            node, kind, guest_id
                        )
                        return GuestLookup(LookupOutcome.FOUND, node=node, guest=current)
        except Exception as lookup_error:
            logger.warning("Failed to look up guest %s: %s", guest_id, lookup_error)
            return GuestLookup(LookupOutcome.LOOKUP_FAILED, error=str(lookup_error))
        return GuestLookup(LookupOutcome.NOT_FOUND)

    def _set_guest_power_sync(
        self, node: str, kind: str, guest_id: str, action: str
    ) -> Any:
        return self.connect().set_guest_power(node, kind, guest_id, action)

    async def fetch_host_status(self) -> HostStatus:
        return await asyncio.to_thread(self._fetch_host_status_sync)

    async def fetch_guests(self) -> List[GuestSummary]:
        return await asyncio.to_thread(self._fetch_guests_sync)

    async def lookup_guest(self, guest_id: str) -> GuestLookup:
        return await asyncio.to_thread(self._lookup_guest_sync, str(guest_id).strip())

    async def set_guest_power(
        self, node: str, kind: str, guest_id: str, action: str
    ) -> Any:
        return await asyncio.to_thread(
            self._set_guest_power_sync, node, kind, guest_id, action
        )
