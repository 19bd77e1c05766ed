import logging
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, TypedDict

from proxbot.client import (
    POWER_ACTIONS,
    GuestLookup,
    GuestSummary,
    HostStatus,
    LookupOutcome,
    StatusClient,
)
from proxbot.formatting import (
    format_loadavg,
    format_uptime,
    fraction_to_percent,
    guest_field_name,
    guest_state_label,
    kind_label,
    usage_gb,
)


logger: logging.Logger = logging.getLogger(__name__)

CONNECTION_ERROR: str = "Could not connect to the Proxmox server!"
ACTION_VERBS = {"start": "Started", "stop": "Stopped", "reboot": "Rebooted"}


# ------------------------------
# Type definitions
# ------------------------------
class ResultKind(Enum):
    SUCCESS = "success"
    ERROR = "error"


class EmbedField(TypedDict):
    name: str
    value: str
    inline: bool


class CommandResult(NamedTuple):
    kind: ResultKind
    payload: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.kind is ResultKind.SUCCESS


class ControlState(Enum):
    IDLE = "idle"
    CONFIRMING_EXISTS = "confirming-exists"
    ISSUING = "issuing"
    DONE = "done"
    FAILED_UNSUPPORTED = "failed(unsupported-action)"
    FAILED_NOT_FOUND = "failed(not-found)"
    FAILED_LOOKUP = "failed(lookup-failed)"
    FAILED_REMOTE = "failed(remote-error)"


class ControlOutcome(NamedTuple):
    state: ControlState
    result: CommandResult


def success(
    title: str,
    message: Optional[str] = None,
    fields: Optional[List[EmbedField]] = None,
) -> CommandResult:
    payload: Dict[str, Any] = {"title": title}
    if message is not None:
        payload["message"] = message
    if fields is not None:
        payload["fields"] = fields
    return CommandResult(ResultKind.SUCCESS, payload)


def error(message: str, title: str = "Error") -> CommandResult:
    return CommandResult(ResultKind.ERROR, {"title": title, "message": message})


# ------------------------------
# Command dispatcher
# ------------------------------
class CommandDispatcher:
    """
    Turns chat commands into Proxmox REST calls and structured results.

    Handlers read fresh status on every call and never touch the presence or
    the reachability flag, which belong to the presence monitor. No handler
    lets an exception escape.
    """

    def __init__(self, client: StatusClient, host_label: str) -> None:
        self.client = client
        self.host_label = host_label

    async def dispatch(
        self,
        command_name: str,
        subcommand: Optional[str] = None,
        args: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        args = args or {}
        logger.info("Command received: %s %s %s", command_name, subcommand or "", args)
        try:
            if command_name == "hostinfo":
                return await self.host_info()
            if command_name == "vminfo":
                return await self.guest_info()
            if command_name == "vm":
                if subcommand not in POWER_ACTIONS:
                    return error(f"Unknown vm subcommand: {subcommand}")
                guest_id: Optional[str] = args.get("id")
                if not guest_id:
                    return error("A guest ID is required.")
                outcome: ControlOutcome = await self.guest_control(subcommand, guest_id)
                return outcome.result
            return error(f"Unknown command: {command_name}")
        except Exception as dispatch_error:
            logger.exception("Command %s failed", command_name)
            return error(str(dispatch_error))

    async def host_info(self) -> CommandResult:
        try:
            status: HostStatus = await self.client.fetch_host_status()
        except Exception as fetch_error:
            logger.error("hostinfo: failed to fetch host status: %s", fetch_error)
            return error(CONNECTION_ERROR)

        fields: List[EmbedField] = [
            {"name": "Memory Usage", "value": usage_gb(status["memory"]), "inline": True},
            {"name": "Swap Usage", "value": usage_gb(status["swap"]), "inline": True},
            {"name": "Uptime", "value": format_uptime(status["uptime"]), "inline": True},
            {
                "name": "CPU Usage",
                "value": f"{fraction_to_percent(status['cpu'])}%",
                "inline": True,
            },
            {
                "name": "Load Average",
                "value": format_loadavg(status["loadavg"]),
                "inline": True,
            },
            {
                "name": "IO Delay",
                "value": f"{fraction_to_percent(status['wait'])}%",
                "inline": True,
            },
            {"name": "Proxmox version", "value": status["pveversion"], "inline": False},
            {"name": "Kernel version", "value": status["kversion"], "inline": False},
        ]
        return success(f"Proxmox Status ({self.host_label})", fields=fields)

    async def guest_info(self) -> CommandResult:
        try:
            guests: List[GuestSummary] = await self.client.fetch_guests()
        except Exception as fetch_error:
            logger.error("vminfo: failed to fetch guests: %s", fetch_error)
            return error(CONNECTION_ERROR)

        if not guests:
            return success("Virtual Machines", message="No guests found.", fields=[])

        fields: List[EmbedField] = [
            {
                "name": guest_field_name(guest),
                "value": guest_state_label(guest),
                "inline": False,
            }
            for guest in guests
        ]
        return success("Virtual Machines", fields=fields)

    async def check_guest(self, guest_id: str) -> GuestLookup:
        return await self.client.lookup_guest(guest_id)

    async def guest_control(self, action: str, guest_id: str) -> ControlOutcome:
        state: ControlState = ControlState.IDLE
        guest_id = str(guest_id).strip()
        logger.debug("vm %s %s: %s", action, guest_id, state.value)
        if action not in POWER_ACTIONS:
            logger.warning("vm: unsupported action %s for %s", action, guest_id)
            return ControlOutcome(
                ControlState.FAILED_UNSUPPORTED,
                error(f"Unsupported action: {action}"),
            )

        state = ControlState.CONFIRMING_EXISTS
        logger.debug("vm %s %s: %s", action, guest_id, state.value)
        try:
            lookup: GuestLookup = await self.check_guest(guest_id)
        except Exception as lookup_error:
            lookup = GuestLookup(LookupOutcome.LOOKUP_FAILED, error=str(lookup_error))

        if lookup.outcome is LookupOutcome.NOT_FOUND:
            logger.info("vm %s: guest %s not found", action, guest_id)
            return ControlOutcome(
                ControlState.FAILED_NOT_FOUND,
                error(f"Guest {guest_id} was not found.", title="Not found"),
            )
        if lookup.outcome is LookupOutcome.LOOKUP_FAILED or lookup.guest is None:
            return ControlOutcome(
                ControlState.FAILED_LOOKUP,
                error(f"Could not verify guest {guest_id}: {lookup.error}"),
            )

        guest: GuestSummary = lookup.guest
        state = ControlState.ISSUING
        logger.debug("vm %s %s: %s", action, guest_id, state.value)
        try:
            await self.client.set_guest_power(
                lookup.node,
                guest["kind"],
                guest_id,
                action,
            )
        except Exception as power_error:
            logger.error("vm %s %s failed: %s", action, guest_id, power_error)
            return ControlOutcome(
                ControlState.FAILED_REMOTE,
                error(f"Failed to {action} guest {guest_id}: {power_error}"),
            )

        logger.info("vm %s issued for %s (%s)", action, guest_id, guest["name"])
        return ControlOutcome(
            ControlState.DONE,
            success(
                "Guest control",
                message=(
                    f"{ACTION_VERBS[action]} {kind_label(guest['kind'])} "
                    f"{guest['name']} (ID: {guest_id})."
                ),
            ),
        )
