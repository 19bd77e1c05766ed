from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from proxbot.client import LXC, QEMU, GuestSummary, HostStatus, UsageDict


KIND_LABELS = {QEMU: "QEMU", LXC: "LXC"}
RUNNING_LABEL: str = "Running ✅"
STOPPED_LABEL: str = "Stopped ❌"
OFFLINE_PRESENCE: str = "Proxmox offline!"


def two_decimals(value: float) -> str:
    """Round the exact float value to two places, ties away from zero."""
    return str(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def bytes_to_gb(value: float) -> str:
    return two_decimals(value / 1024 ** 3)


def fraction_to_percent(value: float) -> str:
    return two_decimals(value * 100)


def format_uptime(seconds: float) -> str:
    """Render uptime as "D days, HH:MM:SS" using plain integer arithmetic."""
    total: int = int(seconds)
    days: int = total // 86400
    hours: int = total % 86400 // 3600
    minutes: int = total % 3600 // 60
    secs: int = total % 60
    return f"{days} days, {hours:02d}:{minutes:02d}:{secs:02d}"


def format_loadavg(loadavg: Sequence[float]) -> str:
    return ", ".join(two_decimals(value) for value in loadavg)


def format_presence(status: HostStatus) -> str:
    return (
        f"CPU: {fraction_to_percent(status['cpu'])}% | "
        f"Mem: {bytes_to_gb(status['memory']['used'])}GB / "
        f"{bytes_to_gb(status['memory']['total'])}GB"
    )


def kind_label(kind: str) -> str:
    return KIND_LABELS.get(kind, kind.upper())


def guest_field_name(guest: GuestSummary) -> str:
    return f"{guest['name']} ({kind_label(guest['kind'])}) (ID: {guest['vmid']})"


def guest_state_label(guest: GuestSummary) -> str:
    return RUNNING_LABEL if guest["status"] == "running" else STOPPED_LABEL


def usage_gb(usage: UsageDict) -> str:
    return f"{bytes_to_gb(usage['used'])} / {bytes_to_gb(usage['total'])} GB"
