from unittest.mock import MagicMock

import pytest

from proxbot.client import StatusClient


GIB = 1024 ** 3

NODE_STATUS = {
    "cpu": 0.1234,
    "memory": {"used": GIB, "total": int(1.5 * GIB), "free": int(0.5 * GIB)},
    "swap": {"used": 0, "total": 2 * GIB},
    "uptime": 90000,
    "loadavg": ["0.52", "0.41", "0.30"],
    "wait": 0.0056,
    "pveversion": "pve-manager/8.1.4/ec5affc9e41f1d79",
    "kversion": "Linux 6.5.11-8-pve #1 SMP PREEMPT_DYNAMIC",
}


@pytest.fixture
def fake_api():
    """A MagicMock shaped like a proxmoxer ProxmoxAPI with one node, one VM, one container."""
    api = MagicMock()
    api.nodes.get.return_value = [{"node": "pve"}]
    node = api.nodes.return_value
    node.status.get.return_value = dict(NODE_STATUS)
    node.qemu.get.return_value = [{"vmid": 100, "name": "web", "status": "running"}]
    node.lxc.get.return_value = [{"vmid": 200, "name": "dns", "status": "stopped"}]
    node.qemu.return_value.status.current.get.return_value = {
        "vmid": 100,
        "name": "web",
        "status": "running",
    }
    node.lxc.return_value.status.current.get.return_value = {
        "vmid": 200,
        "name": "dns",
        "status": "stopped",
    }
    return api


@pytest.fixture
def status_client(fake_api):
    return StatusClient(
        host="pve.local:8006",
        user="root@pam",
        password="secret",
        api_factory=lambda *args, **kwargs: fake_api,
    )
