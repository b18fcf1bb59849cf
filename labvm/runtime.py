"""Runtime helpers for constructing virsh command arguments."""

from __future__ import annotations

LIBVIRT_URI = 'qemu:///system'


def virsh_system_cmd(*args: str, uri: str = LIBVIRT_URI) -> list[str]:
    return ['virsh', '-c', uri, *args]
