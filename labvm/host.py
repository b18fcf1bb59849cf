"""Host prerequisite checks: privileges, required tools, and libvirtd."""

from __future__ import annotations

import os

from loguru import logger

from .errors import FatalPreconditionError
from .util import run_cmd, which

log = logger

# command -> package providing it (Fedora naming)
REQUIRED_CMDS = {
    'qemu-img': 'qemu-img',
    'virt-customize': 'libguestfs-tools',
    'virsh': 'libvirt-client',
}
OPTIONAL_CMDS = ['curl', 'ping', 'ip']


def check_commands() -> tuple[list[str], list[str]]:
    missing = [c for c in REQUIRED_CMDS if which(c) is None]
    missing_opt = [c for c in OPTIONAL_CMDS if which(c) is None]
    return missing, missing_opt


def require_commands() -> None:
    missing, _ = check_commands()
    if missing:
        pkgs = ' '.join(sorted({REQUIRED_CMDS[c] for c in missing}))
        raise FatalPreconditionError(
            f'Missing required tools: {", ".join(missing)}. '
            f'Install with: sudo dnf install {pkgs}'
        )
    log.info('All dependencies satisfied')


def require_root() -> None:
    if os.geteuid() != 0:
        raise FatalPreconditionError('This command must be run with sudo or as root')


def libvirtd_active() -> bool:
    res = run_cmd(
        ['systemctl', 'is-active', '--quiet', 'libvirtd'],
        check=False,
        capture=True,
        timeout=30,
    )
    return res.code == 0


def ensure_libvirtd() -> str:
    if libvirtd_active():
        log.info('libvirtd is running')
        return 'exists'
    log.warning('libvirtd is not running. Attempting to start...')
    run_cmd(
        ['systemctl', 'start', 'libvirtd'], check=False, capture=True, timeout=60
    )
    if not libvirtd_active():
        raise FatalPreconditionError('Failed to start libvirtd')
    return 'started'
