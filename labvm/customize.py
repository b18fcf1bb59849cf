"""Guest image customization through virt-customize."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from .errors import CustomizationError
from .hosts import HostEntry, render_guest_hosts
from .util import CmdError, run_cmd

log = logger

# Fedora runs initial-setup on first boot unless these are removed.
_INITIAL_SETUP_UNITS = (
    '/etc/systemd/system/multi-user.target.wants/initial-setup.service',
    '/etc/systemd/system/graphical.target.wants/initial-setup.service',
    '/usr/lib/systemd/system/initial-setup.service',
    '/usr/lib/systemd/system/initial-setup-text.service',
)


@dataclass(frozen=True)
class CustomizationSpec:
    hostname: str
    timezone: str
    locale: str
    user: str
    password: str
    keymap: str = 'us'
    hosts_entries: tuple[HostEntry, ...] = field(default_factory=tuple)
    selinux_relabel: bool = True


def build_command(
    disk_path: Path, spec: CustomizationSpec, hosts_path: Path
) -> list[str]:
    if ':' in spec.user or '\n' in spec.password:
        raise CustomizationError(
            'Guest user must not contain ":" and password must not contain newlines.'
        )
    sudoers = f'/etc/sudoers.d/{spec.user}'
    cmd = [
        'virt-customize',
        '-a',
        str(disk_path),
        '--hostname',
        spec.hostname,
        '--timezone',
        spec.timezone,
        '--write',
        f'/etc/locale.conf:LANG={spec.locale}',
        '--write',
        f'/etc/vconsole.conf:KEYMAP={spec.keymap}',
        '--run-command',
        f'useradd -m -G wheel -s /bin/bash {spec.user} 2>/dev/null || true',
        '--password',
        f'{spec.user}:password:{spec.password}',
        '--write',
        f'{sudoers}:{spec.user} ALL=(ALL) NOPASSWD:ALL',
        '--run-command',
        f'chmod 440 {sudoers} && chown root:root {sudoers}',
        '--copy-in',
        f'{hosts_path}:/etc/',
        '--run-command',
        'chmod 644 /etc/hosts',
    ]
    for unit in _INITIAL_SETUP_UNITS:
        cmd += ['--run-command', f'rm -f {unit}']
    cmd += [
        '--run-command',
        'mkdir -p /etc/sysconfig && touch /etc/sysconfig/initial-setup-reconfiguration-complete',
        '--run-command',
        'mkdir -p /var/lib/initial-setup && touch /var/lib/initial-setup/state',
    ]
    if spec.selinux_relabel:
        cmd.append('--selinux-relabel')
    return cmd


class CustomizationTool:
    def __init__(self, *, timeout_s: float = 1800) -> None:
        self.timeout_s = timeout_s

    def apply(self, disk_path: Path, spec: CustomizationSpec) -> None:
        """Customize ``disk_path`` in one pass; raises on any failure."""
        log.info(
            'Customizing {} (hostname={}, user={}, locale={}, timezone={})',
            disk_path,
            spec.hostname,
            spec.user,
            spec.locale,
            spec.timezone,
        )
        with tempfile.TemporaryDirectory(prefix='labvm-') as tmp:
            hosts_path = Path(tmp) / 'hosts'
            hosts_path.write_text(
                render_guest_hosts(list(spec.hosts_entries)), encoding='utf-8'
            )
            cmd = build_command(disk_path, spec, hosts_path)
            try:
                run_cmd(cmd, check=True, capture=True, timeout=self.timeout_s)
            except CmdError as ex:
                raise CustomizationError(
                    f'virt-customize failed for {disk_path}: {ex}'
                ) from ex
        log.info('Customization complete for {}', disk_path)
