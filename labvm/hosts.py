"""Hosts-table rendering and the managed block in the host's /etc/hosts."""

from __future__ import annotations

import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .errors import FatalPreconditionError
from .specs import VMSpec

log = logger

MARKER_START = '# BEGIN labvm'
MARKER_END = '# END labvm'


@dataclass(frozen=True)
class HostEntry:
    ip: str
    fqdn: str
    hostname: str

    def line(self) -> str:
        return f'{self.ip}   {self.fqdn} {self.hostname}'


def host_entries(vm_specs: tuple[VMSpec, ...]) -> list[HostEntry]:
    return [HostEntry(s.ip_address, s.fqdn, s.hostname) for s in vm_specs]


def render_guest_hosts(entries: list[HostEntry]) -> str:
    """Full /etc/hosts content installed inside each guest."""
    lines = [
        '127.0.0.1   localhost localhost.localdomain',
        '::1         localhost localhost.localdomain',
        '',
        '# Lab VMs',
    ]
    lines += [e.line() for e in entries]
    return '\n'.join(lines) + '\n'


def render_hosts_local(entries: list[HostEntry]) -> str:
    lines = [
        '# Lab VMs - add these entries to /etc/hosts on the host machine',
        f'# Generated by labvm on {time.strftime("%Y-%m-%d %H:%M:%S")}',
        '#',
        '# To add them: sudo labvm hosts add',
        '',
    ]
    lines += [e.line() for e in entries]
    return '\n'.join(lines) + '\n'


def write_hosts_local(path: Path, entries: list[HostEntry]) -> Path:
    path = Path(path)
    path.write_text(render_hosts_local(entries), encoding='utf-8')
    log.info('Created: {}', path)
    return path


def read_entry_lines(path: Path) -> list[str]:
    """Return the address lines of a hosts.local file."""
    path = Path(path)
    if not path.exists():
        raise FatalPreconditionError(
            f'hosts.local not found: {path}. Run labvm create first.'
        )
    text = path.read_text(encoding='utf-8')
    return [ln for ln in text.splitlines() if ln[:1].isdigit()]


def managed_block(text: str) -> list[str] | None:
    lines = text.splitlines()
    if MARKER_START not in lines:
        return None
    start = lines.index(MARKER_START)
    try:
        end = lines.index(MARKER_END, start)
    except ValueError:
        end = len(lines)
    return [ln for ln in lines[start + 1 : end] if ln[:1].isdigit()]


def strip_managed_block(text: str) -> str:
    out: list[str] = []
    inside = False
    for line in text.splitlines():
        if line == MARKER_START:
            inside = True
            continue
        if inside:
            if line == MARKER_END:
                inside = False
            continue
        out.append(line)
    while out and not out[-1].strip():
        out.pop()
    return '\n'.join(out) + '\n' if out else ''


def append_managed_block(text: str, entry_lines: list[str]) -> str:
    body = text if text.endswith('\n') or not text else text + '\n'
    block = [''] + [MARKER_START] + list(entry_lines) + [MARKER_END]
    return body + '\n'.join(block) + '\n'


def _backup(hosts_file: Path) -> Path:
    backup = hosts_file.with_name(
        f'{hosts_file.name}.bak.{time.strftime("%Y%m%d%H%M%S")}'
    )
    shutil.copy2(hosts_file, backup)
    log.info('Backup created: {}', backup)
    return backup


def add_entries(hosts_file: Path, hosts_local: Path) -> str:
    hosts_file = Path(hosts_file)
    entry_lines = read_entry_lines(hosts_local)
    text = hosts_file.read_text(encoding='utf-8')
    if managed_block(text) is not None:
        log.warning(
            'Lab entries already exist in {}; use update to refresh them', hosts_file
        )
        return 'exists'
    _backup(hosts_file)
    hosts_file.write_text(append_managed_block(text, entry_lines), encoding='utf-8')
    log.info('Entries added to {}', hosts_file)
    return 'created'


def remove_entries(hosts_file: Path) -> str:
    hosts_file = Path(hosts_file)
    text = hosts_file.read_text(encoding='utf-8')
    if managed_block(text) is None:
        log.warning('No lab entries found in {}', hosts_file)
        return 'absent'
    _backup(hosts_file)
    hosts_file.write_text(strip_managed_block(text), encoding='utf-8')
    log.info('Entries removed from {}', hosts_file)
    return 'removed'


def update_entries(hosts_file: Path, hosts_local: Path) -> str:
    hosts_file = Path(hosts_file)
    entry_lines = read_entry_lines(hosts_local)
    text = hosts_file.read_text(encoding='utf-8')
    if managed_block(text) is not None:
        _backup(hosts_file)
        text = strip_managed_block(text)
    hosts_file.write_text(append_managed_block(text, entry_lines), encoding='utf-8')
    log.info('Entries updated in {}', hosts_file)
    return 'updated'
