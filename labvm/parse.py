"""Adapters that turn human-readable virsh output into structured values.

This is the only module that inspects virsh text. Everything above the
control plane client works with :class:`DomainState`, :class:`NetworkState`
and :class:`Lease`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

_MAC_RE = re.compile(r'\b((?:[0-9a-f]{2}:){5}[0-9a-f]{2})\b', re.IGNORECASE)
_DEFINED_RE = re.compile(
    r"\b(?:domain|network)\s+'?([^'\s]+)'?\s+defined", re.IGNORECASE
)

_NOT_FOUND_MARKERS = (
    'domain not found',
    'network not found',
    'no domain with matching',
    'no network with matching',
    'failed to get domain',
    'failed to get network',
)


class DomainState(Enum):
    UNDEFINED = 'undefined'
    SHUT_OFF = 'shut off'
    PAUSED = 'paused'
    RUNNING = 'running'
    OTHER = 'other'

    @property
    def defined(self) -> bool:
        return self is not DomainState.UNDEFINED


class NetworkState(Enum):
    NOT_DEFINED = 'not defined'
    INACTIVE = 'inactive'
    ACTIVE = 'active'


@dataclass(frozen=True)
class Lease:
    mac: str
    ip: str
    hostname: str = ''


def is_not_found(text: str) -> bool:
    low = (text or '').lower()
    return any(marker in low for marker in _NOT_FOUND_MARKERS)


def parse_domstate(text: str) -> DomainState:
    """Map ``virsh domstate`` output onto :class:`DomainState`.

    Example:
        >>> parse_domstate('shut off\\n\\n')
        <DomainState.SHUT_OFF: 'shut off'>
        >>> parse_domstate('in shutdown')
        <DomainState.OTHER: 'other'>
    """
    raw = (text or '').strip().splitlines()
    state = raw[0].strip().lower() if raw else ''
    if state in {'running', 'idle', 'blocked'}:
        return DomainState.RUNNING
    if state == 'paused':
        return DomainState.PAUSED
    if state == 'shut off':
        return DomainState.SHUT_OFF
    return DomainState.OTHER


def parse_net_info(text: str) -> NetworkState:
    active = False
    for line in (text or '').splitlines():
        if ':' not in line:
            continue
        key, val = [x.strip().lower() for x in line.split(':', 1)]
        if key == 'active':
            active = val == 'yes'
    return NetworkState.ACTIVE if active else NetworkState.INACTIVE


def parse_net_autostart(text: str) -> bool:
    for line in (text or '').splitlines():
        if ':' not in line:
            continue
        key, val = [x.strip().lower() for x in line.split(':', 1)]
        if key == 'autostart':
            return val == 'yes'
    return False


def parse_dhcp_leases(text: str) -> list[Lease]:
    leases: list[Lease] = []
    for line in (text or '').splitlines():
        m = _MAC_RE.search(line)
        if not m:
            continue
        parts = line.split()
        ip = ''
        hostname = ''
        for idx, part in enumerate(parts):
            if '/' in part and '.' in part:
                ip = part.split('/')[0]
                if idx + 1 < len(parts) and parts[idx + 1] != '-':
                    hostname = parts[idx + 1]
                break
        if ip:
            leases.append(Lease(mac=m.group(1).lower(), ip=ip, hostname=hostname))
    return leases


def parse_domiflist_macs(text: str) -> list[str]:
    return [m.group(1).lower() for m in _MAC_RE.finditer(text or '')]


def parse_defined_name(text: str) -> str:
    """Name reported by ``virsh define`` / ``virsh net-define``.

    Example:
        >>> parse_defined_name("Domain 'FedoraLab1' defined from /x/FedoraLab1.xml")
        'FedoraLab1'
    """
    m = _DEFINED_RE.search(text or '')
    return m.group(1) if m else ''
