"""Rendering of lab status plus optional connectivity probes."""

from __future__ import annotations

import socket
from dataclasses import dataclass

from .parse import DomainState, NetworkState
from .reconcile import LabStatus, VMStatus
from .util import run_cmd, which


@dataclass(frozen=True)
class ProbeOutcome:
    ok: bool | None
    detail: str
    diag: str = ''


def status_line(ok: bool | None, label: str, detail: str = '') -> str:
    icon = '✅' if ok is True else ('➖' if ok is None else '❌')
    suffix = f' - {detail}' if detail else ''
    return f'{icon} {label}{suffix}'


def probe_ping(ip: str) -> ProbeOutcome:
    if not ip:
        return ProbeOutcome(None, 'unknown')
    if which('ping') is None:
        return ProbeOutcome(None, 'ping unavailable')
    res = run_cmd(
        ['ping', '-c', '1', '-W', '1', ip], check=False, capture=True, timeout=5
    )
    if res.code == 0:
        return ProbeOutcome(True, 'reachable')
    return ProbeOutcome(False, 'unreachable', (res.stderr or res.stdout).strip())


def probe_ssh_port(ip: str, *, port: int = 22, timeout: float = 2.0) -> ProbeOutcome:
    if not ip:
        return ProbeOutcome(None, 'unknown')
    try:
        with socket.create_connection((ip, port), timeout=timeout):
            return ProbeOutcome(True, 'open')
    except OSError as ex:
        return ProbeOutcome(False, 'closed', str(ex))


def _network_outcome(st: LabStatus) -> ProbeOutcome:
    name = st.network.name
    if st.network_state is NetworkState.ACTIVE:
        return ProbeOutcome(
            True, f'{name} active (autostart={"yes" if st.autostart else "no"})'
        )
    if st.network_state is NetworkState.INACTIVE:
        return ProbeOutcome(
            False, f'{name} defined but not running (run: labvm start)'
        )
    return ProbeOutcome(False, f'{name} not defined (run: labvm create)')


def _vm_outcome(vm: VMStatus) -> ProbeOutcome:
    if vm.state is DomainState.RUNNING:
        return ProbeOutcome(True, 'running')
    if vm.state is DomainState.UNDEFINED:
        return ProbeOutcome(False, 'not defined')
    if vm.state is DomainState.SHUT_OFF:
        return ProbeOutcome(False, 'shut off')
    return ProbeOutcome(None, vm.state.value)


def _vm_ip(vm: VMStatus) -> str:
    if vm.state is not DomainState.RUNNING:
        return '-'
    if vm.lease_ip:
        return vm.lease_ip
    return f'{vm.expected_ip} (expected)'


def render_status(st: LabStatus, *, probe: bool = False) -> str:
    net = st.network
    lines: list[str] = ['Virtual Network']
    lines.append(f'  Network Name : {net.name}')
    lines.append(f'  Subnet       : {net.subnet_cidr}')
    lines.append(f'  Gateway      : {net.gateway}')
    lines.append(f'  Domain       : {net.domain_suffix}')
    out = _network_outcome(st)
    lines.append('  ' + status_line(out.ok, 'Status', out.detail))
    lines.append(
        '  '
        + status_line(
            st.base_image_exists,
            'Base image',
            '' if st.base_image_exists else 'missing (run: labvm create)',
        )
    )
    if st.network_state is NetworkState.ACTIVE:
        lines.append('')
        lines.append('DHCP Leases')
        if st.leases:
            for lease in st.leases:
                lines.append(
                    f'  {lease.mac}  {lease.ip:<16} {lease.hostname or "-"}'
                )
        else:
            lines.append('  No active DHCP leases')

    lines.append('')
    lines.append('Virtual Machines')
    lines.append(f'  {"VM Name":<15} {"State":<16} {"IP Address":<28} Hostname')
    for vm in st.vms:
        out = _vm_outcome(vm)
        state = status_line(out.ok, out.detail)
        lines.append(f'  {vm.name:<15} {state:<16} {_vm_ip(vm):<28} {vm.fqdn}')
        if not vm.overlay_exists or not vm.descriptor_exists:
            missing = [
                label
                for label, ok in (
                    ('overlay', vm.overlay_exists),
                    ('descriptor', vm.descriptor_exists),
                )
                if not ok
            ]
            lines.append(f'    missing: {", ".join(missing)}')

    running = [vm for vm in st.vms if vm.state is DomainState.RUNNING]
    if probe and running:
        lines.append('')
        lines.append('Connectivity')
        for vm in running:
            ping = probe_ping(vm.expected_ip)
            ssh = probe_ssh_port(vm.expected_ip)
            lines.append(
                f'  {vm.name:<15} {vm.expected_ip:<16} '
                f'{status_line(ping.ok, "ping", ping.detail)}  '
                f'{status_line(ssh.ok, "ssh", ssh.detail)}'
            )
    return '\n'.join(lines)
