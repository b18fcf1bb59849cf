"""Typed wrapper over the libvirt control plane (virsh).

No reconciliation logic lives here: every method maps onto exactly one virsh
operation, runs it with an explicit timeout, and converts the output through
:mod:`labvm.parse`.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from .parse import (
    DomainState,
    Lease,
    NetworkState,
    is_not_found,
    parse_defined_name,
    parse_dhcp_leases,
    parse_domiflist_macs,
    parse_domstate,
    parse_net_autostart,
    parse_net_info,
)
from .runtime import LIBVIRT_URI, virsh_system_cmd
from .util import CmdError, CmdResult, run_cmd

log = logger


class ControlPlaneClient:
    """One logical connection to libvirt, addressed by URI."""

    def __init__(
        self,
        uri: str = LIBVIRT_URI,
        *,
        timeout_s: float = 60,
        sudo: bool = False,
    ) -> None:
        self.uri = uri
        self.timeout_s = timeout_s
        self.sudo = sudo
        self.mutation_count = 0

    def _virsh(self, *args: str, check: bool = True) -> CmdResult:
        return run_cmd(
            virsh_system_cmd(*args, uri=self.uri),
            sudo=self.sudo,
            check=check,
            capture=True,
            timeout=self.timeout_s,
        )

    def _mutate(self, *args: str) -> CmdResult:
        self.mutation_count += 1
        return self._virsh(*args, check=True)

    def ping(self) -> bool:
        return self._virsh('uri', check=False).code == 0

    # Domains

    def domain_state(self, name: str) -> DomainState:
        res = self._virsh('domstate', name, check=False)
        if res.code != 0:
            if is_not_found(res.stderr) or is_not_found(res.stdout):
                return DomainState.UNDEFINED
            raise CmdError(virsh_system_cmd('domstate', name, uri=self.uri), res)
        state = parse_domstate(res.stdout)
        if state is DomainState.OTHER:
            log.debug('Domain {} reported raw state {!r}', name, res.stdout.strip())
        return state

    def domain_macs(self, name: str) -> list[str]:
        res = self._virsh('domiflist', name, check=False)
        if res.code != 0:
            return []
        return parse_domiflist_macs(res.stdout)

    def define_domain(self, descriptor_path: Path) -> str:
        res = self._mutate('define', str(descriptor_path))
        return parse_defined_name(res.stdout) or Path(descriptor_path).stem

    def undefine_domain(self, name: str) -> None:
        self.mutation_count += 1
        # UEFI guests carry NVRAM that plain undefine refuses to drop.
        res = self._virsh('undefine', name, '--nvram', check=False)
        if res.code == 0:
            return
        self._virsh('undefine', name, check=True)

    def start_domain(self, name: str) -> None:
        self._mutate('start', name)

    def resume_domain(self, name: str) -> None:
        self._mutate('resume', name)

    def destroy_domain(self, name: str) -> None:
        self._mutate('destroy', name)

    # Networks

    def network_state(self, name: str) -> NetworkState:
        res = self._virsh('net-info', name, check=False)
        if res.code != 0:
            if is_not_found(res.stderr) or is_not_found(res.stdout):
                return NetworkState.NOT_DEFINED
            raise CmdError(virsh_system_cmd('net-info', name, uri=self.uri), res)
        return parse_net_info(res.stdout)

    def network_autostart(self, name: str) -> bool:
        res = self._virsh('net-info', name, check=False)
        return res.code == 0 and parse_net_autostart(res.stdout)

    def define_network(self, descriptor_path: Path) -> None:
        self._mutate('net-define', str(descriptor_path))

    def start_network(self, name: str) -> None:
        self._mutate('net-start', name)

    def autostart_network(self, name: str) -> None:
        self._mutate('net-autostart', name)

    def destroy_network(self, name: str) -> None:
        self._mutate('net-destroy', name)

    def undefine_network(self, name: str) -> None:
        self._mutate('net-undefine', name)

    def dhcp_leases(self, network_name: str) -> list[Lease]:
        res = self._virsh('net-dhcp-leases', network_name, check=False)
        if res.code != 0:
            return []
        return parse_dhcp_leases(res.stdout)
