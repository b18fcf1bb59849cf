"""Virtual network lifecycle and its static DHCP reservation table."""

from __future__ import annotations

import ipaddress
from pathlib import Path

from loguru import logger

from .confirm import Confirm, deny_all
from .control import ControlPlaneClient
from .errors import FatalPreconditionError
from .parse import NetworkState
from .render import render_network
from .specs import NetworkSpec
from .util import CmdError, ensure_dir, run_cmd, which

log = logger


def _route_overlap(target_cidr: str, *, bridge: str = '') -> str | None:
    """Return an existing host route that overlaps ``target_cidr``."""
    if which('ip') is None:
        return None
    target = ipaddress.ip_network(target_cidr, strict=False)
    res = run_cmd(['ip', '-4', 'route', 'show'], check=False, capture=True)
    for line in res.stdout.splitlines():
        parts = line.split()
        if not parts or '/' not in parts[0]:
            continue
        if bridge and bridge in parts:
            continue
        try:
            n = ipaddress.ip_network(parts[0], strict=False)
        except ValueError:
            continue
        if target.overlaps(n) and str(n) != str(target):
            return str(n)
    return None


class NetworkManager:
    def __init__(
        self, client: ControlPlaneClient, *, confirm: Confirm = deny_all
    ) -> None:
        self.client = client
        self.confirm = confirm

    def state(self, name: str) -> NetworkState:
        return self.client.network_state(name)

    def write_descriptor(self, spec: NetworkSpec) -> Path:
        path = Path(spec.descriptor_path)
        ensure_dir(path.parent)
        path.write_text(render_network(spec), encoding='utf-8')
        return path

    def _define_and_start(self, spec: NetworkSpec) -> None:
        overlap = _route_overlap(spec.subnet_cidr, bridge=spec.bridge)
        if overlap:
            raise FatalPreconditionError(
                f'Subnet {spec.subnet_cidr} overlaps existing route {overlap}. '
                'Pick a different subnet.'
            )
        log.info('Creating lab network: {}', spec.name)
        path = self.write_descriptor(spec)
        self.client.define_network(path)
        self.client.start_network(spec.name)
        self.client.autostart_network(spec.name)
        log.info(
            'Network {} created and started (subnet={}, gateway={})',
            spec.name,
            spec.subnet_cidr,
            spec.gateway,
        )

    def ensure_network(self, spec: NetworkSpec, *, recreate: bool = False) -> str:
        """Converge the network toward defined and active.

        An existing definition is never replaced unless ``recreate`` is
        requested and the confirmation capability approves it; a manually
        tuned network that is merely inactive is started as-is.
        """
        state = self.state(spec.name)
        log.debug('Network {} state: {}', spec.name, state.value)
        if state is NetworkState.NOT_DEFINED:
            self._define_and_start(spec)
            return 'created'
        if recreate:
            if self.confirm(
                f'Recreate network {spec.name}? This will destroy and redefine it.'
            ):
                log.info('Removing existing network {}', spec.name)
                self.teardown(spec.name)
                self._define_and_start(spec)
                return 'recreated'
            log.warning('Keeping existing network {}', spec.name)
        if state is NetworkState.INACTIVE:
            log.info('Starting {} network', spec.name)
            self.client.start_network(spec.name)
            self._confirm_state(spec.name, NetworkState.ACTIVE)
            self._ensure_autostart(spec.name)
            return 'started'
        if self._ensure_autostart(spec.name):
            return 'autostarted'
        log.info('Network {} already active', spec.name)
        return 'exists'

    def ensure_active(self, name: str) -> str:
        state = self.state(name)
        if state is NetworkState.NOT_DEFINED:
            raise FatalPreconditionError(
                f"Lab network '{name}' not found. Run labvm create first."
            )
        if state is NetworkState.INACTIVE:
            log.info('Starting {} network', name)
            try:
                self.client.start_network(name)
            except CmdError as ex:
                raise FatalPreconditionError(
                    f"Lab network '{name}' could not be started: {ex}"
                ) from ex
            self._confirm_state(name, NetworkState.ACTIVE)
            self._ensure_autostart(name)
            return 'started'
        if self._ensure_autostart(name):
            return 'autostarted'
        log.info("Lab network '{}' is available", name)
        return 'exists'

    def teardown(self, name: str) -> str:
        state = self.state(name)
        if state is NetworkState.NOT_DEFINED:
            log.info('Network {} already absent', name)
            return 'absent'
        if state is NetworkState.ACTIVE:
            log.info('Stopping {}', name)
            self.client.destroy_network(name)
        log.info('Undefining {}', name)
        self.client.undefine_network(name)
        return 'removed'

    def _confirm_state(self, name: str, want: NetworkState) -> None:
        got = self.state(name)
        if got is not want:
            raise FatalPreconditionError(
                f'Network {name} is {got.value} after start (expected {want.value})'
            )

    def _ensure_autostart(self, name: str) -> bool:
        """Mark the network autostart if it is not yet; True when changed."""
        if self.client.network_autostart(name):
            return False
        log.info('Marking network {} autostart', name)
        self.client.autostart_network(name)
        return True
