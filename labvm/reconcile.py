"""Lab workflows composed from the resource managers.

``create``, ``start`` and ``reset`` each probe live state first and only act
on what differs, so any of them can be re-run from an arbitrary partial state.
Order is fixed: base image, overlays and descriptors, network, then VM
registration and start. VMs are processed one at a time in declared order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from loguru import logger

from .config import GuestConfig, LabConfig
from .confirm import Confirm, deny_all
from .control import ControlPlaneClient
from .customize import CustomizationSpec, CustomizationTool
from .errors import CustomizationError, LabVMError
from .hosts import host_entries, read_entry_lines, write_hosts_local
from .images import ImageManager, ImageTool
from .net import NetworkManager
from .parse import DomainState, Lease, NetworkState
from .results import WorkflowResult
from .specs import NetworkSpec, VMSpec, build_network_spec, build_vm_specs
from .vm import Transition, VMLifecycleController

log = logger

RESET_SCOPES = ('full', 'vms-only')


@dataclass(frozen=True)
class Lab:
    """Everything the workflows need to know about the desired lab."""

    vms: tuple[VMSpec, ...]
    network: NetworkSpec
    base_image_src: Path
    base_image: Path
    vm_dir: Path
    guest: GuestConfig = field(default_factory=GuestConfig)
    hosts_local: Path | None = None

    @classmethod
    def from_config(cls, cfg: LabConfig) -> 'Lab':
        vms = build_vm_specs(cfg)
        return cls(
            vms=vms,
            network=build_network_spec(cfg, vms),
            base_image_src=Path(cfg.paths.base_image_src),
            base_image=Path(cfg.paths.base_image),
            vm_dir=Path(cfg.paths.vm_dir),
            guest=cfg.guest,
            hosts_local=Path(cfg.paths.hosts_local) if cfg.paths.hosts_local else None,
        )


@dataclass(frozen=True)
class VMStatus:
    name: str
    fqdn: str
    state: DomainState
    mac: str
    expected_ip: str
    lease_ip: str = ''
    overlay_exists: bool = False
    descriptor_exists: bool = False


@dataclass(frozen=True)
class LabStatus:
    network: NetworkSpec
    network_state: NetworkState
    autostart: bool
    leases: tuple[Lease, ...]
    vms: tuple[VMStatus, ...]
    base_image_exists: bool = False


class Reconciler:
    def __init__(
        self,
        lab: Lab,
        *,
        client: ControlPlaneClient,
        images: ImageManager,
        networks: NetworkManager,
        vms: VMLifecycleController,
        customizer: CustomizationTool,
        confirm: Confirm = deny_all,
    ) -> None:
        self.lab = lab
        self.client = client
        self.images = images
        self.networks = networks
        self.vms = vms
        self.customizer = customizer
        self.confirm = confirm

    @classmethod
    def from_config(
        cls,
        cfg: LabConfig,
        *,
        confirm: Confirm = deny_all,
        sudo: bool = False,
    ) -> 'Reconciler':
        client = ControlPlaneClient(
            cfg.control.uri, timeout_s=cfg.control.timeout_s, sudo=sudo
        )
        images = ImageManager(
            ImageTool(timeout_s=cfg.control.timeout_s),
            confirm=confirm,
            owner=cfg.image.owner,
            mode=cfg.image.mode,
        )
        return cls(
            Lab.from_config(cfg),
            client=client,
            images=images,
            networks=NetworkManager(client, confirm=confirm),
            vms=VMLifecycleController(client),
            customizer=CustomizationTool(timeout_s=cfg.control.customize_timeout_s),
            confirm=confirm,
        )

    def _customization_spec(self, spec: VMSpec) -> CustomizationSpec:
        guest = self.lab.guest
        return CustomizationSpec(
            hostname=spec.fqdn,
            timezone=guest.timezone,
            locale=guest.locale,
            user=guest.user,
            password=guest.password,
            keymap=guest.keymap,
            hosts_entries=tuple(host_entries(self.lab.vms)),
            selinux_relabel=guest.selinux_relabel,
        )

    @staticmethod
    def _record_transition(
        result: WorkflowResult, resource: str, t: Transition
    ) -> None:
        result.record(resource, t.action, t.state.value)
        if t.warning:
            result.warn(t.warning)

    def _customize(self, spec: VMSpec) -> None:
        try:
            self.customizer.apply(spec.overlay_path, self._customization_spec(spec))
        except CustomizationError:
            # An uncustomized overlay would be kept on the next run.
            log.error('Removing half-prepared overlay {}', spec.overlay_path)
            Path(spec.overlay_path).unlink(missing_ok=True)
            raise
        self.images.normalize(spec.overlay_path)

    def _sync_hosts_local(self, result: WorkflowResult) -> None:
        path = self.lab.hosts_local
        if path is None:
            return
        entries = host_entries(self.lab.vms)
        if path.exists() and read_entry_lines(path) == [e.line() for e in entries]:
            result.record('hosts-local', 'exists', str(path))
            return
        write_hosts_local(path, entries)
        result.record('hosts-local', 'rendered', str(path))

    def create(
        self,
        *,
        recreate_overlays: bool = False,
        recreate_network: bool = False,
    ) -> WorkflowResult:
        result = WorkflowResult('create')
        lab = self.lab
        action = self.images.ensure_base_image(lab.base_image_src, lab.base_image)
        result.record('base-image', action, str(lab.base_image))

        for spec in lab.vms:
            log.info('Setting up: {}', spec.name)
            action = self.images.create_overlay(spec, overwrite=recreate_overlays)
            result.record(f'overlay:{spec.name}', action, str(spec.overlay_path))
            if action == 'kept':
                result.warn(
                    f'Kept existing overlay for {spec.name}; customization skipped'
                )
            else:
                self._customize(spec)
                result.record(f'customize:{spec.name}', 'customized')
            action = self.vms.write_descriptor(spec, network_name=lab.network.name)
            result.record(f'descriptor:{spec.name}', action, str(spec.descriptor_path))

        action = self.networks.ensure_network(lab.network, recreate=recreate_network)
        result.record(f'network:{lab.network.name}', action)
        if recreate_network and action not in {'created', 'recreated'}:
            result.warn(f'Kept existing network {lab.network.name}')

        for spec in lab.vms:
            t = self.vms.register(spec)
            self._record_transition(result, f'domain:{spec.name}', t)

        self._sync_hosts_local(result)
        return result

    def start(self) -> WorkflowResult:
        result = WorkflowResult('start')
        action = self.networks.ensure_active(self.lab.network.name)
        result.record(f'network:{self.lab.network.name}', action)
        for spec in self.lab.vms:
            log.info('Processing: {}', spec.name)
            t = self.vms.register(spec)
            self._record_transition(result, f'domain:{spec.name}', t)
            t = self.vms.start(spec.name)
            self._record_transition(result, f'domain:{spec.name}', t)
        return result

    def _best_effort(
        self, result: WorkflowResult, resource: str, fn: Callable[[], object]
    ) -> None:
        try:
            out = fn()
        except (LabVMError, OSError) as ex:
            msg = f'{resource}: {ex}'
            log.warning('Teardown step failed, continuing: {}', msg)
            result.record(resource, 'failed', str(ex))
            result.warn(msg)
            return
        if isinstance(out, Transition):
            self._record_transition(result, resource, out)
        else:
            result.record(resource, str(out))

    def reset(
        self,
        *,
        scope: str = 'full',
        recreate: bool = True,
        recreate_network: bool = False,
    ) -> WorkflowResult:
        """Tear the lab down and optionally rebuild it.

        Teardown steps are independent: a failing step is recorded as a
        warning and the remaining steps still run, so the lab converges
        toward nothing defined even when resources are partially gone.
        """
        if scope not in RESET_SCOPES:
            raise ValueError(f'scope must be one of {RESET_SCOPES}, got {scope!r}')
        result = WorkflowResult('reset')
        names = ', '.join(s.name for s in self.lab.vms)
        what = f'Stop and undefine {names}, delete {self.lab.vm_dir}'
        if scope == 'full':
            what += f', remove network {self.lab.network.name}'
        if not self.confirm(f'{what}. All VM data will be lost. Continue?'):
            log.info('Aborted.')
            result.aborted = True
            return result

        for spec in self.lab.vms:
            self._best_effort(
                result, f'domain:{spec.name}', lambda n=spec.name: self.vms.stop(n)
            )
        for spec in self.lab.vms:
            self._best_effort(
                result,
                f'domain:{spec.name}',
                lambda n=spec.name: self.vms.undefine(n),
            )
        if scope == 'full':
            self._best_effort(
                result,
                f'network:{self.lab.network.name}',
                lambda: self.networks.teardown(self.lab.network.name),
            )
        self._best_effort(
            result,
            'vm-dir',
            lambda: self.images.remove_managed_dir(self.lab.vm_dir),
        )
        log.info('Lab environment destroyed')

        if recreate:
            log.info('Recreating lab environment')
            result.extend(self.create(recreate_network=recreate_network))
            result.extend(self.start())
        return result

    def status(self) -> LabStatus:
        net = self.lab.network
        net_state = self.client.network_state(net.name)
        leases: tuple[Lease, ...] = ()
        autostart = False
        if net_state is not NetworkState.NOT_DEFINED:
            autostart = self.client.network_autostart(net.name)
        if net_state is NetworkState.ACTIVE:
            leases = tuple(self.client.dhcp_leases(net.name))
        by_mac = {lease.mac: lease.ip for lease in leases}
        vms: list[VMStatus] = []
        for spec in self.lab.vms:
            state = self.client.domain_state(spec.name)
            macs = self.client.domain_macs(spec.name) if state.defined else []
            mac = macs[0] if macs else spec.mac_address
            vms.append(
                VMStatus(
                    name=spec.name,
                    fqdn=spec.fqdn,
                    state=state,
                    mac=mac,
                    expected_ip=spec.ip_address,
                    lease_ip=by_mac.get(mac, ''),
                    overlay_exists=Path(spec.overlay_path).exists(),
                    descriptor_exists=Path(spec.descriptor_path).exists(),
                )
            )
        return LabStatus(
            network=net,
            network_state=net_state,
            autostart=autostart,
            leases=leases,
            vms=tuple(vms),
            base_image_exists=self.lab.base_image.exists(),
        )
