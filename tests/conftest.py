"""In-memory stand-ins for libvirt and the disk tools used by workflow tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from labvm.config import LabConfig
from labvm.confirm import deny_all
from labvm.errors import CustomizationError
from labvm.images import ImageManager
from labvm.net import NetworkManager
from labvm.parse import DomainState, Lease, NetworkState
from labvm.reconcile import Lab, Reconciler
from labvm.util import CmdError, CmdResult
from labvm.vm import VMLifecycleController


class FakeControlPlane:
    """Tracks domain and network state the way libvirt would."""

    def __init__(self) -> None:
        self.domains: dict[str, DomainState] = {}
        self.networks: dict[str, NetworkState] = {}
        self.autostart: set[str] = set()
        self.leases: list[Lease] = []
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[tuple[str, str]] = set()
        self.mutation_count = 0

    def _mutate(self, op: str, target: str) -> None:
        self.mutation_count += 1
        self.calls.append((op, target))
        if (op, target) in self.fail_on:
            raise CmdError(['virsh', op, target], CmdResult(1, '', f'{op} failed'))

    def domain_state(self, name: str) -> DomainState:
        return self.domains.get(name, DomainState.UNDEFINED)

    def domain_macs(self, name: str) -> list[str]:
        return []

    def define_domain(self, descriptor_path: Path) -> str:
        name = Path(descriptor_path).stem
        self._mutate('define', name)
        self.domains.setdefault(name, DomainState.SHUT_OFF)
        return name

    def undefine_domain(self, name: str) -> None:
        self._mutate('undefine', name)
        self.domains.pop(name, None)

    def start_domain(self, name: str) -> None:
        self._mutate('start', name)
        self.domains[name] = DomainState.RUNNING

    def resume_domain(self, name: str) -> None:
        self._mutate('resume', name)
        self.domains[name] = DomainState.RUNNING

    def destroy_domain(self, name: str) -> None:
        self._mutate('destroy', name)
        self.domains[name] = DomainState.SHUT_OFF

    def network_state(self, name: str) -> NetworkState:
        return self.networks.get(name, NetworkState.NOT_DEFINED)

    def network_autostart(self, name: str) -> bool:
        return name in self.autostart

    def define_network(self, descriptor_path: Path) -> None:
        name = Path(descriptor_path).stem
        self._mutate('net-define', name)
        self.networks.setdefault(name, NetworkState.INACTIVE)

    def start_network(self, name: str) -> None:
        self._mutate('net-start', name)
        self.networks[name] = NetworkState.ACTIVE

    def autostart_network(self, name: str) -> None:
        self._mutate('net-autostart', name)
        self.autostart.add(name)

    def destroy_network(self, name: str) -> None:
        self._mutate('net-destroy', name)
        self.networks[name] = NetworkState.INACTIVE

    def undefine_network(self, name: str) -> None:
        self._mutate('net-undefine', name)
        self.networks.pop(name, None)
        self.autostart.discard(name)

    def dhcp_leases(self, network_name: str) -> list[Lease]:
        return list(self.leases)


class FakeImageTool:
    def __init__(self) -> None:
        self.overlays: list[Path] = []
        self.owned: list[Path] = []

    def create_overlay(self, base_path: Path, overlay_path: Path) -> None:
        self.overlays.append(Path(overlay_path))
        Path(overlay_path).write_text(f'backing={base_path}', encoding='utf-8')

    def set_ownership(self, path: Path, *, owner: str, mode: str) -> None:
        self.owned.append(Path(path))

    def download(self, url: str, dest: Path) -> None:
        Path(dest).write_text(url, encoding='utf-8')


class FakeCustomizer:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.applied: list[tuple[Path, str]] = []

    def apply(self, disk_path: Path, spec) -> None:
        if self.fail:
            raise CustomizationError(f'virt-customize failed for {disk_path}')
        self.applied.append((Path(disk_path), spec.hostname))


@pytest.fixture(autouse=True)
def _no_host_routes(monkeypatch):
    monkeypatch.setattr('labvm.net._route_overlap', lambda cidr, bridge='': None)


@pytest.fixture
def lab_cfg(tmp_path: Path) -> LabConfig:
    src = tmp_path / 'src' / 'Fedora43Lab.qcow2'
    src.parent.mkdir()
    src.write_bytes(b'qcow2-base')
    cfg = LabConfig()
    cfg.paths.base_image_src = str(src)
    cfg.paths.base_image = str(tmp_path / 'images' / 'Fedora43Lab.qcow2')
    cfg.paths.vm_dir = str(tmp_path / 'images' / 'fedora-lab')
    cfg.paths.hosts_local = str(tmp_path / 'hosts.local')
    cfg.paths.hosts_file = str(tmp_path / 'etc-hosts')
    return cfg


@pytest.fixture
def client() -> FakeControlPlane:
    return FakeControlPlane()


def make_reconciler(
    cfg: LabConfig,
    client: FakeControlPlane,
    *,
    confirm=deny_all,
    customizer: FakeCustomizer | None = None,
    tool: FakeImageTool | None = None,
) -> Reconciler:
    return Reconciler(
        Lab.from_config(cfg),
        client=client,
        images=ImageManager(tool or FakeImageTool(), confirm=confirm),
        networks=NetworkManager(client, confirm=confirm),
        vms=VMLifecycleController(client),
        customizer=customizer or FakeCustomizer(),
        confirm=confirm,
    )


@pytest.fixture
def build(lab_cfg: LabConfig, client: FakeControlPlane):
    def _build(**kwargs) -> Reconciler:
        return make_reconciler(lab_cfg, client, **kwargs)

    return _build
