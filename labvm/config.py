"""Lab configuration dataclasses and TOML load/save."""

from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path

from .util import expand

LIBVIRT_IMAGES = '/var/lib/libvirt/images'


@dataclass
class NetworkConfig:
    name: str = 'labnet'
    bridge: str = 'virbr-lab'
    subnet_cidr: str = '192.168.100.0/24'
    gateway_ip: str = '192.168.100.1'
    dhcp_start: str = '192.168.100.100'
    dhcp_end: str = '192.168.100.200'
    domain: str = 'example.com'
    mac_prefix: str = '52:54:00:1a:b0'


@dataclass
class ImageConfig:
    source_url: str = ''
    owner: str = 'qemu:qemu'
    mode: str = '0644'


@dataclass
class ResourcesConfig:
    memory_mb: int = 1024
    vcpus: int = 2


@dataclass
class GuestConfig:
    user: str = 'ansibleuser'
    password: str = 'Automation!'
    locale: str = 'en_US.UTF-8'
    timezone: str = 'America/New_York'
    keymap: str = 'us'
    selinux_relabel: bool = True


@dataclass
class ControlConfig:
    uri: str = 'qemu:///system'
    timeout_s: int = 60
    customize_timeout_s: int = 1800


@dataclass
class PathsConfig:
    base_image_src: str = './Fedora43Lab.qcow2'
    base_image: str = f'{LIBVIRT_IMAGES}/Fedora43Lab.qcow2'
    vm_dir: str = f'{LIBVIRT_IMAGES}/fedora-lab'
    hosts_local: str = './hosts.local'
    hosts_file: str = '/etc/hosts'


@dataclass
class VMEntry:
    name: str
    ip_suffix: int
    mac_suffix: str


def _default_vms() -> list[VMEntry]:
    return [
        VMEntry(name='FedoraLab1', ip_suffix=10, mac_suffix='aa'),
        VMEntry(name='FedoraLab2', ip_suffix=11, mac_suffix='bb'),
    ]


@dataclass
class LabConfig:
    network: NetworkConfig = field(default_factory=NetworkConfig)
    image: ImageConfig = field(default_factory=ImageConfig)
    resources: ResourcesConfig = field(default_factory=ResourcesConfig)
    guest: GuestConfig = field(default_factory=GuestConfig)
    control: ControlConfig = field(default_factory=ControlConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    vms: list[VMEntry] = field(default_factory=_default_vms)
    verbosity: int = 1

    def expanded_paths(self) -> 'LabConfig':
        self.paths.base_image_src = expand(self.paths.base_image_src)
        self.paths.base_image = expand(self.paths.base_image)
        self.paths.vm_dir = expand(self.paths.vm_dir)
        self.paths.hosts_local = expand(self.paths.hosts_local)
        self.paths.hosts_file = expand(self.paths.hosts_file)
        return self


SECTIONS = ('network', 'image', 'resources', 'guest', 'control', 'paths')


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def _emit_toml_kv(lines: list[str], key: str, val: object) -> None:
    if isinstance(val, bool):
        lines.append(f'{key} = {"true" if val else "false"}')
    elif isinstance(val, int):
        lines.append(f'{key} = {val}')
    elif isinstance(val, list):
        parts = [f'"{_toml_escape(str(item))}"' for item in val]
        lines.append(f'{key} = [{", ".join(parts)}]')
    else:
        lines.append(f'{key} = "{_toml_escape(str(val))}"')


def dump_toml(cfg: LabConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    if cfg.verbosity != 1:
        lines.append(f'verbosity = {cfg.verbosity}')
        lines.append('')
    for section in SECTIONS:
        lines.append(f'[{section}]')
        for k, v in d[section].items():
            _emit_toml_kv(lines, k, v)
        lines.append('')
    for vm in d['vms']:
        lines.append('[[vms]]')
        for k, v in vm.items():
            _emit_toml_kv(lines, k, v)
        lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def from_dict(raw: dict) -> LabConfig:
    cfg = LabConfig()
    for section in SECTIONS:
        body = raw.get(section, None)
        if isinstance(body, dict):
            obj = getattr(cfg, section)
            for k, v in body.items():
                if hasattr(obj, k):
                    setattr(obj, k, v)
    if 'vms' in raw:
        vms: list[VMEntry] = []
        for item in raw['vms']:
            if not isinstance(item, dict):
                continue
            name = str(item.get('name', '')).strip()
            if not name:
                continue
            vms.append(
                VMEntry(
                    name=name,
                    ip_suffix=int(item['ip_suffix']),
                    mac_suffix=str(item['mac_suffix']).strip().lower(),
                )
            )
        cfg.vms = vms
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    return cfg


def load(path: Path) -> LabConfig:
    raw = tomllib.loads(path.read_text(encoding='utf-8'))
    return from_dict(raw)


def save(path: Path, cfg: LabConfig) -> None:
    path.write_text(dump_toml(cfg), encoding='utf-8')
