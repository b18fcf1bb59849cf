"""Immutable VM and network specs derived from the lab config.

The reservation table (VM name -> IP suffix, MAC suffix) is the single source
of truth for addressing. Both the network descriptor and each domain
descriptor are rendered from the specs built here, so recreating a VM always
reproduces the same MAC and IP.

Example:
    >>> from labvm.config import LabConfig
    >>> specs = build_vm_specs(LabConfig())
    >>> specs[0].name, specs[0].mac_address, specs[0].ip_address
    ('FedoraLab1', '52:54:00:1a:b0:aa', '192.168.100.10')
"""

from __future__ import annotations

import ipaddress
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from .config import LabConfig
from .errors import InvalidSpecError

# Fixed namespace so domain UUIDs are stable across re-renders.
_UUID_NAMESPACE = uuid.UUID('6f1c2d3e-8a4b-5c6d-9e0f-1a2b3c4d5e6f')
_MAC_OCTET = re.compile(r'^[0-9a-f]{2}$')


@dataclass(frozen=True)
class VMSpec:
    name: str
    mac_address: str
    ip_address: str
    fqdn: str
    hostname: str
    memory_mb: int
    vcpu_count: int
    overlay_path: Path
    base_image_path: Path
    descriptor_path: Path
    uuid: str


@dataclass(frozen=True)
class Reservation:
    mac: str
    ip: str
    fqdn: str

    @property
    def hostname(self) -> str:
        return self.fqdn.split('.', 1)[0]


@dataclass(frozen=True)
class NetworkSpec:
    name: str
    bridge: str
    subnet_cidr: str
    gateway: str
    domain_suffix: str
    dhcp_start: str
    dhcp_end: str
    reservations: tuple[Reservation, ...]
    descriptor_path: Path

    @property
    def netmask(self) -> str:
        return str(ipaddress.ip_network(self.subnet_cidr, strict=False).netmask)

    def __post_init__(self) -> None:
        validate_network(self)


def domain_uuid(name: str) -> str:
    return str(uuid.uuid5(_UUID_NAMESPACE, name))


def vm_fqdn(name: str, domain: str) -> str:
    return f'{name.lower()}.{domain}'


def vm_mac(prefix: str, suffix: str) -> str:
    suffix = suffix.strip().lower()
    if not _MAC_OCTET.match(suffix):
        raise InvalidSpecError(f'Invalid MAC suffix {suffix!r}; expected one hex octet')
    return f'{prefix.strip().lower()}:{suffix}'


def vm_ip(subnet_cidr: str, ip_suffix: int) -> str:
    net = ipaddress.ip_network(subnet_cidr, strict=False)
    ip = net.network_address + int(ip_suffix)
    if ip not in net or ip in (net.network_address, net.broadcast_address):
        raise InvalidSpecError(
            f'IP suffix {ip_suffix} does not yield a host address in {subnet_cidr}'
        )
    return str(ip)


def build_vm_specs(cfg: LabConfig) -> tuple[VMSpec, ...]:
    """Build VM specs in the declared config order."""
    vm_dir = Path(cfg.paths.vm_dir)
    seen: set[str] = set()
    specs: list[VMSpec] = []
    for entry in cfg.vms:
        if entry.name in seen:
            raise InvalidSpecError(f'Duplicate VM name in config: {entry.name}')
        seen.add(entry.name)
        fqdn = vm_fqdn(entry.name, cfg.network.domain)
        specs.append(
            VMSpec(
                name=entry.name,
                mac_address=vm_mac(cfg.network.mac_prefix, entry.mac_suffix),
                ip_address=vm_ip(cfg.network.subnet_cidr, entry.ip_suffix),
                fqdn=fqdn,
                hostname=entry.name.lower(),
                memory_mb=int(cfg.resources.memory_mb),
                vcpu_count=int(cfg.resources.vcpus),
                overlay_path=vm_dir / f'{entry.name}.qcow2',
                base_image_path=Path(cfg.paths.base_image),
                descriptor_path=vm_dir / f'{entry.name}.xml',
                uuid=domain_uuid(entry.name),
            )
        )
    return tuple(specs)


def build_network_spec(
    cfg: LabConfig, vm_specs: tuple[VMSpec, ...]
) -> NetworkSpec:
    return NetworkSpec(
        name=cfg.network.name,
        bridge=cfg.network.bridge,
        subnet_cidr=cfg.network.subnet_cidr,
        gateway=cfg.network.gateway_ip,
        domain_suffix=cfg.network.domain,
        dhcp_start=cfg.network.dhcp_start,
        dhcp_end=cfg.network.dhcp_end,
        reservations=tuple(
            Reservation(mac=s.mac_address, ip=s.ip_address, fqdn=s.fqdn)
            for s in vm_specs
        ),
        descriptor_path=Path(cfg.paths.vm_dir) / f'{cfg.network.name}.xml',
    )


def validate_network(spec: NetworkSpec) -> None:
    net = ipaddress.ip_network(spec.subnet_cidr, strict=False)
    gateway = ipaddress.ip_address(spec.gateway)
    start = ipaddress.ip_address(spec.dhcp_start)
    end = ipaddress.ip_address(spec.dhcp_end)
    if gateway not in net:
        raise InvalidSpecError(f'Gateway {gateway} is outside {net}')
    if start not in net or end not in net or start > end:
        raise InvalidSpecError(f'Invalid DHCP range {start}-{end} for {net}')
    if start <= gateway <= end:
        raise InvalidSpecError(f'Gateway {gateway} lies inside the DHCP range')
    if len(spec.bridge) > 15:
        raise InvalidSpecError(
            f'Bridge name too long ({len(spec.bridge)} > 15): {spec.bridge}'
        )
    macs: set[str] = set()
    ips: set[str] = set()
    for res in spec.reservations:
        ip = ipaddress.ip_address(res.ip)
        if ip not in net:
            raise InvalidSpecError(f'Reserved IP {ip} is outside {net}')
        if ip == gateway:
            raise InvalidSpecError(f'Reserved IP {ip} collides with the gateway')
        if start <= ip <= end:
            raise InvalidSpecError(
                f'Reserved IP {ip} overlaps the dynamic DHCP range'
            )
        if res.mac in macs:
            raise InvalidSpecError(f'Duplicate reserved MAC {res.mac}')
        if res.ip in ips:
            raise InvalidSpecError(f'Duplicate reserved IP {res.ip}')
        macs.add(res.mac)
        ips.add(res.ip)
