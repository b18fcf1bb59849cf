from __future__ import annotations

import sys

import scriptconfig as scfg

from ..config import LabConfig, dump_toml, save
from ..specs import build_network_spec, build_vm_specs
from ..util import ensure_dir
from ._common import _BaseCommand, _cfg_path, _load_cfg_with_path


class InitCLI(_BaseCommand):
    """Write a config file populated with the default lab definition."""

    force = scfg.Value(
        False,
        isflag=True,
        help='Overwrite an existing config file.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        if path.exists() and not args.force:
            print(f'Config already exists: {path}', file=sys.stderr)
            print('Use --force to overwrite it.', file=sys.stderr)
            return 2
        ensure_dir(path.parent)
        save(path, LabConfig())
        print(f'Wrote config: {path}')
        return 0


class ConfigShowCLI(_BaseCommand):
    """Show the resolved config and the derived per-VM values."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, path = _load_cfg_with_path(args.config)
        vms = build_vm_specs(cfg)
        net = build_network_spec(cfg, vms)
        print(f'# Config: {path}' + ('' if path.exists() else ' (not found, defaults)'))
        print(dump_toml(cfg), end='')
        print()
        print(f'# Network {net.name}: {net.subnet_cidr} via {net.gateway}')
        for vm in vms:
            print(f'# {vm.name:<15} {vm.mac_address}  {vm.ip_address:<16} {vm.fqdn}')
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Config file commands."""

    init = InitCLI
    show = ConfigShowCLI
