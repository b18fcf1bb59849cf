"""Top-level modal CLI wiring and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ..control import ControlPlaneClient
from ..host import (
    OPTIONAL_CMDS,
    REQUIRED_CMDS,
    check_commands,
    ensure_libvirtd,
    libvirtd_active,
    require_commands,
    require_root,
)
from ..status import render_status, status_line
from ._common import (
    _BaseCommand,
    _cfg_path,
    _load_cfg,
    _load_cfg_with_path,
    _make_reconciler,
    _print_result,
    log,
)
from .config import ConfigModalCLI
from .hosts import HostsModalCLI
from .image import ImageModalCLI


class CreateCLI(_BaseCommand):
    """Build the lab: base image, overlays, network, and VM definitions."""

    recreate_overlays = scfg.Value(
        False,
        isflag=True,
        help='Replace existing overlay disks without asking.',
    )
    recreate_network = scfg.Value(
        False,
        isflag=True,
        help='Tear down and recreate the lab network (asks unless --yes).',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        require_root()
        require_commands()
        rec = _make_reconciler(args)
        result = rec.create(
            recreate_overlays=bool(args.recreate_overlays),
            recreate_network=bool(args.recreate_network),
        )
        _print_result(result)
        print()
        print('Next: sudo labvm start')
        return 0


class StartCLI(_BaseCommand):
    """Bring the network and every lab VM to running."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        require_root()
        ensure_libvirtd()
        rec = _make_reconciler(args)
        result = rec.start()
        _print_result(result)
        print()
        print(render_status(rec.status()))
        return 0


class ResetCLI(_BaseCommand):
    """Destroy the lab VMs (and the network unless --vms_only), then rebuild."""

    vms_only = scfg.Value(
        False,
        isflag=True,
        help='Keep the lab network; only tear down VMs and their disks.',
    )
    destroy_only = scfg.Value(
        False,
        isflag=True,
        help='Tear down without recreating the lab afterwards.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        require_root()
        scope = 'vms-only' if args.vms_only else 'full'
        if not args.destroy_only:
            require_commands()
        rec = _make_reconciler(args)
        result = rec.reset(scope=scope, recreate=not args.destroy_only)
        _print_result(result)
        return 0


class StatusCLI(_BaseCommand):
    """Show network, DHCP lease, and VM state for the lab."""

    probe = scfg.Value(
        False,
        isflag=True,
        help='Also ping running VMs and check their SSH port.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        rec = _make_reconciler(args)
        print(render_status(rec.status(), probe=bool(args.probe)))
        return 0


class DoctorCLI(_BaseCommand):
    """Check host prerequisites without changing anything."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, path = _load_cfg_with_path(args.config)
        missing, missing_opt = check_commands()
        ok = True
        print(status_line(path.exists(), 'Config', str(path)))
        is_root = os.geteuid() == 0
        print(
            status_line(
                is_root or None,
                'Privileges',
                'root' if is_root else 'not root (create/start/reset need sudo)',
            )
        )
        for cmd, pkg in REQUIRED_CMDS.items():
            found = cmd not in missing
            ok = ok and found
            print(status_line(found, cmd, 'found' if found else f'install {pkg}'))
        for cmd in OPTIONAL_CMDS:
            found = cmd not in missing_opt
            print(status_line(found or None, cmd, 'found' if found else 'optional'))
        if 'virsh' not in missing:
            active = libvirtd_active()
            ok = ok and active
            print(status_line(active, 'libvirtd', 'active' if active else 'inactive'))
            client = ControlPlaneClient(
                cfg.control.uri, timeout_s=cfg.control.timeout_s
            )
            reachable = client.ping()
            ok = ok and reachable
            print(
                status_line(
                    reachable,
                    cfg.control.uri,
                    'reachable' if reachable else 'cannot connect',
                )
            )
        base = cfg.paths.base_image
        src = cfg.paths.base_image_src
        if not os.path.isfile(src):
            ok = False
            print(status_line(False, 'Base image', f'source missing: {src}'))
        elif os.path.isfile(base):
            print(status_line(True, 'Base image', base))
        else:
            print(status_line(None, 'Base image', f'not installed yet; source {src}'))
        return 0 if ok else 1


class LabVMModalCLI(scfg.ModalCLI):
    """Idempotent lifecycle manager for a small libvirt lab of VMs."""

    create = CreateCLI
    start = StartCLI
    reset = ResetCLI
    status = StatusCLI
    doctor = DoctorCLI
    hosts = HostsModalCLI
    image = ImageModalCLI
    config = ConfigModalCLI


def main(argv: list[str] | None = None) -> None:
    verbosity = 1
    config_value = None
    if argv is None:
        argv = sys.argv[1:]
    if '--config' in argv:
        try:
            config_value = argv[argv.index('--config') + 1]
        except IndexError:
            pass
    try:
        if config_value is not None or _cfg_path(None).exists():
            verbosity = _load_cfg(config_value).verbosity
    except Exception:
        verbosity = 1

    explicit_verbose = _count_verbose(argv)
    _setup_logging(explicit_verbose, verbosity)

    try:
        rc = LabVMModalCLI.main(argv=argv, _noexit=True)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled labvm error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
