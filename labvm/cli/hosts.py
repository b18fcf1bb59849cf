"""Commands that manage lab entries in the host's /etc/hosts."""

from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg

from ..host import require_root
from ..hosts import (
    add_entries,
    managed_block,
    read_entry_lines,
    remove_entries,
    update_entries,
)
from ..status import status_line
from ._common import _BaseCommand, _load_cfg


class _HostsCommand(_BaseCommand):
    hosts_file = scfg.Value(
        '', help='Hosts file to edit (default: paths.hosts_file from config).'
    )
    hosts_local = scfg.Value(
        '', help='Generated entries file (default: paths.hosts_local from config).'
    )


def _paths(args) -> tuple[Path, Path]:
    cfg = _load_cfg(args.config)
    hosts_file = Path(args.hosts_file or cfg.paths.hosts_file)
    hosts_local = Path(args.hosts_local or cfg.paths.hosts_local)
    return hosts_file, hosts_local


class HostsAddCLI(_HostsCommand):
    """Append the lab block to the hosts file (no-op if already present)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        require_root()
        hosts_file, hosts_local = _paths(args)
        action = add_entries(hosts_file, hosts_local)
        print(status_line(True, str(hosts_file), action))
        return 0


class HostsRemoveCLI(_HostsCommand):
    """Remove the lab block from the hosts file."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        require_root()
        hosts_file, _ = _paths(args)
        action = remove_entries(hosts_file)
        print(status_line(True, str(hosts_file), action))
        return 0


class HostsUpdateCLI(_HostsCommand):
    """Replace the lab block with the current generated entries."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        require_root()
        hosts_file, hosts_local = _paths(args)
        action = update_entries(hosts_file, hosts_local)
        print(status_line(True, str(hosts_file), action))
        return 0


class HostsStatusCLI(_HostsCommand):
    """Show whether the hosts file carries the current lab entries."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        hosts_file, hosts_local = _paths(args)
        block = managed_block(hosts_file.read_text(encoding='utf-8'))
        if block is None:
            print(status_line(False, str(hosts_file), 'no lab entries'))
            return 1
        for line in block:
            print(f'  {line}')
        if not hosts_local.exists():
            print(status_line(None, str(hosts_local), 'missing'))
            return 0
        current = block == read_entry_lines(hosts_local)
        print(
            status_line(
                current,
                str(hosts_file),
                'up to date' if current else 'stale (run: labvm hosts update)',
            )
        )
        return 0 if current else 1


class HostsModalCLI(scfg.ModalCLI):
    """Manage lab entries in /etc/hosts."""

    add = HostsAddCLI
    remove = HostsRemoveCLI
    update = HostsUpdateCLI
    status = HostsStatusCLI
