from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg
import ubelt as ub
from loguru import logger

from ..config import LabConfig, load
from ..confirm import make_confirm
from ..reconcile import Reconciler
from ..results import WorkflowResult
from ..status import status_line

log = logger

LOCAL_CONFIG_NAME = '.labvm.toml'


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None,
        help='Path to config TOML (default: ./.labvm.toml, else the user config dir).',
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )
    yes = scfg.Value(
        False,
        short_alias=['y'],
        isflag=True,
        help='Approve destructive actions without prompting.',
    )


def user_config_path() -> Path:
    return Path(ub.Path.appdir('labvm', type='config')) / 'config.toml'


def _cfg_path(p: str | None) -> Path:
    if p:
        return Path(p).expanduser().resolve()
    local = Path(LOCAL_CONFIG_NAME).resolve()
    if local.exists():
        return local
    return user_config_path()


def _load_cfg(config_path: str | None) -> LabConfig:
    cfg, _ = _load_cfg_with_path(config_path)
    return cfg


def _load_cfg_with_path(config_path: str | None) -> tuple[LabConfig, Path]:
    path = _cfg_path(config_path)
    if path.exists():
        log.debug('Loading config from {}', path)
        return load(path).expanded_paths(), path
    if config_path:
        raise FileNotFoundError(
            f'Config not found: {path}. Run: labvm config init --config {path}'
        )
    log.debug('No config file found; using built-in lab defaults')
    return LabConfig().expanded_paths(), path


def _make_reconciler(args) -> Reconciler:
    cfg = _load_cfg(args.config)
    confirm = make_confirm(yes=bool(args.yes))
    return Reconciler.from_config(cfg, confirm=confirm)


def _print_result(result: WorkflowResult) -> None:
    if result.aborted:
        print(f'{result.workflow}: aborted, nothing changed')
        return
    for step in result.steps:
        ok = {'failed': False, 'skipped': None}.get(step.action, True)
        detail = f'{step.action} ({step.detail})' if step.detail else step.action
        print(status_line(ok, step.resource, detail))
    for msg in result.warnings:
        print(status_line(None, 'warning', msg))
    if not result.changed:
        print(f'{result.workflow}: already converged, nothing to do')
        return
    changed = sum(1 for s in result.steps if s.mutating)
    print(
        f'{result.workflow}: {changed} change(s), '
        f'{len(result.warnings)} warning(s)'
    )


__all__ = [name for name in globals() if not name.startswith('__')]
