from __future__ import annotations

import sys
from pathlib import Path

import pytest

from labvm.cli import LabVMModalCLI, main
from labvm.cli.config import InitCLI
from labvm.config import LabConfig, load, save
from labvm.confirm import approve_all
from labvm.hosts import MARKER_START
from labvm.parse import DomainState, NetworkState

cli_main = sys.modules['labvm.cli.main']


def _run(argv: list[str]) -> int:
    rc = LabVMModalCLI.main(argv=argv, _noexit=True)
    return 0 if rc is None else int(rc)


@pytest.fixture
def cfg_path(tmp_path: Path, lab_cfg: LabConfig) -> Path:
    path = tmp_path / '.labvm.toml'
    save(path, lab_cfg)
    return path


@pytest.fixture
def privileged(monkeypatch):
    monkeypatch.setattr(cli_main, 'require_root', lambda: None)
    monkeypatch.setattr(cli_main, 'require_commands', lambda: None)
    monkeypatch.setattr(cli_main, 'ensure_libvirtd', lambda: 'exists')
    monkeypatch.setattr('labvm.cli.hosts.require_root', lambda: None)


def test_config_init_and_show(tmp_path: Path, capsys) -> None:
    path = tmp_path / 'conf' / 'config.toml'
    assert InitCLI.main(argv=False, config=str(path)) == 0
    assert load(path) == LabConfig()
    assert InitCLI.main(argv=False, config=str(path)) == 2
    assert InitCLI.main(argv=False, config=str(path), force=True) == 0
    capsys.readouterr()

    assert _run(['config', 'show', '--config', str(path)]) == 0
    out = capsys.readouterr().out
    assert '[network]' in out
    assert '52:54:00:1a:b0:aa' in out
    assert 'fedoralab2.example.com' in out


def test_create_start_status_reset(
    cfg_path: Path, build, client, privileged, monkeypatch, capsys
) -> None:
    rec = build(confirm=approve_all)
    monkeypatch.setattr(cli_main, '_make_reconciler', lambda args: rec)

    assert _run(['create', '--config', str(cfg_path)]) == 0
    out = capsys.readouterr().out
    assert 'create: ' in out
    assert 'sudo labvm start' in out

    assert _run(['start', '--config', str(cfg_path)]) == 0
    out = capsys.readouterr().out
    assert 'Virtual Machines' in out
    assert client.domains['FedoraLab1'] is DomainState.RUNNING

    assert _run(['status', '--config', str(cfg_path)]) == 0
    assert 'labnet active' in capsys.readouterr().out

    assert _run(
        ['reset', '--vms_only', '--destroy_only', '--config', str(cfg_path)]
    ) == 0
    assert client.domains == {}
    assert client.networks['labnet'] is NetworkState.ACTIVE


def test_reset_declined_reports_abort(
    cfg_path: Path, build, client, privileged, monkeypatch, capsys
) -> None:
    rec = build()
    monkeypatch.setattr(cli_main, '_make_reconciler', lambda args: rec)
    assert _run(['reset', '--destroy_only', '--config', str(cfg_path)]) == 0
    assert 'aborted' in capsys.readouterr().out
    assert client.mutation_count == 0


def test_hosts_commands(
    tmp_path: Path, cfg_path: Path, build, privileged, monkeypatch, capsys
) -> None:
    monkeypatch.setattr(cli_main, '_make_reconciler', lambda args: build())
    hosts = tmp_path / 'etc-hosts'
    hosts.write_text('127.0.0.1   localhost\n', encoding='utf-8')
    assert _run(['create', '--config', str(cfg_path)]) == 0

    assert _run(['hosts', 'status', '--config', str(cfg_path)]) == 1
    assert _run(['hosts', 'add', '--config', str(cfg_path)]) == 0
    assert MARKER_START in hosts.read_text()
    assert _run(['hosts', 'status', '--config', str(cfg_path)]) == 0
    assert _run(['hosts', 'remove', '--config', str(cfg_path)]) == 0
    assert MARKER_START not in hosts.read_text()


def test_main_exits_2_on_error(cfg_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli_main, '_setup_logging', lambda *args: None)
    monkeypatch.setattr('labvm.host.os.geteuid', lambda: 1000)
    with pytest.raises(SystemExit) as exc:
        main(['create', '--config', str(cfg_path)])
    assert exc.value.code == 2
    assert 'ERROR: This command must be run with sudo' in capsys.readouterr().err


def test_doctor_reports_missing_tools(cfg_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr('labvm.host.which', lambda cmd: None)
    assert _run(['doctor', '--config', str(cfg_path)]) == 1
    out = capsys.readouterr().out
    assert 'install libguestfs-tools' in out
    assert 'not installed yet' in out
