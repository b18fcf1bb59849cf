from __future__ import annotations

import pytest

from labvm.config import LabConfig
from labvm.confirm import approve_all
from labvm.errors import FatalPreconditionError
from labvm.net import NetworkManager, _route_overlap
from labvm.parse import NetworkState
from labvm.specs import build_network_spec, build_vm_specs
from labvm.util import CmdError, CmdResult


def _net_spec(tmp_path):
    cfg = LabConfig()
    cfg.paths.vm_dir = str(tmp_path / 'lab')
    return build_network_spec(cfg, build_vm_specs(cfg))


def test_ensure_network_creates_when_absent(client, tmp_path) -> None:
    spec = _net_spec(tmp_path)
    assert NetworkManager(client).ensure_network(spec) == 'created'
    assert client.calls == [
        ('net-define', 'labnet'),
        ('net-start', 'labnet'),
        ('net-autostart', 'labnet'),
    ]
    assert 'fedoralab1.example.com' in spec.descriptor_path.read_text()


def test_ensure_network_starts_inactive_without_redefining(client, tmp_path) -> None:
    client.networks['labnet'] = NetworkState.INACTIVE
    client.autostart.add('labnet')
    action = NetworkManager(client).ensure_network(_net_spec(tmp_path))
    assert action == 'started'
    assert client.calls == [('net-start', 'labnet')]


def test_ensure_network_resumes_interrupted_create(client, tmp_path) -> None:
    spec = _net_spec(tmp_path)
    mgr = NetworkManager(client)
    client.fail_on.add(('net-start', 'labnet'))
    with pytest.raises(CmdError):
        mgr.ensure_network(spec)
    assert client.networks['labnet'] is NetworkState.INACTIVE
    assert 'labnet' not in client.autostart

    client.fail_on.clear()
    assert mgr.ensure_network(spec) == 'started'
    assert client.networks['labnet'] is NetworkState.ACTIVE
    assert 'labnet' in client.autostart
    before = client.mutation_count
    assert mgr.ensure_network(spec) == 'exists'
    assert client.mutation_count == before


def test_active_network_missing_autostart_is_marked(client, tmp_path) -> None:
    client.networks['labnet'] = NetworkState.ACTIVE
    mgr = NetworkManager(client)
    assert mgr.ensure_network(_net_spec(tmp_path)) == 'autostarted'
    assert client.calls == [('net-autostart', 'labnet')]
    assert mgr.ensure_active('labnet') == 'exists'


def test_ensure_network_active_is_noop(client, tmp_path) -> None:
    client.networks['labnet'] = NetworkState.ACTIVE
    client.autostart.add('labnet')
    mgr = NetworkManager(client)
    assert mgr.ensure_network(_net_spec(tmp_path)) == 'exists'
    assert mgr.ensure_network(_net_spec(tmp_path), recreate=True) == 'exists'
    assert client.mutation_count == 0


def test_ensure_network_recreate_confirmed(client, tmp_path) -> None:
    client.networks['labnet'] = NetworkState.ACTIVE
    mgr = NetworkManager(client, confirm=approve_all)
    assert mgr.ensure_network(_net_spec(tmp_path), recreate=True) == 'recreated'
    assert [op for op, _ in client.calls] == [
        'net-destroy',
        'net-undefine',
        'net-define',
        'net-start',
        'net-autostart',
    ]


def test_ensure_active(client) -> None:
    mgr = NetworkManager(client)
    with pytest.raises(FatalPreconditionError, match='not found'):
        mgr.ensure_active('labnet')
    client.networks['labnet'] = NetworkState.INACTIVE
    assert mgr.ensure_active('labnet') == 'started'
    assert 'labnet' in client.autostart
    assert mgr.ensure_active('labnet') == 'exists'


def test_ensure_active_start_failure_is_fatal(client) -> None:
    client.networks['labnet'] = NetworkState.INACTIVE
    client.fail_on.add(('net-start', 'labnet'))
    with pytest.raises(FatalPreconditionError, match='could not be started'):
        NetworkManager(client).ensure_active('labnet')


def test_teardown_by_state(client) -> None:
    mgr = NetworkManager(client)
    assert mgr.teardown('labnet') == 'absent'
    client.networks['labnet'] = NetworkState.INACTIVE
    assert mgr.teardown('labnet') == 'removed'
    assert client.calls == [('net-undefine', 'labnet')]


def test_subnet_overlap_is_fatal(client, tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(
        'labvm.net._route_overlap', lambda cidr, bridge='': '192.168.0.0/16'
    )
    with pytest.raises(FatalPreconditionError, match='overlaps existing route'):
        NetworkManager(client).ensure_network(_net_spec(tmp_path))
    assert client.mutation_count == 0


def test_route_overlap_parsing(monkeypatch) -> None:
    routes = (
        'default via 10.0.0.1 dev eth0 proto dhcp metric 100\n'
        '10.0.0.0/24 dev eth0 proto kernel scope link src 10.0.0.5\n'
        '192.168.100.0/24 dev virbr-lab proto kernel scope link\n'
        '192.168.0.0/16 dev tun0 scope link\n'
    )
    monkeypatch.setattr('labvm.net.which', lambda cmd: '/usr/sbin/ip')
    monkeypatch.setattr(
        'labvm.net.run_cmd', lambda cmd, **kw: CmdResult(0, routes, '')
    )
    assert _route_overlap('192.168.100.0/24', bridge='virbr-lab') == '192.168.0.0/16'
    assert _route_overlap('172.16.0.0/24') is None
