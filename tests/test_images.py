from __future__ import annotations

import os
from pathlib import Path

import pytest

from labvm.config import LabConfig
from labvm.confirm import approve_all
from labvm.errors import FatalPreconditionError
from labvm.images import ImageManager, ImageTool
from labvm.specs import build_vm_specs
from labvm.util import CmdResult

from conftest import FakeImageTool


def _spec(tmp_path: Path):
    cfg = LabConfig()
    cfg.paths.base_image = str(tmp_path / 'base.qcow2')
    cfg.paths.vm_dir = str(tmp_path / 'lab')
    return build_vm_specs(cfg)[0]


def test_overlay_requires_base_before_any_write(tmp_path: Path) -> None:
    tool = FakeImageTool()
    mgr = ImageManager(tool, confirm=approve_all)
    spec = _spec(tmp_path)
    with pytest.raises(FatalPreconditionError, match='Base image not found'):
        mgr.create_overlay(spec)
    assert tool.overlays == []
    assert not (tmp_path / 'lab').exists()


def test_existing_overlay_kept_when_declined(tmp_path: Path) -> None:
    spec = _spec(tmp_path)
    Path(spec.base_image_path).write_bytes(b'base')
    spec.overlay_path.parent.mkdir()
    spec.overlay_path.write_text('customized', encoding='utf-8')
    os.utime(spec.overlay_path, (1_000_000, 1_000_000))
    tool = FakeImageTool()

    action = ImageManager(tool).create_overlay(spec)

    assert action == 'kept'
    assert tool.overlays == []
    assert spec.overlay_path.stat().st_mtime == 1_000_000
    assert spec.overlay_path.read_text() == 'customized'


def test_existing_overlay_replaced(tmp_path: Path) -> None:
    spec = _spec(tmp_path)
    Path(spec.base_image_path).write_bytes(b'base')
    spec.overlay_path.parent.mkdir()
    spec.overlay_path.write_text('old', encoding='utf-8')
    tool = FakeImageTool()
    assert ImageManager(tool, confirm=approve_all).create_overlay(spec) == 'recreated'
    assert ImageManager(tool).create_overlay(spec, overwrite=True) == 'recreated'
    assert tool.overlays == [spec.overlay_path, spec.overlay_path]
    assert tool.owned == [spec.overlay_path, spec.overlay_path]


def test_ensure_base_image_copies_once(tmp_path: Path) -> None:
    src = tmp_path / 'src.qcow2'
    src.write_bytes(b'image')
    dest = tmp_path / 'store' / 'base.qcow2'
    tool = FakeImageTool()
    mgr = ImageManager(tool)
    assert mgr.ensure_base_image(src, dest) == 'copied'
    assert dest.read_bytes() == b'image'
    assert not Path(str(dest) + '.part').exists()
    src.write_bytes(b'changed')
    assert mgr.ensure_base_image(src, dest) == 'exists'
    assert dest.read_bytes() == b'image'
    assert tool.owned == [dest]


def test_ensure_base_image_missing_source_is_fatal_even_when_installed(
    tmp_path: Path,
) -> None:
    dest = tmp_path / 'store' / 'base.qcow2'
    dest.parent.mkdir()
    dest.write_bytes(b'image')
    with pytest.raises(FatalPreconditionError, match='Source base image not found'):
        ImageManager(FakeImageTool()).ensure_base_image(tmp_path / 'gone.qcow2', dest)
    assert dest.read_bytes() == b'image'


def test_remove_managed_dir(tmp_path: Path) -> None:
    vm_dir = tmp_path / 'lab'
    (vm_dir / 'sub').mkdir(parents=True)
    mgr = ImageManager(FakeImageTool())
    assert mgr.remove_managed_dir(vm_dir) == 'removed'
    assert not vm_dir.exists()
    assert mgr.remove_managed_dir(vm_dir) == 'absent'


def test_fetch_base_image(tmp_path: Path) -> None:
    dest = tmp_path / 'dl' / 'base.qcow2'
    mgr = ImageManager(FakeImageTool())
    with pytest.raises(FatalPreconditionError, match='No image URL'):
        mgr.fetch_base_image('', dest)
    assert mgr.fetch_base_image('https://example.invalid/f.qcow2', dest) == 'downloaded'
    assert mgr.fetch_base_image('https://example.invalid/f.qcow2', dest) == 'exists'


def test_image_tool_overlay_command(monkeypatch, tmp_path: Path) -> None:
    calls = []
    monkeypatch.setattr(
        'labvm.images.run_cmd',
        lambda cmd, **kw: (calls.append((cmd, kw)) or CmdResult(0, '', '')),
    )
    base = tmp_path / 'base.qcow2'
    base.write_bytes(b'base')
    ImageTool(timeout_s=12).create_overlay(base, tmp_path / 'vm.qcow2')
    cmd, kw = calls[0]
    assert cmd == [
        'qemu-img', 'create', '-f', 'qcow2',
        '-b', str(base), '-F', 'qcow2', str(tmp_path / 'vm.qcow2'),
    ]
    assert kw['timeout'] == 12
