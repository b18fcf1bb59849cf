"""Base image and overlay disk lifecycle."""

from __future__ import annotations

import shutil
from pathlib import Path

from loguru import logger

from .confirm import Confirm, deny_all
from .errors import FatalPreconditionError
from .specs import VMSpec
from .util import CmdError, ensure_dir, run_cmd

log = logger


class ImageTool:
    """Thin wrapper over qemu-img, curl, and ownership commands."""

    def __init__(self, *, timeout_s: float = 300) -> None:
        self.timeout_s = timeout_s

    def create_overlay(self, base_path: Path, overlay_path: Path) -> None:
        if not base_path.is_file():
            raise FatalPreconditionError(f'Base image not found: {base_path}')
        run_cmd(
            [
                'qemu-img',
                'create',
                '-f',
                'qcow2',
                '-b',
                str(base_path),
                '-F',
                'qcow2',
                str(overlay_path),
            ],
            check=True,
            capture=True,
            timeout=self.timeout_s,
        )

    def set_ownership(self, path: Path, *, owner: str, mode: str) -> None:
        run_cmd(['chown', owner, str(path)], check=True, capture=True)
        run_cmd(['chmod', mode, str(path)], check=True, capture=True)

    def download(self, url: str, dest: Path) -> None:
        tmp = Path(str(dest) + '.part')
        tmp.unlink(missing_ok=True)
        try:
            run_cmd(
                ['curl', '-L', '--fail', '--progress-bar', '-o', str(tmp), url],
                check=True,
                capture=False,
            )
        except CmdError:
            tmp.unlink(missing_ok=True)
            raise
        tmp.replace(dest)


class ImageManager:
    """Owns the shared base image and every per-VM overlay.

    The base image is written exactly once (copied into managed storage) and
    is never modified afterwards. Overlays reference it as their qcow2
    backing file.
    """

    def __init__(
        self,
        tool: ImageTool | None = None,
        *,
        confirm: Confirm = deny_all,
        owner: str = 'qemu:qemu',
        mode: str = '0644',
    ) -> None:
        self.tool = tool or ImageTool()
        self.confirm = confirm
        self.owner = owner
        self.mode = mode

    def ensure_base_image(self, src: Path, dest: Path) -> str:
        src = Path(src)
        dest = Path(dest)
        if not src.is_file():
            raise FatalPreconditionError(
                f'Source base image not found: {src}. '
                'Download it first (labvm image fetch) or set paths.base_image_src.'
            )
        if dest.is_file():
            log.info('Base image already exists: {}', dest)
            return 'exists'
        ensure_dir(dest.parent)
        tmp = Path(str(dest) + '.part')
        log.info('Copying base image {} -> {}', src, dest)
        try:
            shutil.copyfile(src, tmp)
            tmp.replace(dest)
        finally:
            tmp.unlink(missing_ok=True)
        self.tool.set_ownership(dest, owner=self.owner, mode=self.mode)
        log.info('Base image copied to: {}', dest)
        return 'copied'

    def create_overlay(self, spec: VMSpec, *, overwrite: bool = False) -> str:
        base = Path(spec.base_image_path)
        overlay = Path(spec.overlay_path)
        if not base.is_file():
            raise FatalPreconditionError(
                f'Base image not found: {base}. Run create to install it first.'
            )
        action = 'created'
        if overlay.exists():
            log.warning('Overlay image already exists: {}', overlay)
            if not overwrite and not self.confirm(
                f'Overwrite overlay image {overlay} for {spec.name}?'
            ):
                log.info('Keeping existing overlay for {}', spec.name)
                return 'kept'
            overlay.unlink()
            action = 'recreated'
        ensure_dir(overlay.parent)
        log.info('Creating overlay image for {}', spec.name)
        self.tool.create_overlay(base, overlay)
        self.tool.set_ownership(overlay, owner=self.owner, mode=self.mode)
        log.info('Created: {}', overlay)
        return action

    def normalize(self, path: Path) -> None:
        self.tool.set_ownership(Path(path), owner=self.owner, mode=self.mode)

    def remove_managed_dir(self, path: Path) -> str:
        path = Path(path)
        if not path.exists():
            log.info('Managed directory already absent: {}', path)
            return 'absent'
        shutil.rmtree(path)
        log.info('Removed: {}', path)
        return 'removed'

    def fetch_base_image(
        self, url: str, dest: Path, *, redownload: bool = False
    ) -> str:
        dest = Path(dest)
        if not url:
            raise FatalPreconditionError(
                'No image URL configured; set image.source_url or pass --url.'
            )
        if dest.is_file() and not redownload:
            log.info('Base image already downloaded: {}', dest)
            return 'exists'
        ensure_dir(dest.parent)
        log.info('Downloading base image to {}', dest)
        self.tool.download(url, dest)
        log.info('Downloaded base image: {}', dest)
        return 'downloaded'
