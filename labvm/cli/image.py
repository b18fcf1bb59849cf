"""Base image helper commands."""

from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg

from ..images import ImageManager
from ..status import status_line
from ._common import _BaseCommand, _load_cfg


class ImageFetchCLI(_BaseCommand):
    """Download the base image to paths.base_image_src."""

    url = scfg.Value('', help='Image URL (default: image.source_url from config).')
    redownload = scfg.Value(
        False, isflag=True, help='Download even if the file already exists.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        dest = Path(cfg.paths.base_image_src)
        mgr = ImageManager(owner=cfg.image.owner, mode=cfg.image.mode)
        action = mgr.fetch_base_image(
            str(args.url or cfg.image.source_url),
            dest,
            redownload=bool(args.redownload),
        )
        print(status_line(True, str(dest), action))
        return 0


class ImageModalCLI(scfg.ModalCLI):
    """Base image helpers."""

    fetch = ImageFetchCLI
