"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import LabVMModalCLI, main

__all__ = ['LabVMModalCLI', 'main']
