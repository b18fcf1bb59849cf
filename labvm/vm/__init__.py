"""VM lifecycle exports."""

from __future__ import annotations

from .lifecycle import Transition, VMLifecycleController

__all__ = ['Transition', 'VMLifecycleController']
