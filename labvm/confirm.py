"""Confirmation capability for destructive actions.

Workflows never prompt directly. They receive a ``Confirm`` callable and ask
it before any destructive step; the safe answer is always "no".
"""

from __future__ import annotations

import sys
from typing import Callable

from loguru import logger

log = logger

Confirm = Callable[[str], bool]


def deny_all(action: str) -> bool:
    log.debug('Confirmation denied (non-interactive): {}', action)
    return False


def approve_all(action: str) -> bool:
    log.debug('Confirmation auto-approved: {}', action)
    return True


def prompt(action: str) -> bool:
    """Ask on the terminal; anything but an explicit yes is a no."""
    if not sys.stdin.isatty():
        return deny_all(action)
    try:
        ans = input(f'{action} (y/N): ').strip().lower()
    except EOFError:
        return False
    return ans in {'y', 'yes'}


def make_confirm(*, yes: bool = False, interactive: bool = True) -> Confirm:
    if yes:
        return approve_all
    if interactive:
        return prompt
    return deny_all
