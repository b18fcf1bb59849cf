"""Per-VM state transitions: register, start/resume, stop, undefine.

Every transition re-reads the domain state afterwards. A state that does not
match the expected one is returned as a warning rather than trusted.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from ..control import ControlPlaneClient
from ..errors import FatalPreconditionError
from ..parse import DomainState
from ..render import render_domain
from ..specs import VMSpec
from ..util import CmdError, ensure_dir

log = logger


@dataclass(frozen=True)
class Transition:
    action: str
    state: DomainState
    warning: str = ''


class VMLifecycleController:
    def __init__(self, client: ControlPlaneClient) -> None:
        self.client = client

    def state(self, name: str) -> DomainState:
        return self.client.domain_state(name)

    def _verify(self, name: str, action: str, *expected: DomainState) -> Transition:
        got = self.state(name)
        if got in expected:
            return Transition(action, got)
        msg = (
            f'{name} is {got.value} after {action} '
            f'(expected {" or ".join(e.value for e in expected)})'
        )
        log.warning(msg)
        return Transition(action, got, msg)

    def write_descriptor(self, spec: VMSpec, *, network_name: str) -> str:
        """Render the domain descriptor to disk; unchanged content is left alone."""
        path = Path(spec.descriptor_path)
        text = render_domain(spec, network_name=network_name)
        if path.exists() and path.read_text(encoding='utf-8') == text:
            log.debug('Descriptor up to date: {}', path)
            return 'exists'
        ensure_dir(path.parent)
        path.write_text(text, encoding='utf-8')
        log.info(
            'Generated descriptor for {} (mac={}, network={}): {}',
            spec.name,
            spec.mac_address,
            network_name,
            path,
        )
        return 'rendered'

    def register(self, spec: VMSpec) -> Transition:
        current = self.state(spec.name)
        if current.defined:
            log.info('{} is already registered', spec.name)
            return Transition('exists', current)
        path = Path(spec.descriptor_path)
        if not path.is_file():
            raise FatalPreconditionError(
                f'Domain descriptor not found: {path}. Run labvm create first.'
            )
        log.info('Registering {}', spec.name)
        self.client.define_domain(path)
        return self._verify(spec.name, 'registered', DomainState.SHUT_OFF)

    def start(self, name: str) -> Transition:
        current = self.state(name)
        if current is DomainState.RUNNING:
            log.info('{} is already running', name)
            return Transition('running', current)
        if current is DomainState.PAUSED:
            log.info('Resuming {}', name)
            self.client.resume_domain(name)
            return self._verify(name, 'resumed', DomainState.RUNNING)
        if current is DomainState.SHUT_OFF:
            log.info('Starting {}', name)
            self.client.start_domain(name)
            return self._verify(name, 'started', DomainState.RUNNING)
        msg = f'{name} is in state: {current.value}; not starting it'
        log.warning(msg)
        return Transition('skipped', current, msg)

    def stop(self, name: str) -> Transition:
        current = self.state(name)
        if current in (
            DomainState.RUNNING,
            DomainState.PAUSED,
            DomainState.OTHER,
        ):
            log.info('Stopping {}', name)
            try:
                self.client.destroy_domain(name)
            except CmdError:
                # it may have powered off on its own since the state read
                if self.state(name) is not DomainState.SHUT_OFF:
                    raise
                log.info('{} shut off before it could be stopped', name)
                return Transition('already-stopped', DomainState.SHUT_OFF)
            return self._verify(name, 'stopped', DomainState.SHUT_OFF)
        log.info('{} already stopped ({})', name, current.value)
        if current is DomainState.UNDEFINED:
            return Transition('absent', current)
        return Transition('already-stopped', current)

    def undefine(self, name: str) -> Transition:
        current = self.state(name)
        if not current.defined:
            log.info('{} already undefined', name)
            return Transition('absent', current)
        log.info('Undefining {}', name)
        self.client.undefine_domain(name)
        return self._verify(name, 'undefined', DomainState.UNDEFINED)
