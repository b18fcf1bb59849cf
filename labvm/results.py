"""Result dataclasses returned by reconciliation workflows."""

from __future__ import annotations

from dataclasses import dataclass, field

# Actions that change host or control-plane state.
MUTATING_ACTIONS = frozenset(
    {
        'copied',
        'created',
        'recreated',
        'customized',
        'rendered',
        'defined',
        'registered',
        'started',
        'resumed',
        'stopped',
        'undefined',
        'removed',
        'downloaded',
        'autostarted',
    }
)


@dataclass(frozen=True)
class Step:
    resource: str
    action: str
    detail: str = ''

    @property
    def mutating(self) -> bool:
        return self.action in MUTATING_ACTIONS


@dataclass
class WorkflowResult:
    workflow: str
    steps: list[Step] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    aborted: bool = False

    def record(self, resource: str, action: str, detail: str = '') -> Step:
        step = Step(resource, action, detail)
        self.steps.append(step)
        return step

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def extend(self, other: 'WorkflowResult') -> None:
        self.steps.extend(other.steps)
        self.warnings.extend(other.warnings)

    @property
    def changed(self) -> bool:
        return any(step.mutating for step in self.steps)

    def actions_for(self, resource: str) -> list[str]:
        return [s.action for s in self.steps if s.resource == resource]
