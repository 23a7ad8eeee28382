"""
Step registry: the ordered, named list of provisioning steps.

The order is a flat total order (no dependency graph): later steps
may assume every earlier one completed or was already satisfied.
"""

from __future__ import annotations

from collections.abc import Iterator

from netbox_installer.core.models.step import Step


class DuplicateStepError(ValueError):
    """Two steps were registered under the same name."""


class StepRegistry:
    """Ordered collection of uniquely-named steps."""

    def __init__(self, steps: list[Step] | None = None):
        self._steps: list[Step] = []
        for step in steps or []:
            self.add(step)

    def add(self, step: Step) -> None:
        if self.get(step.name) is not None:
            raise DuplicateStepError(f"Duplicate step name: {step.name}")
        self._steps.append(step)

    def get(self, name: str) -> Step | None:
        for step in self._steps:
            if step.name == name:
                return step
        return None

    def ordinal(self, name: str) -> int:
        """1-based position of a step."""
        for i, step in enumerate(self._steps, start=1):
            if step.name == name:
                return i
        raise KeyError(name)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self._steps]

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    def __iter__(self) -> Iterator[Step]:
        return iter(list(self._steps))

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, name: object) -> bool:
        return any(s.name == name for s in self._steps)
