from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger("drafter.agent")


@dataclass
class Step:
    """Named preparation step run before a reply is generated."""
    name: str
    fn: Callable[[object], None]
    skip_if: Optional[Callable[[object], bool]] = None
    always_run: bool = False


class StepRunner:
    """Deterministic, ordered step runner for reply preparation."""

    def __init__(self, steps: List[Step]) -> None:
        self._steps = steps

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    def run(self, context: object) -> None:
        """Purpose: Execute steps in order with optional skip/always-run rules.
        Inputs/Outputs: Input is a mutable context object; no return value.
        Side Effects / State: Invokes step functions that may mutate context.
        Dependencies: Step.fn and Step.skip_if semantics.
        Failure Modes: Exceptions in step functions propagate to the caller.
        If Removed: Thread history, seller requirements and the system prompt are never
            prepared and generation runs blind.
        Testing Notes: Verify skip_if and always_run logic with simple steps.
        """
        for step in self._steps:
            if not step.always_run and step.skip_if and step.skip_if(context):
                logger.debug("step=%s status=skipped", step.name)
                continue
            step.fn(context)
            logger.debug("step=%s status=success", step.name)
