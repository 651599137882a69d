from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar, Union

from eco.core.result import Err, Ok, Result
from eco.services.release.errors import ReleaseError


S = TypeVar("S")


@dataclass(frozen=True, slots=True)
class StepAdvance(Generic[S]):
    state: S


@dataclass(frozen=True, slots=True)
class StepFinish:
    pass


StepOutcome: TypeAlias = Union[StepAdvance[S], StepFinish]
StepHandler: TypeAlias = Callable[[S], Result[StepOutcome[S], ReleaseError]]
SaveState: TypeAlias = Callable[[S], Result[S, ReleaseError]]
GetStep: TypeAlias = Callable[[S], str]


FINISH = StepFinish()


def advance(state: S) -> StepAdvance[S]:
    return StepAdvance(state=state)


def run_state_machine(
    *,
    initial_state: S,
    get_step: GetStep[S],
    handlers: Mapping[str, StepHandler[S]],
    save_state: SaveState[S],
) -> Result[S, ReleaseError]:
    """Run handlers until one finishes; every advanced state is saved before the next step."""
    current = initial_state

    while True:
        step = get_step(current)
        handler = handlers.get(step)
        if handler is None:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"unknown apply step: {step}",
                )
            )

        outcome = handler(current)
        if isinstance(outcome, Err):
            return outcome

        if isinstance(outcome.value, StepFinish):
            return Ok(current)

        current = outcome.value.state
        saved = save_state(current)
        if isinstance(saved, Err):
            return saved
        current = saved.value
