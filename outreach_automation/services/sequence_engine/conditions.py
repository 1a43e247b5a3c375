"""
Condition evaluation.

Conditions are checked in list order against a contact's interaction state and
the first match decides the action. No match means continue.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

from .definitions import ConditionAction, ConditionType, StepCondition


@dataclass(frozen=True)
class InteractionState:
    has_replied: bool = False
    has_opened: bool = False
    has_clicked: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'InteractionState':
        def flag(camel, snake):
            return bool(data.get(camel, data.get(snake, False)))
        return cls(
            has_replied=flag('hasReplied', 'has_replied'),
            has_opened=flag('hasOpened', 'has_opened'),
            has_clicked=flag('hasClicked', 'has_clicked'),
        )


@dataclass(frozen=True)
class ConditionOutcome:
    action: ConditionAction
    target_step_id: Optional[str] = None
    matched: Optional[StepCondition] = None

    @property
    def should_stop(self) -> bool:
        return self.action == ConditionAction.STOP

    @property
    def should_jump(self) -> bool:
        return self.action == ConditionAction.JUMP_TO


CONTINUE = ConditionOutcome(ConditionAction.CONTINUE)

_CHECKS = {
    ConditionType.IF_REPLIED: lambda s: s.has_replied,
    ConditionType.IF_NOT_REPLIED: lambda s: not s.has_replied,
    ConditionType.IF_OPENED: lambda s: s.has_opened,
    ConditionType.IF_NOT_OPENED: lambda s: not s.has_opened,
    ConditionType.IF_CLICKED: lambda s: s.has_clicked,
    ConditionType.IF_NOT_CLICKED: lambda s: not s.has_clicked,
}


def condition_matches(condition: StepCondition, state: InteractionState) -> bool:
    return _CHECKS[condition.type](state)


def evaluate_conditions(conditions: Optional[Iterable[StepCondition]],
                        interaction: Union[InteractionState, Mapping[str, Any], None]) -> ConditionOutcome:
    if interaction is None:
        state = InteractionState()
    elif isinstance(interaction, InteractionState):
        state = interaction
    else:
        state = InteractionState.from_mapping(interaction)

    for condition in conditions or []:
        if condition_matches(condition, state):
            return ConditionOutcome(condition.action, condition.target_step_id, condition)
    return CONTINUE
