"""
Sequence validation.

This module contains functionality for:
- Structural checks on parsed sequences (ids, delays, jump targets, configs)
- Activation checks (at least one trigger)
- The valid/errors/warnings report used by the API
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import pytz

from outreach_automation.utils.exceptions import ValidationError
from .definitions import ConditionAction, MESSAGE_STEP_TYPES, Sequence, StepType, config_type_errors
from .delay_calculator import to_seconds
from .message_formatter import find_tokens

logger = logging.getLogger(__name__)

# Six weeks
LONG_DELAY_SECONDS = 6 * 7 * 24 * 60 * 60


def _collect_problems(sequence: Sequence, for_activation: bool) -> List[Tuple[Optional[str], str]]:
    problems = []

    if not sequence.steps:
        problems.append((None, "Sequence must contain at least one step"))

    seen_ids = set()
    for step in sequence.steps:
        label = f"Step {step.id}"

        if step.id in seen_ids:
            problems.append((step.id, f"{label}: duplicate step id"))
        seen_ids.add(step.id)

        type_errors = config_type_errors(step.config, step.id)
        problems.extend((step.id, message) for message in type_errors)
        if type_errors:
            continue

        if step.timing.delay < 0:
            problems.append((step.id, f"{label}: delay cannot be negative"))

        if step.timing.timezone:
            try:
                pytz.timezone(step.timing.timezone)
            except pytz.exceptions.UnknownTimeZoneError:
                problems.append((step.id, f"{label}: unknown timezone '{step.timing.timezone}'"))

        if step.type in MESSAGE_STEP_TYPES and not (step.config.content or step.config.template_id
                                                     or getattr(step.config, 'subject', None)):
            problems.append((step.id, f"{label}: {step.type.value} step has no content"))

        if step.type == StepType.TASK and not step.config.title:
            problems.append((step.id, f"{label}: task step has no title"))

        if step.type == StepType.CONDITION and not step.conditions:
            problems.append((step.id, f"{label}: condition step must define at least one condition"))

        for condition in step.conditions:
            if condition.action == ConditionAction.JUMP_TO:
                if not condition.target_step_id:
                    problems.append((step.id, f"{label}: jump_to condition is missing targetStepId"))
                elif sequence.step_index(condition.target_step_id) is None:
                    problems.append((
                        step.id,
                        f"{label}: jump_to target '{condition.target_step_id}' does not exist",
                    ))
                elif condition.target_step_id == step.id:
                    problems.append((step.id, f"{label}: jump_to cannot target its own step"))
            elif condition.target_step_id:
                problems.append((
                    step.id,
                    f"{label}: targetStepId is only allowed with the jump_to action",
                ))

    if for_activation and not sequence.triggers:
        problems.append((None, "Sequence must have at least one trigger before activation"))

    return problems


def validate_sequence(sequence: Sequence, for_activation: bool = False) -> Sequence:
    """Raise ValidationError listing every problem; the first offending step is named."""
    problems = _collect_problems(sequence, for_activation)
    if problems:
        step_id = next((sid for sid, _ in problems if sid is not None), None)
        messages = [message for _, message in problems]
        raise ValidationError(messages[0], step_id=step_id, errors=messages)
    return sequence


def parse_and_validate(data: Dict[str, Any], for_activation: bool = False) -> Sequence:
    return validate_sequence(Sequence.from_dict(data), for_activation=for_activation)


def _collect_warnings(sequence: Sequence) -> List[str]:
    warnings = []
    for step in sequence.steps:
        label = f"Step {step.id}"
        if step.type in MESSAGE_STEP_TYPES:
            texts = [getattr(step.config, 'subject', None), step.config.content]
            if not any(find_tokens(t) for t in texts):
                warnings.append(f"{label}: No personalization placeholders found")

        if to_seconds(step.timing.delay, step.timing.unit) > LONG_DELAY_SECONDS:
            warnings.append(f"{label}: delay is very long (>6 weeks)")

        if step.timing.business_hours:
            warnings.append(f"{label}: businessHours is recorded but does not change scheduling")

        if step.type == StepType.WAIT and step.timing.delay == 0:
            warnings.append(f"{label}: wait step has no delay")

    return warnings


def check_sequence(data: Dict[str, Any], for_activation: bool = False) -> Dict[str, Any]:
    """Validate a sequence definition and return a report instead of raising."""
    try:
        sequence = Sequence.from_dict(data)
    except ValidationError as e:
        return {'valid': False, 'errors': e.errors, 'warnings': [], 'step_id': e.step_id}

    problems = _collect_problems(sequence, for_activation)
    return {
        'valid': len(problems) == 0,
        'errors': [message for _, message in problems],
        'warnings': _collect_warnings(sequence),
        'step_id': next((sid for sid, _ in problems if sid is not None), None),
    }
