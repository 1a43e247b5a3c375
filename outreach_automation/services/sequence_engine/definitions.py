"""
Sequence definitions.

This module contains the declarative data structures every other part of the
engine depends on:
- Sequence, Step, StepTiming, StepCondition, Trigger
- One config class per step type (EmailConfig, TaskConfig, ...)
- Parsing from / serialising to the wire format stored in the database

Step configs are a tagged union keyed by the step type, so a wait step cannot
carry message content and a task step cannot carry a subject.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from outreach_automation.utils.exceptions import ValidationError


class StepType(str, Enum):
    EMAIL = 'email'
    SOCIAL_MESSAGE = 'social_message'
    SMS = 'sms'
    TASK = 'task'
    WAIT = 'wait'
    CONDITION = 'condition'


# Older definitions used the channel name for social messages
STEP_TYPE_ALIASES = {
    'social-message': StepType.SOCIAL_MESSAGE,
    'linkedin': StepType.SOCIAL_MESSAGE,
}

MESSAGE_STEP_TYPES = (StepType.EMAIL, StepType.SOCIAL_MESSAGE, StepType.SMS)
SIDE_EFFECT_STEP_TYPES = MESSAGE_STEP_TYPES + (StepType.TASK,)


class DelayUnit(str, Enum):
    MINUTES = 'minutes'
    HOURS = 'hours'
    DAYS = 'days'
    WEEKS = 'weeks'


class ConditionType(str, Enum):
    IF_REPLIED = 'if_replied'
    IF_NOT_REPLIED = 'if_not_replied'
    IF_OPENED = 'if_opened'
    IF_NOT_OPENED = 'if_not_opened'
    IF_CLICKED = 'if_clicked'
    IF_NOT_CLICKED = 'if_not_clicked'


class ConditionAction(str, Enum):
    CONTINUE = 'continue'
    STOP = 'stop'
    JUMP_TO = 'jump_to'


class TriggerType(str, Enum):
    MANUAL = 'manual'
    TAG_ADDED = 'tag_added'
    FORM_SUBMITTED = 'form_submitted'
    LIST_ADDED = 'list_added'
    CAMPAIGN_COMPLETED = 'campaign_completed'


class SequenceStatus(str, Enum):
    """draft -> active <-> paused -> completed.

    Completed is set by SequenceEngine.complete_sequence once no contact is
    still in progress; it is final.
    """

    DRAFT = 'draft'
    ACTIVE = 'active'
    PAUSED = 'paused'
    COMPLETED = 'completed'


def _coerce_enum(enum_cls, value, what: str, step_id: Optional[str] = None):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ', '.join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {what} '{value}' (expected one of: {allowed})", step_id=step_id)


@dataclass
class StepTiming:
    delay: float = 0
    unit: DelayUnit = DelayUnit.MINUTES
    business_hours: bool = False
    timezone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], step_id: Optional[str] = None) -> 'StepTiming':
        data = data or {}
        delay = data.get('delay', 0)
        if isinstance(delay, bool) or not isinstance(delay, (int, float)):
            raise ValidationError(f"Step {step_id}: timing.delay must be a number", step_id=step_id)
        timezone = data.get('timezone')
        if timezone is not None and not isinstance(timezone, str):
            raise ValidationError(f"Step {step_id}: timing.timezone must be a string", step_id=step_id)
        return cls(
            delay=delay,
            unit=_coerce_enum(DelayUnit, data.get('unit', 'minutes'), 'delay unit', step_id),
            business_hours=bool(data.get('businessHours', data.get('business_hours', False))),
            timezone=timezone,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'delay': self.delay, 'unit': self.unit.value}
        if self.business_hours:
            result['businessHours'] = True
        if self.timezone:
            result['timezone'] = self.timezone
        return result


@dataclass
class StepCondition:
    type: ConditionType
    action: ConditionAction
    target_step_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], step_id: Optional[str] = None) -> 'StepCondition':
        if not isinstance(data, dict):
            raise ValidationError(f"Step {step_id}: each condition must be an object", step_id=step_id)
        return cls(
            type=_coerce_enum(ConditionType, data.get('type'), 'condition type', step_id),
            action=_coerce_enum(ConditionAction, data.get('action'), 'condition action', step_id),
            target_step_id=data.get('targetStepId', data.get('target_step_id')),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'type': self.type.value, 'action': self.action.value}
        if self.target_step_id is not None:
            result['targetStepId'] = self.target_step_id
        return result


@dataclass
class Trigger:
    type: TriggerType
    config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Trigger':
        return cls(
            type=_coerce_enum(TriggerType, data.get('type'), 'trigger type'),
            config=dict(data.get('config') or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type.value, 'config': dict(self.config)}


# --- Step configs -----------------------------------------------------------
#
# WIRE_FIELDS maps the attribute name to the key used in stored definitions.

@dataclass
class EmailConfig:
    subject: Optional[str] = None
    content: Optional[str] = None
    template_id: Optional[str] = None
    personalization: bool = False

    WIRE_FIELDS = {'subject': 'subject', 'content': 'content',
                   'template_id': 'templateId', 'personalization': 'personalization'}


@dataclass
class SocialMessageConfig:
    content: Optional[str] = None
    template_id: Optional[str] = None
    personalization: bool = False
    account_id: Optional[str] = None

    WIRE_FIELDS = {'content': 'content', 'template_id': 'templateId',
                   'personalization': 'personalization', 'account_id': 'accountId'}


@dataclass
class SmsConfig:
    content: Optional[str] = None
    template_id: Optional[str] = None
    personalization: bool = False

    WIRE_FIELDS = {'content': 'content', 'template_id': 'templateId',
                   'personalization': 'personalization'}


@dataclass
class TaskConfig:
    title: Optional[str] = None
    description: Optional[str] = None
    assign_to: Optional[str] = None

    WIRE_FIELDS = {'title': 'taskTitle', 'description': 'taskDescription', 'assign_to': 'assignTo'}


@dataclass
class WaitConfig:
    WIRE_FIELDS = {}


@dataclass
class ConditionConfig:
    condition_type: Optional[str] = None
    condition_value: Any = None

    WIRE_FIELDS = {'condition_type': 'conditionType', 'condition_value': 'conditionValue'}


# Config attributes whose values must be strings or booleans when set
STRING_CONFIG_FIELDS = frozenset({
    'subject', 'content', 'template_id', 'account_id', 'title', 'description', 'assign_to',
    'condition_type',
})
BOOL_CONFIG_FIELDS = frozenset({'personalization'})

StepConfig = Union[EmailConfig, SocialMessageConfig, SmsConfig, TaskConfig, WaitConfig, ConditionConfig]

STEP_CONFIG_TYPES = {
    StepType.EMAIL: EmailConfig,
    StepType.SOCIAL_MESSAGE: SocialMessageConfig,
    StepType.SMS: SmsConfig,
    StepType.TASK: TaskConfig,
    StepType.WAIT: WaitConfig,
    StepType.CONDITION: ConditionConfig,
}


def parse_step_config(step_type: StepType, data: Optional[Dict[str, Any]], step_id: Optional[str] = None) -> StepConfig:
    """Build the config object for a step type.

    Rejects fields that belong to other step types and values of the wrong type.
    """
    config_cls = STEP_CONFIG_TYPES[step_type]
    data = dict(data or {})
    by_wire_name = {wire: attr for attr, wire in config_cls.WIRE_FIELDS.items()}

    kwargs = {}
    unknown = []
    for key, value in data.items():
        attr = by_wire_name.get(key)
        if attr is None and key in config_cls.WIRE_FIELDS:
            attr = key
        if attr is None:
            unknown.append(key)
            continue
        kwargs[attr] = value

    if unknown:
        raise ValidationError(
            f"Step {step_id}: config fields {sorted(unknown)} are not valid for a '{step_type.value}' step",
            step_id=step_id,
        )
    config = config_cls(**kwargs)
    errors = config_type_errors(config, step_id)
    if errors:
        raise ValidationError(errors[0], step_id=step_id, errors=errors)
    return config


def config_type_errors(config: StepConfig, step_id: Optional[str] = None) -> List[str]:
    """One message per config field whose value has the wrong type."""
    errors = []
    for item in fields(config):
        value = getattr(config, item.name)
        if value is None:
            continue
        wire_name = config.WIRE_FIELDS[item.name]
        if item.name in STRING_CONFIG_FIELDS and not isinstance(value, str):
            errors.append(f"Step {step_id}: config.{wire_name} must be a string, got {type(value).__name__}")
        elif item.name in BOOL_CONFIG_FIELDS and not isinstance(value, bool):
            errors.append(f"Step {step_id}: config.{wire_name} must be true or false, got {type(value).__name__}")
    return errors


def step_config_to_dict(config: StepConfig) -> Dict[str, Any]:
    result = {}
    for item in fields(config):
        value = getattr(config, item.name)
        if value is None or value is False:
            continue
        result[config.WIRE_FIELDS[item.name]] = value
    return result


@dataclass
class StepStats:
    sent: int = 0
    opened: int = 0
    replied: int = 0
    clicked: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {'sent': self.sent, 'opened': self.opened, 'replied': self.replied, 'clicked': self.clicked}


@dataclass
class Step:
    id: str
    type: StepType
    name: str = ''
    config: StepConfig = field(default_factory=WaitConfig)
    timing: StepTiming = field(default_factory=StepTiming)
    conditions: List[StepCondition] = field(default_factory=list)
    stats: Optional[StepStats] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Step':
        if not isinstance(data, dict):
            raise ValidationError("Each step must be an object")
        step_id = data.get('id')
        if not step_id:
            raise ValidationError("Step is missing an id")
        step_id = str(step_id)

        raw_type = data.get('type')
        step_type = STEP_TYPE_ALIASES.get(raw_type) or _coerce_enum(StepType, raw_type, 'step type', step_id)

        name = data.get('name') or ''
        if not isinstance(name, str):
            raise ValidationError(f"Step {step_id}: name must be a string", step_id=step_id)

        conditions = data.get('conditions') or []
        if not isinstance(conditions, list):
            raise ValidationError(f"Step {step_id}: conditions must be a list", step_id=step_id)

        return cls(
            id=step_id,
            type=step_type,
            name=name,
            config=parse_step_config(step_type, data.get('config'), step_id),
            timing=StepTiming.from_dict(data.get('timing'), step_id),
            conditions=[StepCondition.from_dict(c, step_id) for c in conditions],
        )

    @property
    def has_side_effect(self) -> bool:
        return self.type in SIDE_EFFECT_STEP_TYPES

    @property
    def display_name(self) -> str:
        return self.name or f"{self.type.value} {self.id}"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'type': self.type.value,
            'name': self.name,
            'config': step_config_to_dict(self.config),
            'timing': self.timing.to_dict(),
        }
        if self.conditions:
            result['conditions'] = [c.to_dict() for c in self.conditions]
        if self.stats is not None:
            result['stats'] = self.stats.to_dict()
        return result


@dataclass
class SequenceStats:
    total_contacts: int = 0
    completed: int = 0
    in_progress: int = 0
    response_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalContacts': self.total_contacts,
            'completed': self.completed,
            'inProgress': self.in_progress,
            'responseRate': self.response_rate,
        }


@dataclass
class Sequence:
    id: str
    name: str
    description: str = ''
    status: SequenceStatus = SequenceStatus.DRAFT
    steps: List[Step] = field(default_factory=list)
    triggers: List[Trigger] = field(default_factory=list)
    stats: Optional[SequenceStats] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Sequence':
        if not isinstance(data, dict):
            raise ValidationError("Sequence definition must be an object")
        steps = data.get('steps') or []
        triggers = data.get('triggers') or []
        if not isinstance(steps, list) or not isinstance(triggers, list):
            raise ValidationError("Sequence steps and triggers must be lists")
        return cls(
            id=str(data.get('id') or ''),
            name=data.get('name') or '',
            description=data.get('description') or '',
            status=_coerce_enum(SequenceStatus, data.get('status', 'draft'), 'sequence status'),
            steps=[Step.from_dict(s) for s in steps],
            triggers=[Trigger.from_dict(t) for t in triggers],
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'status': self.status.value,
            'triggers': [t.to_dict() for t in self.triggers],
            'steps': [s.to_dict() for s in self.steps],
        }
        if self.stats is not None:
            result['stats'] = self.stats.to_dict()
        return result

    def step_index(self, step_id: str) -> Optional[int]:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return None

    def get_step(self, step_id: str) -> Optional[Step]:
        index = self.step_index(step_id)
        return self.steps[index] if index is not None else None
