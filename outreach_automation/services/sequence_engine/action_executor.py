"""
Channel side effects for sequence steps.

This module contains functionality for:
- Personalizing a step's content for one contact
- Building the ChannelMessage for the step's channel
- Dispatching it through the channel registry
"""

import logging
from typing import Any, Dict

from outreach_automation.utils.exceptions import PersonalizationError
from .definitions import Step, StepType, TaskConfig
from .message_formatter import personalize

logger = logging.getLogger(__name__)


def _personalize_for_step(self, text, record, variables, step: Step) -> str:
    try:
        return personalize(text, record, variables, strict=self.strict_personalization)
    except PersonalizationError as e:
        e.step_id = step.id
        raise


def _build_channel_message(self, context, contact, step: Step):
    from outreach_automation.services.channels import ChannelMessage

    record = contact.to_record()
    variables = context.variables
    message = ChannelMessage(
        channel=step.type,
        contact_id=contact.id,
        step_id=step.id,
        context_id=context.id,
        attempt=context.delivery_attempts + 1,
        send_number=context.steps_sent + 1,
        recipient={
            'email': contact.email,
            'social_profile_url': contact.social_profile_url,
            'social_provider_id': contact.social_provider_id,
            'phone': contact.phone,
        },
    )

    config = step.config
    if isinstance(config, TaskConfig):
        message.title = self._personalize_for_step(config.title, record, variables, step)
        message.description = self._personalize_for_step(config.description, record, variables, step)
        message.assignee = config.assign_to
    else:
        if step.type == StepType.EMAIL:
            message.subject = self._personalize_for_step(config.subject, record, variables, step)
        message.content = self._personalize_for_step(config.content, record, variables, step)
        if step.type == StepType.SOCIAL_MESSAGE:
            message.account_id = config.account_id
    return message


def _execute_side_effect(self, context, contact, step: Step) -> Dict[str, Any]:
    """Run the step's channel action for one contact.

    Raises DeliveryError when the channel rejects the message and
    PersonalizationError when strict personalization finds unresolved tokens.
    """
    message = self._build_channel_message(context, contact, step)
    logger.info(f"Dispatching {step.type.value} step {step.id} to contact {contact.id} (attempt {message.attempt})")

    result = self.channels.send(message)

    provider_id = result.get('provider_id') if isinstance(result, dict) else None
    if provider_id and not contact.social_provider_id:
        contact.social_provider_id = provider_id
    return result or {'success': True}
