"""
Channel senders.

Each step type with a side effect has a sender. Senders take a fully
personalized ChannelMessage and either return a result dict or raise
DeliveryError; they never retry on their own. Retries are rescheduled by the
engine, so a message can be delivered more than once and carries an
idempotency key the provider can use to drop duplicates. The key is the same
for every retry of one send; the attempt number only shows up in logs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
import resend

from outreach_automation.services.sequence_engine.definitions import StepType
from outreach_automation.services.unipile_client import UnipileAPIError, UnipileClient
from outreach_automation.utils.exceptions import DeliveryError

logger = logging.getLogger(__name__)


@dataclass
class ChannelMessage:
    channel: StepType
    contact_id: str
    step_id: str
    context_id: Optional[str] = None
    attempt: int = 1
    send_number: int = 1
    recipient: Dict[str, Any] = field(default_factory=dict)
    subject: Optional[str] = None
    content: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    assignee: Optional[str] = None
    account_id: Optional[str] = None

    @property
    def idempotency_key(self) -> str:
        """context:step:send. A step reached again through a jump is a new send."""
        return f"{self.context_id}:{self.step_id}:{self.send_number}"

    def delivery_error(self, message: str) -> DeliveryError:
        return DeliveryError(message, contact_id=self.contact_id, step_id=self.step_id, channel=self.channel.value)


class ChannelSender:
    """Base class for channel senders."""

    channel: StepType = None

    def send(self, message: ChannelMessage) -> Dict[str, Any]:
        raise NotImplementedError


class EmailSender(ChannelSender):
    channel = StepType.EMAIL

    def __init__(self, api_key: Optional[str], from_email: str):
        self.api_key = api_key
        self.from_email = from_email
        if api_key:
            resend.api_key = api_key
        else:
            logger.warning("No Resend API key configured - email steps will fail")

    def send(self, message: ChannelMessage) -> Dict[str, Any]:
        to_email = message.recipient.get('email')
        if not to_email:
            raise message.delivery_error("Contact has no email address")
        if not self.api_key:
            raise message.delivery_error("Email channel is not configured")

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": message.subject or '',
                "text": message.content or '',
                "headers": {"X-Idempotency-Key": message.idempotency_key},
            })
        except Exception as e:
            logger.error(f"Failed to send email to contact {message.contact_id}: {str(e)}")
            raise message.delivery_error(f"Email send failed: {str(e)}")

        provider_id = response.get('id') if isinstance(response, dict) else None
        logger.info(f"Email sent to contact {message.contact_id} for step {message.step_id}: {provider_id}")
        return {'success': True, 'provider_message_id': provider_id}


class SocialMessageSender(ChannelSender):
    channel = StepType.SOCIAL_MESSAGE

    def __init__(self, client: UnipileClient, default_account_id: Optional[str] = None):
        self.client = client
        self.default_account_id = default_account_id

    def send(self, message: ChannelMessage) -> Dict[str, Any]:
        account_id = message.account_id or self.default_account_id
        if not account_id:
            raise message.delivery_error("No social account configured for this step")

        provider_id = message.recipient.get('social_provider_id')
        try:
            if not provider_id:
                profile_url = message.recipient.get('social_profile_url')
                if not profile_url:
                    raise message.delivery_error("Contact has no social profile URL")
                provider_id = self.client.resolve_provider_id(profile_url, account_id)
                if not provider_id:
                    raise message.delivery_error("Unable to resolve social provider ID for contact")

            result = self.client.start_chat_with_attendee(account_id, provider_id, message.content or '')
        except UnipileAPIError as e:
            logger.error(f"Social message to contact {message.contact_id} failed: {str(e)}")
            raise message.delivery_error(f"Social message failed: {str(e)}")

        chat_id = (result or {}).get('chat_id') or (result or {}).get('id')
        logger.info(f"Social message sent to contact {message.contact_id} for step {message.step_id} (chat {chat_id})")
        return {'success': True, 'provider_id': provider_id, 'chat_id': chat_id}


class SmsSender(ChannelSender):
    channel = StepType.SMS

    def __init__(self, gateway_url: Optional[str], token: Optional[str] = None, timeout: int = 30):
        self.gateway_url = gateway_url
        self.token = token
        self.timeout = timeout

    def send(self, message: ChannelMessage) -> Dict[str, Any]:
        phone = message.recipient.get('phone')
        if not phone:
            raise message.delivery_error("Contact has no phone number")
        if not self.gateway_url:
            raise message.delivery_error("SMS channel is not configured")

        headers = {'Idempotency-Key': message.idempotency_key}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"

        try:
            response = requests.post(
                self.gateway_url,
                json={'to': phone, 'body': message.content or ''},
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"SMS to contact {message.contact_id} failed: {str(e)}")
            raise message.delivery_error(f"SMS send failed: {str(e)}")

        logger.info(f"SMS sent to contact {message.contact_id} for step {message.step_id}")
        return {'success': True, 'status_code': response.status_code}


class TaskCreator(ChannelSender):
    """Creates a manual task row instead of contacting anyone."""
    channel = StepType.TASK

    def __init__(self, repository):
        self.repository = repository

    def send(self, message: ChannelMessage) -> Dict[str, Any]:
        task = self.repository.create_task(
            title=message.title or 'Follow up',
            description=message.description,
            assignee=message.assignee,
            contact_id=message.contact_id,
            context_id=message.context_id,
            step_id=message.step_id,
            idempotency_key=message.idempotency_key,
        )
        logger.info(f"Task '{task.title}' created for contact {message.contact_id}")
        return {'success': True, 'task_id': task.id}


class ChannelRegistry:
    """Step type -> sender."""

    def __init__(self, senders: Optional[Dict[StepType, ChannelSender]] = None):
        self.senders = dict(senders or {})

    def register(self, step_type: StepType, sender: ChannelSender):
        self.senders[StepType(step_type)] = sender

    def get(self, step_type: StepType) -> ChannelSender:
        sender = self.senders.get(StepType(step_type))
        if sender is None:
            raise DeliveryError(f"No sender registered for channel '{StepType(step_type).value}'",
                                channel=StepType(step_type).value)
        return sender

    def send(self, message: ChannelMessage) -> Dict[str, Any]:
        return self.get(message.channel).send(message)

    @classmethod
    def default(cls, app_config, repository) -> 'ChannelRegistry':
        """Senders wired from Flask config."""
        unipile = UnipileClient(
            api_key=app_config.get('UNIPILE_API_KEY'),
            base_url=app_config.get('UNIPILE_API_BASE_URL'),
        )
        return cls({
            StepType.EMAIL: EmailSender(app_config.get('RESEND_API_KEY'), app_config.get('EMAIL_FROM')),
            StepType.SOCIAL_MESSAGE: SocialMessageSender(unipile, app_config.get('UNIPILE_ACCOUNT_ID')),
            StepType.SMS: SmsSender(
                app_config.get('SMS_GATEWAY_URL'),
                app_config.get('SMS_GATEWAY_TOKEN'),
                timeout=app_config.get('RUNTIME_REQUEST_TIMEOUT', 30),
            ),
            StepType.TASK: TaskCreator(repository),
        })
