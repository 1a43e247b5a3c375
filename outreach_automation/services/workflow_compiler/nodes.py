"""
Node factories for the automation runtime.

Each factory returns (node type, type version, parameters) for one step or
guard. Every contact field is read from the webhook trigger's request body,
not from $json: after the first send node the current item is that node's
result. Message content goes through to_runtime_expression so {{firstName}}
reaches the runtime as {{$node["Webhook Trigger"].json["body"]["firstName"]}};
the stored definition never holds runtime syntax.
"""

from typing import Any, Dict, Tuple

from outreach_automation.services.sequence_engine.definitions import ConditionType, Step, StepCondition
from outreach_automation.services.sequence_engine.delay_calculator import runtime_wait_parameters
from outreach_automation.services.sequence_engine.message_formatter import to_runtime_expression

NodeSpec = Tuple[str, float, Dict[str, Any]]

WEBHOOK_NODE = 'n8n-nodes-base.webhook'
EMAIL_NODE = 'n8n-nodes-base.emailSend'
HTTP_REQUEST_NODE = 'n8n-nodes-base.httpRequest'
SMS_NODE = 'n8n-nodes-base.twilio'
WAIT_NODE = 'n8n-nodes-base.wait'
IF_NODE = 'n8n-nodes-base.if'

TRIGGER_NODE_NAME = 'Webhook Trigger'

# Payload field each condition type reads, and the value that counts as a match
CONDITION_FIELDS = {
    ConditionType.IF_REPLIED: ('has_replied', True),
    ConditionType.IF_NOT_REPLIED: ('has_replied', False),
    ConditionType.IF_OPENED: ('has_opened', True),
    ConditionType.IF_NOT_OPENED: ('has_opened', False),
    ConditionType.IF_CLICKED: ('has_clicked', True),
    ConditionType.IF_NOT_CLICKED: ('has_clicked', False),
}


def contact_field(name: str) -> str:
    return f'$node["{TRIGGER_NODE_NAME}"].json["body"]["{name}"]'


def _field(name: str) -> str:
    return '={{' + contact_field(name) + '}}'


def _text(text) -> str:
    return to_runtime_expression(text, contact_field)


def _webhook_trigger(self, sequence) -> NodeSpec:
    return WEBHOOK_NODE, 1, {
        'path': f"{self.webhook_prefix}{sequence.id}",
        'httpMethod': 'POST',
        'responseMode': 'onReceived',
        'responseData': 'allEntries',
        'options': {},
    }


def _email_node(self, step: Step) -> NodeSpec:
    return EMAIL_NODE, 2.1, {
        'fromEmail': _field('sender_email'),
        'toEmail': _field('contact_email'),
        'subject': _text(step.config.subject),
        'emailType': 'text',
        'text': _text(step.config.content),
        'options': {'appendAttribution': False},
    }


def _social_message_node(self, step: Step) -> NodeSpec:
    # The runtime has no native social channel; messages go out through our webhook
    body = [
        {'name': 'action', 'value': 'send_message'},
        {'name': 'profileUrl', 'value': _field('linkedin_url')},
        {'name': 'message', 'value': _text(step.config.content)},
    ]
    if step.config.account_id:
        body.append({'name': 'accountId', 'value': step.config.account_id})
    return HTTP_REQUEST_NODE, 4.2, {
        'method': 'POST',
        'url': '={{$env["SOCIAL_MESSAGE_WEBHOOK_URL"]}}',
        'sendBody': True,
        'bodyParameters': {'parameters': body},
        'options': {},
    }


def _sms_node(self, step: Step) -> NodeSpec:
    return SMS_NODE, 1, {
        'operation': 'send',
        'from': '={{$env["TWILIO_PHONE_NUMBER"]}}',
        'to': _field('phone'),
        'message': _text(step.config.content),
        'options': {},
    }


def _task_node(self, step: Step) -> NodeSpec:
    return HTTP_REQUEST_NODE, 4.2, {
        'method': 'POST',
        'url': '={{$env["OUTREACH_API_URL"]}}/api/v1/tasks',
        'sendBody': True,
        'bodyParameters': {
            'parameters': [
                {'name': 'title', 'value': _text(step.config.title)},
                {'name': 'description', 'value': _text(step.config.description)},
                {'name': 'assignTo', 'value': step.config.assign_to or _field('owner_id')},
                {'name': 'contactId', 'value': _field('contact_id')},
                {'name': 'stepId', 'value': step.id},
            ]
        },
        'authentication': 'genericCredentialType',
        'genericAuthType': 'httpHeaderAuth',
        'options': {},
    }


def _wait_node(self, step: Step) -> NodeSpec:
    return WAIT_NODE, 1, runtime_wait_parameters(step.timing)


def _condition_node(self, condition: StepCondition) -> NodeSpec:
    """IF node whose output 0 fires when the condition matches."""
    field_name, expected = CONDITION_FIELDS[condition.type]
    return IF_NODE, 1, {
        'conditions': {
            'boolean': [
                {
                    'value1': _field(field_name),
                    'operation': 'equal',
                    'value2': expected,
                }
            ]
        }
    }
