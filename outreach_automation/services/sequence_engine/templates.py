"""
Prebuilt sequence templates.

Templates are stored in the same wire format as persisted sequences, so a new
sequence is created by copying one and giving it a fresh id.
"""

import copy
import uuid
from typing import Any, Dict, List, Optional

from outreach_automation.utils.exceptions import NotFoundError

SEQUENCE_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "cold-outreach-basic",
        "name": "Cold Outreach + 3 Follow-ups",
        "description": "Initial email with 3 automated follow-ups over 2 weeks",
        "status": "draft",
        "triggers": [{"type": "manual", "config": {}}],
        "steps": [
            {
                "id": "step-1",
                "type": "email",
                "name": "Initial Outreach",
                "config": {
                    "subject": "Quick question about {{company}}",
                    "content": (
                        "Hi {{firstName}},\n\n"
                        "I noticed {{company}} is {{trigger_event}}.\n\n"
                        "{{value_proposition}}\n\n"
                        "Worth a quick chat?\n\n"
                        "Best,\n{{sender_name}}"
                    ),
                    "personalization": True,
                },
                "timing": {"delay": 0, "unit": "minutes", "businessHours": True},
                "conditions": [{"type": "if_replied", "action": "stop"}],
            },
            {
                "id": "step-2",
                "type": "wait",
                "name": "Wait 3 days",
                "config": {},
                "timing": {"delay": 3, "unit": "days"},
            },
            {
                "id": "step-3",
                "type": "email",
                "name": "Follow-up 1",
                "config": {
                    "subject": "Re: Quick question about {{company}}",
                    "content": (
                        "Hi {{firstName}},\n\n"
                        "Just following up on my previous email.\n\n"
                        "{{follow_up_hook}}\n\n"
                        "Is this something you're exploring?\n\n"
                        "{{sender_name}}"
                    ),
                    "personalization": True,
                },
                "timing": {"delay": 0, "unit": "minutes"},
                "conditions": [{"type": "if_replied", "action": "stop"}],
            },
            {
                "id": "step-4",
                "type": "wait",
                "name": "Wait 4 days",
                "config": {},
                "timing": {"delay": 4, "unit": "days"},
            },
            {
                "id": "step-5",
                "type": "email",
                "name": "Follow-up 2",
                "config": {
                    "subject": "Re: {{company}} - Last check",
                    "content": (
                        "{{firstName}},\n\n"
                        "I know you're busy. Would it make sense to connect for 10 minutes next week?\n\n"
                        "If not, I'll stop reaching out.\n\n"
                        "{{sender_name}}"
                    ),
                    "personalization": True,
                },
                "timing": {"delay": 0, "unit": "minutes"},
                "conditions": [{"type": "if_replied", "action": "stop"}],
            },
            {
                "id": "step-6",
                "type": "wait",
                "name": "Wait 7 days",
                "config": {},
                "timing": {"delay": 7, "unit": "days"},
            },
            {
                "id": "step-7",
                "type": "email",
                "name": "Break-up Email",
                "config": {
                    "subject": "Should I close your file?",
                    "content": (
                        "Hi {{firstName}},\n\n"
                        "I haven't heard back, so I'm assuming this isn't a priority right now.\n\n"
                        "I'll close your file for now, but feel free to reach out if things change.\n\n"
                        "Best,\n{{sender_name}}"
                    ),
                    "personalization": True,
                },
                "timing": {"delay": 0, "unit": "minutes"},
            },
        ],
    },
    {
        "id": "social-outreach",
        "name": "Connection + Message Sequence",
        "description": "Connect on a social network, then send personalized messages",
        "status": "draft",
        "triggers": [{"type": "manual", "config": {}}],
        "steps": [
            {
                "id": "step-1",
                "type": "social_message",
                "name": "Send Connection Request",
                "config": {
                    "content": (
                        "Hi {{firstName}}, I see we're both in {{industry}}. Would love to connect "
                        "and share insights about {{common_interest}}."
                    ),
                    "personalization": True,
                },
                "timing": {"delay": 0, "unit": "minutes"},
            },
            {
                "id": "step-2",
                "type": "wait",
                "name": "Wait for acceptance",
                "config": {},
                "timing": {"delay": 2, "unit": "days"},
            },
            {
                "id": "step-3",
                "type": "condition",
                "name": "Check if connected",
                "config": {"conditionType": "custom", "conditionValue": "connected"},
                "timing": {"delay": 0, "unit": "minutes"},
                "conditions": [{"type": "if_not_replied", "action": "stop"}],
            },
            {
                "id": "step-4",
                "type": "social_message",
                "name": "Send Welcome Message",
                "config": {
                    "content": (
                        "Thanks for connecting, {{firstName}}!\n\n"
                        "I noticed {{observation_about_profile}}.\n\n"
                        "{{value_proposition}}\n\n"
                        "Would you be open to a brief conversation about how we might help?"
                    ),
                    "personalization": True,
                },
                "timing": {"delay": 1, "unit": "hours"},
            },
            {
                "id": "step-5",
                "type": "wait",
                "name": "Wait 3 days",
                "config": {},
                "timing": {"delay": 3, "unit": "days"},
            },
            {
                "id": "step-6",
                "type": "social_message",
                "name": "Follow-up Message",
                "config": {
                    "content": (
                        "Hi {{firstName}},\n\n"
                        "Quick follow-up - {{specific_value_prop_for_company}}.\n\n"
                        "Worth a quick call this week?"
                    ),
                    "personalization": True,
                },
                "timing": {"delay": 0, "unit": "minutes"},
            },
        ],
    },
    {
        "id": "multi-channel",
        "name": "Multi-Channel Outreach",
        "description": "Email + social message + phone touchpoints",
        "status": "draft",
        "triggers": [{"type": "manual", "config": {}}],
        "steps": [
            {
                "id": "step-1",
                "type": "email",
                "name": "Initial Email",
                "config": {"subject": "Quick question {{firstName}}", "personalization": True},
                "timing": {"delay": 0, "unit": "minutes"},
            },
            {
                "id": "step-2",
                "type": "wait",
                "name": "Wait 2 days",
                "config": {},
                "timing": {"delay": 2, "unit": "days"},
            },
            {
                "id": "step-3",
                "type": "social_message",
                "name": "Social Connection",
                "config": {"content": "Sent you an email about {{topic}} - connecting here as well."},
                "timing": {"delay": 0, "unit": "minutes"},
            },
            {
                "id": "step-4",
                "type": "wait",
                "name": "Wait 2 days (call)",
                "config": {},
                "timing": {"delay": 2, "unit": "days"},
            },
            {
                "id": "step-5",
                "type": "task",
                "name": "Phone Call Task",
                "config": {
                    "taskTitle": "Call {{firstName}} at {{company}}",
                    "taskDescription": "Follow up on email and social outreach",
                    "assignTo": "sales_rep",
                },
                "timing": {"delay": 0, "unit": "minutes"},
            },
            {
                "id": "step-6",
                "type": "wait",
                "name": "Wait 1 day",
                "config": {},
                "timing": {"delay": 1, "unit": "days"},
            },
            {
                "id": "step-7",
                "type": "email",
                "name": "Post-call Follow-up",
                "config": {"subject": "Following up on our call", "personalization": True},
                "timing": {"delay": 0, "unit": "minutes"},
            },
        ],
    },
    {
        "id": "webinar-nurture",
        "name": "Webinar Follow-up Sequence",
        "description": "Nurture sequence for webinar attendees",
        "status": "draft",
        "triggers": [{"type": "tag_added", "config": {"tag": "webinar_attended"}}],
        "steps": [
            {
                "id": "step-1",
                "type": "email",
                "name": "Thank You Email",
                "config": {
                    "subject": "Thanks for attending! Here are the slides",
                    "content": "Webinar recap and resources...",
                },
                "timing": {"delay": 1, "unit": "hours"},
            },
            {
                "id": "step-2",
                "type": "wait",
                "name": "Wait 1 day",
                "config": {},
                "timing": {"delay": 1, "unit": "days"},
            },
            {
                "id": "step-3",
                "type": "email",
                "name": "Case Study Email",
                "config": {"subject": "How {{similar_company}} achieved {{result}}", "personalization": True},
                "timing": {"delay": 0, "unit": "minutes"},
            },
            {
                "id": "step-4",
                "type": "wait",
                "name": "Wait 3 days",
                "config": {},
                "timing": {"delay": 3, "unit": "days"},
            },
            {
                "id": "step-5",
                "type": "email",
                "name": "Book a Demo",
                "config": {"subject": "Ready to see it in action?", "content": "Personalized demo invitation..."},
                "timing": {"delay": 0, "unit": "minutes"},
            },
        ],
    },
]


def list_templates() -> List[Dict[str, Any]]:
    return [
        {
            'id': template['id'],
            'name': template['name'],
            'description': template['description'],
            'total_steps': len(template['steps']),
        }
        for template in SEQUENCE_TEMPLATES
    ]


def get_template(template_id: str) -> Dict[str, Any]:
    for template in SEQUENCE_TEMPLATES:
        if template['id'] == template_id:
            return copy.deepcopy(template)
    raise NotFoundError('Sequence template', template_id)


def instantiate_template(template_id: str, name: Optional[str] = None) -> Dict[str, Any]:
    """Copy a template into a new draft definition with its own id."""
    definition = get_template(template_id)
    definition['id'] = f"{template_id}-{uuid.uuid4().hex[:8]}"
    definition['status'] = 'draft'
    if name:
        definition['name'] = name
    return definition
