"""
Pytest configuration and fixtures for Outreach Automation API tests.

This module provides:
- Flask app with an in-memory database per test
- A controllable clock and recording channel senders
- Sequence and contact factories
- Mock external services
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import Mock, patch

from outreach_automation.main import create_app
from outreach_automation.extensions import db
from outreach_automation.models import Contact, Sequence
from outreach_automation.services.channels import ChannelRegistry, ChannelSender, TaskCreator
from outreach_automation.services.repository import ExecutionRepository
from outreach_automation.services.sequence_engine import SequenceEngine
from outreach_automation.services.sequence_engine.definitions import StepType

START_TIME = datetime(2024, 3, 4, 9, 0, 0)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=START_TIME):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSender(ChannelSender):
    """Records every message; can fail a number of times or run a hook per send."""

    def __init__(self, fail_times=0, on_send=None):
        self.sent = []
        self.attempts = []
        self.fail_times = fail_times
        self.on_send = on_send

    def send(self, message):
        self.attempts.append(message)
        if len(self.attempts) <= self.fail_times:
            raise message.delivery_error("Provider unavailable")
        self.sent.append(message)
        if self.on_send:
            self.on_send(message)
        return {'success': True, 'provider_message_id': f"msg-{len(self.sent)}"}

    @property
    def sent_step_ids(self):
        return [m.step_id for m in self.sent]


def e2e_steps():
    """email day 0 -> wait 3d -> email (stop if replied) -> wait 4d -> email."""
    return [
        {
            "id": "s1", "type": "email", "name": "Intro",
            "config": {"subject": "Hi {{firstName}}", "content": "Hello {{firstName}} at {{company}}"},
            "timing": {"delay": 0, "unit": "days"},
        },
        {"id": "s2", "type": "wait", "name": "Wait 3 days", "config": {}, "timing": {"delay": 3, "unit": "days"}},
        {
            "id": "s3", "type": "email", "name": "Follow-up",
            "config": {"subject": "Following up", "content": "Any thoughts, {{firstName}}?"},
            "timing": {"delay": 0, "unit": "days"},
            "conditions": [{"type": "if_replied", "action": "stop"}],
        },
        {"id": "s4", "type": "wait", "name": "Wait 4 days", "config": {}, "timing": {"delay": 4, "unit": "days"}},
        {
            "id": "s5", "type": "email", "name": "Breakup",
            "config": {"subject": "Closing the loop", "content": "Last note, {{firstName}}."},
            "timing": {"delay": 0, "unit": "days"},
        },
    ]


@pytest.fixture
def app():
    """Create and configure a new app instance for each test."""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def db_session(app):
    """Database session for tests."""
    yield db.session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository(app):
    return ExecutionRepository()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def channels(repository, sender):
    registry = ChannelRegistry({
        StepType.EMAIL: sender,
        StepType.SOCIAL_MESSAGE: sender,
        StepType.SMS: sender,
    })
    registry.register(StepType.TASK, TaskCreator(repository))
    return registry


@pytest.fixture
def engine(repository, channels, clock):
    return SequenceEngine(repository, channels, clock=clock)


@pytest.fixture
def make_sequence(db_session):
    """Factory: store a sequence with the given steps."""
    counter = {'n': 0}

    def _make(steps, status='active', triggers=None, name=None):
        counter['n'] += 1
        sequence = Sequence(
            id=f"seq-{counter['n']}",
            name=name or f"Test Sequence {counter['n']}",
            status=status,
        )
        sequence.set_definition(steps, triggers if triggers is not None else [{"type": "manual", "config": {}}])
        db_session.add(sequence)
        db_session.commit()
        return sequence

    return _make


@pytest.fixture
def make_contact(db_session):
    """Factory: store a contact."""
    counter = {'n': 0}

    def _make(**fields):
        counter['n'] += 1
        contact = Contact(
            id=fields.pop('id', f"contact-{counter['n']}"),
            email=fields.pop('email', f"person{counter['n']}@example.com"),
            first_name=fields.pop('first_name', 'Ana'),
            last_name=fields.pop('last_name', 'Lopez'),
            company=fields.pop('company', 'Acme'),
            **fields
        )
        db_session.add(contact)
        db_session.commit()
        return contact

    return _make


@pytest.fixture
def sample_sequence(make_sequence):
    return make_sequence(e2e_steps())


@pytest.fixture
def sample_contact(make_contact):
    return make_contact(id='contact-ana', email='ana@example.com', first_name='Ana', company='Acme')


@pytest.fixture
def mock_unipile_client():
    """Mock Unipile client for testing."""
    client_instance = Mock()
    client_instance.resolve_provider_id.return_value = "provider-123"
    client_instance.start_chat_with_attendee.return_value = {"chat_id": "chat-123"}
    client_instance.send_message.return_value = {"message_id": "msg-123"}
    return client_instance


@pytest.fixture
def mock_resend():
    """Mock Resend email service for testing."""
    with patch('outreach_automation.services.channels.resend') as mock_resend:
        mock_resend.Emails.send.return_value = {"id": "email-123"}
        yield mock_resend


@pytest.fixture
def json_headers():
    """Headers for JSON requests."""
    return {
        'Content-Type': 'application/json'
    }
