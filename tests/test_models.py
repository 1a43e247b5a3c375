"""
Unit tests for Database Models.

This module tests model serialization, payload mapping and the small
query helpers the models carry.
"""

import pytest
from datetime import datetime, timedelta

from outreach_automation.models import Contact, Deployment, Event, ExecutionContext, Sequence, StepStat, Task
from tests.conftest import e2e_steps


class TestSequence:
    """Test Sequence model."""

    def test_definition_round_trip(self):
        sequence = Sequence(id='seq-x', name='Outbound', status='draft')
        sequence.set_definition(e2e_steps(), [{"type": "manual", "config": {}}])

        definition = sequence.to_definition()

        assert definition.id == 'seq-x'
        assert len(definition.steps) == 5
        assert sequence.is_editable is True

    def test_to_dict(self):
        sequence = Sequence(id='seq-x', name='Outbound', status='active', template_id='cold-outreach-basic')
        sequence.set_definition([], [])

        sequence_dict = sequence.to_dict()

        assert sequence_dict['status'] == 'active'
        assert sequence_dict['template_id'] == 'cold-outreach-basic'
        assert sequence_dict['steps'] == []
        assert sequence_dict['created_at'] is None

    def test_repr(self):
        assert 'Outbound' in repr(Sequence(name='Outbound', status='draft'))


class TestContact:
    """Test Contact model."""

    def test_from_payload_maps_aliases(self):
        contact = Contact.from_payload({
            'id': 42,
            'email': 'ana@example.com',
            'firstName': 'Ana',
            'linkedinUrl': 'https://linkedin.com/in/ana',
            'ownerId': 'rep-1',
            'hasReplied': True,
            'industry': 'saas',
        })

        assert contact.id == '42'
        assert contact.first_name == 'Ana'
        assert contact.social_profile_url == 'https://linkedin.com/in/ana'
        assert contact.owner_id == 'rep-1'
        assert contact.has_replied is True
        assert contact.properties_json == {'industry': 'saas'}

    def test_to_record_overlays_known_fields(self):
        contact = Contact(id='c1', first_name='Ana', company='Acme',
                          properties_json={'company': 'Old name', 'tier': 'gold'})
        record = contact.to_record()

        assert record['company'] == 'Acme'
        assert record['tier'] == 'gold'
        assert record['firstName'] == 'Ana'
        assert 'lastName' not in record

    def test_interaction_state(self):
        contact = Contact(has_replied=True, has_opened=None, has_clicked=False)
        state = contact.interaction_state()
        assert state.has_replied is True
        assert state.has_opened is False

    def test_full_name(self):
        assert Contact(first_name='Ana', last_name='Lopez').full_name == 'Ana Lopez'
        assert Contact(last_name='Lopez').full_name == 'Lopez'
        assert Contact().full_name == 'Unknown'


@pytest.mark.integration
class TestPersistence:

    def test_contact_defaults(self, make_contact):
        contact = make_contact()
        assert contact.has_replied is False
        assert contact.created_at is not None

    def test_step_stat_increment(self, db_session, sample_sequence):
        db_session.add(StepStat(sequence_id=sample_sequence.id, step_id='s1'))
        db_session.commit()

        assert StepStat.increment(sample_sequence.id, 's1', 'sent') == 1
        StepStat.increment(sample_sequence.id, 's1', 'sent')
        db_session.commit()

        stat = StepStat.query.filter_by(sequence_id=sample_sequence.id, step_id='s1').one()
        assert stat.to_dict()['sent'] == 2

    def test_step_stat_unknown_counter(self, sample_sequence):
        with pytest.raises(ValueError):
            StepStat.increment(sample_sequence.id, 's1', 'bounced')

    def test_execution_context_definition_snapshot(self, db_session, sample_sequence, sample_contact):
        context = ExecutionContext(
            sequence_id=sample_sequence.id,
            contact_id=sample_contact.id,
            definition_json=sample_sequence.definition_dict(),
        )
        db_session.add(context)
        db_session.commit()

        assert context.state == 'pending'
        assert context.variables == {}
        assert context.is_terminal is False
        assert [s.id for s in context.to_definition().steps] == ['s1', 's2', 's3', 's4', 's5']
        assert context.to_dict()['cursor'] == 0

    def test_deployment_latest_for(self, db_session, sample_sequence):
        now = datetime(2024, 3, 1, 12, 0)
        db_session.add_all([
            Deployment(sequence_id=sample_sequence.id, workflow_id='wf-1', status='deployed', created_at=now),
            Deployment(sequence_id=sample_sequence.id, workflow_id='wf-2', status='deployed',
                       created_at=now + timedelta(hours=1)),
            Deployment(sequence_id=sample_sequence.id, status='failed', error='boom',
                       created_at=now + timedelta(hours=2)),
        ])
        db_session.commit()

        assert Deployment.latest_for(sample_sequence.id).workflow_id == 'wf-2'
        assert Deployment.latest_for(sample_sequence.id, status='failed').error == 'boom'
        assert Deployment.latest_for('other') is None

    def test_event_and_task_to_dict(self, db_session, sample_contact):
        event = Event(contact_id=sample_contact.id, event_type='interaction_recorded',
                      meta_json={'interaction': 'replied'})
        task = Task(title='Call Ana', contact_id=sample_contact.id)
        db_session.add_all([event, task])
        db_session.commit()

        assert event.to_dict()['meta_json'] == {'interaction': 'replied'}
        assert task.to_dict()['status'] == 'open'
