"""
Unit tests for API Endpoints.

This module tests the sequence, contact, tracking and task endpoints
including request handling, response formatting and error scenarios.
The automation runtime is mocked at the client boundary.
"""

import json
from unittest.mock import patch

from outreach_automation.models import Contact, Deployment, Sequence, Task
from outreach_automation.services.automation_runtime_client import (
    AutomationRuntimeAPIError,
    AutomationRuntimeClient,
)
from tests.conftest import e2e_steps


def custom_sequence(**overrides):
    data = {
        "id": "custom-seq",
        "name": "Custom outreach",
        "steps": e2e_steps(),
        "triggers": [{"type": "manual", "config": {}}],
    }
    data.update(overrides)
    return data


class TestHealth:

    def test_index(self, client):
        response = client.get('/')
        assert response.status_code == 200
        assert json.loads(response.data)['status'] == 'ok'

    def test_unknown_route(self, client):
        response = client.get('/api/v1/nope')
        assert response.status_code == 404
        assert json.loads(response.data)['error']['code'] == 'NOT_FOUND'


class TestSequenceCrud:
    """Test cases for sequence creation, retrieval and update."""

    def test_list_templates(self, client):
        response = client.get('/api/v1/sequences/templates')
        assert response.status_code == 200
        ids = [t['id'] for t in json.loads(response.data)['templates']]
        assert 'cold-outreach-basic' in ids

    def test_create_from_template(self, client):
        response = client.post('/api/v1/sequences', json={
            'template_id': 'cold-outreach-basic',
            'name': 'Q3 outreach'
        })

        assert response.status_code == 201
        sequence = json.loads(response.data)['sequence']
        assert sequence['name'] == 'Q3 outreach'
        assert sequence['status'] == 'draft'
        assert sequence['template_id'] == 'cold-outreach-basic'
        assert Sequence.query.get(sequence['id']) is not None

    def test_create_custom_is_always_draft(self, client):
        response = client.post('/api/v1/sequences', json=custom_sequence(status='active'))

        assert response.status_code == 201
        sequence = json.loads(response.data)['sequence']
        assert sequence['id'] == 'custom-seq'
        assert sequence['status'] == 'draft'
        assert len(sequence['steps']) == 5

    def test_create_requires_name(self, client):
        response = client.post('/api/v1/sequences', json=custom_sequence(name=''))
        assert response.status_code == 400
        assert json.loads(response.data)['error']['code'] == 'VALIDATION_ERROR'

    def test_create_without_body(self, client):
        response = client.post('/api/v1/sequences')
        assert response.status_code == 400

    def test_create_invalid_definition(self, client):
        steps = e2e_steps()
        steps[1]['timing']['delay'] = -3
        response = client.post('/api/v1/sequences', json=custom_sequence(steps=steps))

        assert response.status_code == 400
        error = json.loads(response.data)['error']
        assert error['code'] == 'INVALID_SEQUENCE'
        assert error['details']['step_id'] == 's2'
        assert Sequence.query.count() == 0

    def test_create_duplicate_id(self, client):
        client.post('/api/v1/sequences', json=custom_sequence())
        response = client.post('/api/v1/sequences', json=custom_sequence())
        assert response.status_code == 409

    def test_create_unknown_template(self, client):
        response = client.post('/api/v1/sequences', json={'template_id': 'nope'})
        assert response.status_code == 404

    def test_get_and_list(self, client, make_sequence):
        make_sequence(e2e_steps(), status='active')
        make_sequence(e2e_steps(), status='draft')

        assert client.get('/api/v1/sequences/seq-1').status_code == 200
        assert client.get('/api/v1/sequences/missing').status_code == 404

        response = client.get('/api/v1/sequences?status=draft')
        assert [s['id'] for s in json.loads(response.data)['sequences']] == ['seq-2']

    def test_update_draft(self, client, make_sequence):
        make_sequence(e2e_steps(), status='draft')
        response = client.put('/api/v1/sequences/seq-1', json={
            'name': 'Renamed',
            'steps': e2e_steps()[:1]
        })

        assert response.status_code == 200
        sequence = json.loads(response.data)['sequence']
        assert sequence['name'] == 'Renamed'
        assert len(sequence['steps']) == 1

    def test_update_active_rejected(self, client, sample_sequence):
        response = client.put(f'/api/v1/sequences/{sample_sequence.id}', json={'name': 'Renamed'})

        assert response.status_code == 409
        assert json.loads(response.data)['error']['code'] == 'SEQUENCE_NOT_EDITABLE'


class TestValidationEndpoints:

    def test_validate_valid(self, client):
        response = client.post('/api/v1/sequences/validate', json={
            'sequence': custom_sequence(),
            'for_activation': True
        })
        data = json.loads(response.data)
        assert response.status_code == 200
        assert data['valid'] is True
        assert data['errors'] == []

    def test_validate_reports_step(self, client):
        steps = e2e_steps()
        steps[2]['conditions'] = [{"type": "if_opened", "action": "jump_to", "targetStepId": "gone"}]
        response = client.post('/api/v1/sequences/validate', json={'sequence': custom_sequence(steps=steps)})

        data = json.loads(response.data)
        assert data['valid'] is False
        assert data['step_id'] == 's3'

    def test_validate_reports_wrong_config_type(self, client):
        steps = e2e_steps()
        steps[0]['config']['content'] = 123
        response = client.post('/api/v1/sequences/validate', json={'sequence': custom_sequence(steps=steps)})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['valid'] is False
        assert data['step_id'] == 's1'

    def test_validate_requires_sequence(self, client):
        assert client.post('/api/v1/sequences/validate', json={}).status_code == 400

    def test_preview_inline_contact(self, client, sample_sequence):
        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/preview', json={
            'contact': {'firstName': 'Bo'}
        })

        data = json.loads(response.data)
        assert response.status_code == 200
        assert data['steps'][0]['subject'] == 'Hi Bo'
        assert data['steps'][0]['content'] == 'Hello Bo at {{company}}'
        assert data['unresolved_tokens'] == {'s1': ['company']}
        assert data['ready'] is False
        assert Contact.query.count() == 0

    def test_preview_stored_contact_with_variables(self, client, sample_sequence, sample_contact):
        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/preview', json={
            'contact_id': sample_contact.id,
            'variables': {'company': 'Ignored'}
        })

        data = json.loads(response.data)
        assert data['steps'][0]['content'] == 'Hello Ana at Acme'
        assert data['ready'] is True

    def test_preview_unknown_contact(self, client, sample_sequence):
        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/preview', json={'contact_id': 'x'})
        assert response.status_code == 404


class TestSequenceManagement:

    def test_activate_pause_resume(self, client, make_sequence):
        sequence = make_sequence(e2e_steps(), status='draft')

        response = client.post(f'/api/v1/sequences/{sequence.id}/activate')
        assert response.status_code == 200
        assert json.loads(response.data)['sequence']['status'] == 'active'

        response = client.post(f'/api/v1/sequences/{sequence.id}/pause')
        assert json.loads(response.data)['sequence']['status'] == 'paused'

        response = client.post(f'/api/v1/sequences/{sequence.id}/resume')
        assert json.loads(response.data)['sequence']['status'] == 'active'

    def test_activate_without_trigger(self, client, make_sequence):
        sequence = make_sequence(e2e_steps(), status='draft', triggers=[])
        response = client.post(f'/api/v1/sequences/{sequence.id}/activate')

        assert response.status_code == 400
        assert json.loads(response.data)['error']['code'] == 'INVALID_SEQUENCE'

    def test_pause_requires_active(self, client, make_sequence):
        sequence = make_sequence(e2e_steps(), status='draft')
        response = client.post(f'/api/v1/sequences/{sequence.id}/pause')

        assert response.status_code == 409
        assert json.loads(response.data)['error']['code'] == 'SEQUENCE_NOT_ACTIVE'

    def test_resume_requires_paused(self, client, sample_sequence):
        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/resume')
        assert response.status_code == 409
        assert json.loads(response.data)['error']['code'] == 'CONFLICT'

    def test_complete_sequence(self, client, db_session, sample_sequence, sample_contact, engine):
        [context] = engine.start_sequence(sample_sequence.id, [sample_contact.id])

        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/complete')
        assert response.status_code == 409
        assert json.loads(response.data)['error']['details'] == {'in_progress': 1}

        context.state = 'stopped'
        db_session.commit()

        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/complete')
        assert response.status_code == 200
        assert json.loads(response.data)['sequence']['status'] == 'completed'

        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/activate')
        assert response.status_code == 409

    def test_start_sequence(self, client, sample_sequence, sample_contact):
        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/start', json={
            'contact_ids': [sample_contact.id],
            'contacts': [{'id': 'inline-1', 'email': 'bo@example.com', 'firstName': 'Bo'}],
            'variables': {'topic': 'pricing'}
        })

        data = json.loads(response.data)
        assert response.status_code == 201
        assert data['started'] == 2
        assert data['skipped'] == 0
        assert {e['state'] for e in data['executions']} == {'pending'}
        assert data['executions'][0]['variables'] == {'topic': 'pricing'}
        assert Contact.query.get('inline-1').first_name == 'Bo'

        # Contacts already in the sequence are skipped
        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/start', json={
            'contact_ids': [sample_contact.id]
        })
        data = json.loads(response.data)
        assert data['started'] == 0
        assert data['skipped'] == 1

    def test_start_requires_active(self, client, make_sequence, sample_contact):
        sequence = make_sequence(e2e_steps(), status='draft')
        response = client.post(f'/api/v1/sequences/{sequence.id}/start', json={
            'contact_ids': [sample_contact.id]
        })

        assert response.status_code == 409
        assert json.loads(response.data)['error']['code'] == 'SEQUENCE_NOT_ACTIVE'

    def test_start_validation(self, client, sample_sequence, sample_contact):
        url = f'/api/v1/sequences/{sample_sequence.id}/start'
        assert client.post(url, json={}).status_code == 400
        assert client.post(url, json={'contact_ids': [sample_contact.id], 'variables': [1]}).status_code == 400
        assert client.post(url, json={'contact_ids': ['missing']}).status_code == 404

    def test_stats_and_executions(self, client, sample_sequence, sample_contact):
        client.post(f'/api/v1/sequences/{sample_sequence.id}/start', json={'contact_ids': [sample_contact.id]})

        stats = json.loads(client.get(f'/api/v1/sequences/{sample_sequence.id}/stats').data)
        assert stats['sequenceId'] == sample_sequence.id
        assert stats['totalContacts'] == 1
        assert stats['inProgress'] == 1
        assert [s['step_id'] for s in stats['steps']] == ['s1', 's2', 's3', 's4', 's5']

        response = client.get(f'/api/v1/sequences/{sample_sequence.id}/executions?state=pending')
        executions = json.loads(response.data)['executions']
        assert len(executions) == 1
        assert executions[0]['contact_id'] == sample_contact.id

    def test_stats_unknown_sequence(self, client):
        assert client.get('/api/v1/sequences/missing/stats').status_code == 404


class TestDeploymentEndpoints:

    def test_graph(self, client, sample_sequence):
        response = client.get(f'/api/v1/sequences/{sample_sequence.id}/graph')

        data = json.loads(response.data)
        assert response.status_code == 200
        assert len(data['fingerprint']) == 64
        assert data['workflow']['nodes'][0]['name'] == 'Webhook Trigger'

    @patch.object(AutomationRuntimeClient, 'activate_workflow', return_value={})
    @patch.object(AutomationRuntimeClient, 'create_workflow', return_value={'id': 'wf-1'})
    def test_deploy_then_skip_unchanged(self, mock_create, mock_activate, client, sample_sequence):
        url = f'/api/v1/sequences/{sample_sequence.id}/deploy'

        response = client.post(url)
        data = json.loads(response.data)
        assert response.status_code == 201
        assert data['deployment']['workflow_id'] == 'wf-1'
        assert data['deployment']['status'] == 'deployed'
        assert data['redeployed'] is False

        response = client.post(url)
        assert response.status_code == 200
        assert json.loads(response.data)['redeployed'] is False
        assert mock_create.call_count == 1

        response = client.post(url, json={'force': True})
        assert response.status_code == 201
        assert json.loads(response.data)['redeployed'] is True
        assert mock_create.call_count == 2

    @patch.object(AutomationRuntimeClient, 'create_workflow')
    def test_deploy_runtime_failure(self, mock_create, client, sample_sequence):
        mock_create.side_effect = AutomationRuntimeAPIError(
            "Automation runtime returned 401 Unauthorized", status_code=401
        )

        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/deploy')

        assert response.status_code == 502
        error = json.loads(response.data)['error']
        assert error['code'] == 'DEPLOYMENT_ERROR'
        assert error['details']['status_code'] == 401
        assert Deployment.query.one().status == 'failed'

    @patch.object(AutomationRuntimeClient, 'trigger_webhook')
    def test_execute(self, mock_trigger, client, sample_sequence, sample_contact, db_session):
        db_session.add(Deployment(sequence_id=sample_sequence.id, workflow_id='wf-1', status='deployed'))
        db_session.commit()
        mock_trigger.side_effect = [{'ok': True}, AutomationRuntimeAPIError("down", status_code=503)]

        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/execute', json={
            'contact_ids': [sample_contact.id],
            'contacts': [{'id': 'inline-1', 'email': 'bo@example.com'}]
        })

        data = json.loads(response.data)
        assert response.status_code == 207
        assert data['workflow_id'] == 'wf-1'
        assert data['triggered'] == 1
        assert data['failed'] == 1
        path, payload = mock_trigger.call_args_list[0][0]
        assert path == f'sequence-{sample_sequence.id}'
        assert payload['contact_email'] == 'ana@example.com'

    def test_execute_requires_deployment(self, client, sample_sequence, sample_contact):
        response = client.post(f'/api/v1/sequences/{sample_sequence.id}/execute', json={
            'contact_ids': [sample_contact.id]
        })
        assert response.status_code == 409

    @patch.object(AutomationRuntimeClient, 'list_executions', return_value={'data': [{'id': 'e1'}]})
    def test_deployment_status(self, mock_list, client):
        response = client.get('/api/v1/deployments/wf-1/status?refresh=true')

        data = json.loads(response.data)
        assert response.status_code == 200
        assert data['executions'] == [{'id': 'e1'}]
        assert data['cached'] is False

    @patch.object(AutomationRuntimeClient, 'list_executions')
    def test_deployment_status_failure(self, mock_list, client):
        mock_list.side_effect = AutomationRuntimeAPIError("unreachable")
        response = client.get('/api/v1/deployments/wf-1/status')

        assert response.status_code == 502
        assert json.loads(response.data)['error']['code'] == 'EXTERNAL_API_ERROR'


class TestContactEndpoints:

    def test_create_then_update_contact(self, client):
        response = client.post('/api/v1/contacts', json={'id': 'c-1', 'email': 'ana@example.com'})
        assert response.status_code == 201

        response = client.post('/api/v1/contacts', json={'id': 'c-1', 'company': 'Acme'})
        assert response.status_code == 200
        contact = json.loads(response.data)['contact']
        assert contact['email'] == 'ana@example.com'
        assert contact['company'] == 'Acme'

    def test_get_contact(self, client, sample_contact):
        assert client.get(f'/api/v1/contacts/{sample_contact.id}').status_code == 200
        assert client.get('/api/v1/contacts/missing').status_code == 404

    def test_tracking_event(self, client, sample_sequence, sample_contact, engine):
        engine.activate_sequence(sample_sequence.id)

        response = client.post('/api/v1/tracking/events', json={
            'contact_id': sample_contact.id,
            'event': 'replied',
            'sequence_id': sample_sequence.id,
            'step_id': 's1'
        })

        data = json.loads(response.data)
        assert response.status_code == 201
        assert data['contact']['has_replied'] is True
        assert data['event']['event_type'] == 'interaction_recorded'

        stats = json.loads(client.get(f'/api/v1/sequences/{sample_sequence.id}/stats').data)
        assert stats['steps'][0]['replied'] == 1

    def test_redelivered_tracking_event_counted_once(self, client, sample_sequence, sample_contact, engine):
        engine.activate_sequence(sample_sequence.id)
        payload = {
            'contact_id': sample_contact.id,
            'event': 'opened',
            'sequence_id': sample_sequence.id,
            'step_id': 's1'
        }

        first = json.loads(client.post('/api/v1/tracking/events', json=payload).data)
        second = json.loads(client.post('/api/v1/tracking/events', json=payload).data)

        assert first['event']['meta_json']['counted'] is True
        assert second['event']['meta_json']['counted'] is False
        stats = json.loads(client.get(f'/api/v1/sequences/{sample_sequence.id}/stats').data)
        assert stats['steps'][0]['opened'] == 1

    def test_tracking_event_validation(self, client, sample_contact):
        assert client.post('/api/v1/tracking/events', json={'event': 'replied'}).status_code == 400

        response = client.post('/api/v1/tracking/events', json={
            'contact_id': sample_contact.id, 'event': 'bounced'
        })
        assert response.status_code == 400
        assert json.loads(response.data)['error']['details']['allowed'] == ['clicked', 'opened', 'replied']

        response = client.post('/api/v1/tracking/events', json={'contact_id': 'missing', 'event': 'opened'})
        assert response.status_code == 404

    def test_tasks(self, client, sample_contact):
        response = client.post('/api/v1/tasks', json={
            'title': 'Call Ana',
            'assignTo': 'rep-1',
            'contactId': sample_contact.id,
            'stepId': 'step-4',
            'idempotency_key': 'wf-1:step-4'
        })
        assert response.status_code == 201

        # Same idempotency key returns the existing task
        client.post('/api/v1/tasks', json={'title': 'Call Ana', 'idempotency_key': 'wf-1:step-4'})
        assert Task.query.count() == 1

        response = client.get(f'/api/v1/tasks?contact_id={sample_contact.id}')
        tasks = json.loads(response.data)['tasks']
        assert tasks[0]['assignee'] == 'rep-1'
        assert tasks[0]['step_id'] == 'step-4'

    def test_task_requires_title(self, client):
        assert client.post('/api/v1/tasks', json={'description': 'x'}).status_code == 400
