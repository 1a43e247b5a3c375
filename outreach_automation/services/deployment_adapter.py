"""
Deployment and invocation of compiled sequences on the automation runtime.

Every public method returns a result dict; runtime and network failures are
reported in it and never raised, so batch callers can decide what to do per
contact.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from outreach_automation.services.automation_runtime_client import (
    AutomationRuntimeAPIError,
    AutomationRuntimeClient,
)
from outreach_automation.services.caching import StatusCache
from outreach_automation.services.workflow_compiler import WorkflowCompiler
from outreach_automation.utils.exceptions import DeploymentError, ValidationError

logger = logging.getLogger(__name__)


def build_contact_payload(contact, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Webhook body for one contact: campaign variables, normalized aliases, then the contact's own fields."""
    if isinstance(contact, dict):
        record = dict(contact)
    else:
        record = contact.to_record()
        record.update({
            'hasReplied': bool(contact.has_replied),
            'hasOpened': bool(contact.has_opened),
            'hasClicked': bool(contact.has_clicked),
        })

    def pick(*keys):
        for key in keys:
            if record.get(key) is not None:
                return record[key]
        return None

    first_name = pick('firstName', 'first_name')
    last_name = pick('lastName', 'last_name')
    name = pick('name') or ' '.join(part for part in (first_name, last_name) if part) or None

    aliases = {
        'contact_id': pick('id', 'contact_id'),
        'contact_email': pick('email', 'contact_email'),
        'contact_name': name,
        'firstName': first_name,
        'lastName': last_name,
        'company': pick('company'),
        'linkedin_url': pick('linkedinUrl', 'linkedin_url'),
        'phone': pick('phone'),
        'owner_id': pick('ownerId', 'owner_id'),
        'has_replied': bool(pick('hasReplied', 'has_replied')),
        'has_opened': bool(pick('hasOpened', 'has_opened')),
        'has_clicked': bool(pick('hasClicked', 'has_clicked')),
    }

    payload = dict(variables or {})
    payload.update({key: value for key, value in aliases.items() if value is not None})
    payload.update(record)
    return payload


class SequenceDeploymentAdapter:
    """Publishes compiled sequences and triggers them per contact."""

    def __init__(self, client: AutomationRuntimeClient, compiler: Optional[WorkflowCompiler] = None,
                 cache: Optional[StatusCache] = None):
        self.client = client
        self.compiler = compiler or WorkflowCompiler()
        self.cache = cache

    @classmethod
    def from_config(cls, app_config):
        from outreach_automation.services.caching import get_status_cache
        return cls(AutomationRuntimeClient.from_config(app_config), cache=get_status_cache(app_config))

    def deploy(self, sequence) -> Dict[str, Any]:
        """Compile, create and activate. Returns {success, workflow_id, fingerprint} or {success, error}."""
        try:
            graph = self.compiler.compile(sequence)
        except ValidationError as e:
            logger.error(f"Sequence {sequence.id} failed validation before deploy: {str(e)}")
            return {'success': False, 'error': str(e), 'status_code': None, 'step_id': e.step_id}

        workflow_id = None
        try:
            created = self.client.create_workflow(graph.to_dict())
            workflow_id = (created or {}).get('id')
            if not workflow_id:
                raise DeploymentError("Automation runtime did not return a workflow id", response_data=created)
            workflow_id = str(workflow_id)
            self.client.activate_workflow(workflow_id)
        except (AutomationRuntimeAPIError, DeploymentError) as e:
            stage = 'activation' if workflow_id else 'creation'
            logger.error(f"Deploy of sequence {sequence.id} failed during {stage}: {str(e)}")
            result = {'success': False, 'error': str(e), 'status_code': getattr(e, 'status_code', None)}
            if workflow_id:
                result['workflow_id'] = workflow_id
            return result

        fingerprint = graph.fingerprint()
        logger.info(f"Sequence {sequence.id} deployed as workflow {workflow_id} ({fingerprint[:12]})")
        return {'success': True, 'workflow_id': workflow_id, 'fingerprint': fingerprint}

    def needs_redeploy(self, sequence, fingerprint: Optional[str]) -> bool:
        if not fingerprint:
            return True
        return self.compiler.compile(sequence).fingerprint() != fingerprint

    def execute(self, sequence_id: str, workflow_id: str, contacts: Iterable[Any],
                variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Call the sequence's webhook once per contact. One failure does not stop the batch."""
        path = self.compiler.webhook_path(sequence_id)
        results: List[Dict[str, Any]] = []

        for contact in contacts:
            payload = build_contact_payload(contact, variables)
            contact_id = payload.get('contact_id')
            try:
                response = self.client.trigger_webhook(path, payload)
                results.append({'contact_id': contact_id, 'success': True, 'response': response})
            except AutomationRuntimeAPIError as e:
                logger.error(f"Webhook for contact {contact_id} on workflow {workflow_id} failed: {str(e)}")
                results.append({
                    'contact_id': contact_id,
                    'success': False,
                    'error': str(e),
                    'status_code': e.status_code,
                })

        failed = sum(1 for r in results if not r['success'])
        logger.info(f"Triggered workflow {workflow_id} for {len(results) - failed}/{len(results)} contacts")
        return {
            'success': failed == 0,
            'workflow_id': workflow_id,
            'triggered': len(results) - failed,
            'failed': failed,
            'results': results,
        }

    def get_status(self, workflow_id: str, use_cache: bool = True) -> Dict[str, Any]:
        key = StatusCache.executions_key(workflow_id)
        if use_cache and self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return {'success': True, 'executions': cached, 'cached': True}

        try:
            response = self.client.list_executions(workflow_id)
        except AutomationRuntimeAPIError as e:
            logger.error(f"Failed to list executions for workflow {workflow_id}: {str(e)}")
            return {'success': False, 'error': str(e), 'status_code': e.status_code}

        executions = response.get('data', response) if isinstance(response, dict) else response
        if self.cache is not None:
            self.cache.set(key, executions)
        return {'success': True, 'executions': executions, 'cached': False}
