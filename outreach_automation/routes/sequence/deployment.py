"""
Workflow graph compilation and runtime deployment.

This module contains functionality for:
- Previewing the compiled workflow graph of a sequence
- Deploying a sequence to the automation runtime
- Triggering a deployed sequence for contacts
- Reading execution status back from the runtime
"""

import logging
from flask import current_app, request, jsonify

from outreach_automation.extensions import db
from outreach_automation.models import Contact, Deployment, Sequence
from outreach_automation.services.deployment_adapter import SequenceDeploymentAdapter
from outreach_automation.services.workflow_compiler import WorkflowCompiler
from outreach_automation.utils.error_handling import (
    create_error_response,
    handle_business_logic_error,
    handle_exception,
    handle_not_found_error,
    handle_validation_error,
)

logger = logging.getLogger(__name__)

# Import the blueprint from the package
from . import sequence_bp


def _adapter():
    return SequenceDeploymentAdapter.from_config(current_app.config)


@sequence_bp.route('/sequences/<sequence_id>/graph', methods=['GET'])
def get_sequence_graph(sequence_id):
    """Compile a sequence without deploying it."""
    try:
        sequence = db.session.get(Sequence, sequence_id)
        if not sequence:
            return handle_not_found_error("Sequence", sequence_id)

        graph = WorkflowCompiler().compile(sequence.to_definition())
        return jsonify({
            'sequence_id': sequence_id,
            'fingerprint': graph.fingerprint(),
            'workflow': graph.to_dict()
        }), 200
    except Exception as e:
        return handle_exception(e, "graph compilation")


@sequence_bp.route('/sequences/<sequence_id>/deploy', methods=['POST'])
def deploy_sequence(sequence_id):
    """Publish the sequence to the automation runtime.

    An unchanged sequence that is already deployed is not published again
    unless ``force`` is set.
    """
    try:
        sequence = db.session.get(Sequence, sequence_id)
        if not sequence:
            return handle_not_found_error("Sequence", sequence_id)

        data = request.get_json(silent=True) or {}
        adapter = _adapter()
        definition = sequence.to_definition()

        latest = Deployment.latest_for(sequence_id)
        if latest and not data.get('force') and not adapter.needs_redeploy(definition, latest.fingerprint):
            logger.info(f"Sequence {sequence_id} unchanged since workflow {latest.workflow_id}, skipping deploy")
            return jsonify({
                'message': 'Sequence already deployed',
                'redeployed': False,
                'deployment': latest.to_dict()
            }), 200

        result = adapter.deploy(definition)

        deployment = Deployment(
            sequence_id=sequence_id,
            workflow_id=result.get('workflow_id'),
            status='deployed' if result['success'] else 'failed',
            fingerprint=result.get('fingerprint'),
            error=result.get('error'),
        )
        db.session.add(deployment)
        db.session.commit()

        if not result['success']:
            if result.get('status_code') is None and 'step_id' in result:
                return create_error_response('INVALID_SEQUENCE', result['error'], {'step_id': result['step_id']})
            return handle_business_logic_error('DEPLOYMENT_ERROR', result['error'], {
                'status_code': result.get('status_code'),
                'workflow_id': result.get('workflow_id'),
                'deployment_id': deployment.id,
            })

        return jsonify({
            'message': 'Sequence deployed successfully',
            'redeployed': latest is not None,
            'deployment': deployment.to_dict()
        }), 201
    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "sequence deployment")


@sequence_bp.route('/sequences/<sequence_id>/execute', methods=['POST'])
def execute_sequence(sequence_id):
    """Call the deployed workflow's webhook once per contact."""
    try:
        sequence = db.session.get(Sequence, sequence_id)
        if not sequence:
            return handle_not_found_error("Sequence", sequence_id)

        data = request.get_json(silent=True) or {}

        workflow_id = data.get('workflow_id')
        if not workflow_id:
            latest = Deployment.latest_for(sequence_id)
            if not latest:
                return handle_business_logic_error(
                    'CONFLICT', f"Sequence {sequence_id} has not been deployed"
                )
            workflow_id = latest.workflow_id

        contacts = []
        for contact_id in data.get('contact_ids') or []:
            contact = db.session.get(Contact, contact_id)
            if not contact:
                return handle_not_found_error("Contact", contact_id)
            contacts.append(contact)
        contacts.extend(data.get('contacts') or [])

        if not contacts:
            return handle_validation_error("contact_ids or contacts is required")

        result = _adapter().execute(sequence_id, workflow_id, contacts, variables=data.get('variables') or {})
        status = 200 if result['success'] else 207
        return jsonify(result), status
    except Exception as e:
        return handle_exception(e, "sequence execution")


@sequence_bp.route('/deployments/<workflow_id>/status', methods=['GET'])
def get_deployment_status(workflow_id):
    """Recent runtime executions for a deployed workflow."""
    try:
        use_cache = request.args.get('refresh', 'false').lower() != 'true'
        result = _adapter().get_status(workflow_id, use_cache=use_cache)
        if not result['success']:
            return handle_business_logic_error('EXTERNAL_API_ERROR', result['error'], {
                'status_code': result.get('status_code')
            })

        return jsonify({
            'workflow_id': workflow_id,
            'executions': result['executions'],
            'cached': result['cached']
        }), 200
    except Exception as e:
        return handle_exception(e, "deployment status")
