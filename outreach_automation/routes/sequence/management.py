"""
Sequence management operations.

This module contains functionality for:
- Activating, pausing, resuming and completing sequences
- Starting contacts on a sequence
- Sequence stats and execution contexts
"""

import logging
from flask import current_app, request, jsonify

from outreach_automation.extensions import db
from outreach_automation.models import Sequence
from outreach_automation.services.repository import ExecutionRepository
from outreach_automation.services.sequence_engine import SequenceEngine
from outreach_automation.utils.error_handling import (
    handle_business_logic_error,
    handle_exception,
    handle_not_found_error,
    handle_validation_error,
)

logger = logging.getLogger(__name__)

# Import the blueprint from the package
from . import sequence_bp


def _engine():
    return SequenceEngine.from_config(current_app.config)


def _require_status(sequence_id, *allowed):
    """Return (sequence, error_response); exactly one is None."""
    sequence = db.session.get(Sequence, sequence_id)
    if not sequence:
        return None, handle_not_found_error("Sequence", sequence_id)
    if sequence.status not in allowed:
        return None, handle_business_logic_error(
            'SEQUENCE_NOT_ACTIVE' if 'active' in allowed else 'CONFLICT',
            f"Sequence {sequence_id} is {sequence.status}; expected {' or '.join(allowed)}",
        )
    return sequence, None


@sequence_bp.route('/sequences/<sequence_id>/activate', methods=['POST'])
def activate_sequence(sequence_id):
    """Validate a sequence for activation and make it active."""
    try:
        sequence = db.session.get(Sequence, sequence_id)
        if not sequence:
            return handle_not_found_error("Sequence", sequence_id)
        if sequence.status == 'completed':
            return handle_business_logic_error('CONFLICT', f"Sequence {sequence_id} is completed")

        sequence = _engine().activate_sequence(sequence_id)
        return jsonify({
            'message': 'Sequence activated successfully',
            'sequence': sequence.to_dict()
        }), 200
    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "sequence activation")


@sequence_bp.route('/sequences/<sequence_id>/pause', methods=['POST'])
def pause_sequence(sequence_id):
    """Pause an active sequence. Waiting contacts stay where they are."""
    try:
        sequence, error = _require_status(sequence_id, 'active')
        if error:
            return error

        sequence = _engine().pause_sequence(sequence_id)
        return jsonify({
            'message': 'Sequence paused successfully',
            'sequence': sequence.to_dict()
        }), 200
    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "sequence pause")


@sequence_bp.route('/sequences/<sequence_id>/resume', methods=['POST'])
def resume_sequence(sequence_id):
    """Resume a paused sequence."""
    try:
        sequence, error = _require_status(sequence_id, 'paused')
        if error:
            return error

        sequence = _engine().resume_sequence(sequence_id)
        return jsonify({
            'message': 'Sequence resumed successfully',
            'sequence': sequence.to_dict()
        }), 200
    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "sequence resume")


@sequence_bp.route('/sequences/<sequence_id>/complete', methods=['POST'])
def complete_sequence(sequence_id):
    """Mark a sequence completed once none of its contacts are still in progress."""
    try:
        sequence, error = _require_status(sequence_id, 'active', 'paused')
        if error:
            return error

        live = ExecutionRepository().live_context_count(sequence_id)
        if live:
            return handle_business_logic_error('CONFLICT', f"Sequence {sequence_id} still has contacts in progress", {
                'in_progress': live
            })

        sequence = _engine().complete_sequence(sequence_id)
        return jsonify({
            'message': 'Sequence completed successfully',
            'sequence': sequence.to_dict()
        }), 200
    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "sequence completion")


@sequence_bp.route('/sequences/<sequence_id>/start', methods=['POST'])
def start_sequence(sequence_id):
    """Enroll contacts in an active sequence.

    Accepts ``contact_ids`` for existing contacts and/or ``contacts`` with
    inline contact payloads (created or updated on the fly), plus optional
    campaign ``variables``.
    """
    try:
        sequence, error = _require_status(sequence_id, 'active')
        if error:
            return error

        data = request.get_json(silent=True) or {}
        contacts = list(data.get('contact_ids') or []) + list(data.get('contacts') or [])
        if not contacts:
            return handle_validation_error("contact_ids or contacts is required")

        variables = data.get('variables') or {}
        if not isinstance(variables, dict):
            return handle_validation_error("variables must be an object")

        contexts = _engine().start_sequence(
            sequence_id,
            contacts,
            variables=variables,
            trigger_type=data.get('trigger_type', 'manual'),
        )

        return jsonify({
            'message': f"Started sequence for {len(contexts)} contacts",
            'sequence_id': sequence_id,
            'started': len(contexts),
            'skipped': len(contacts) - len(contexts),
            'executions': [context.to_dict() for context in contexts]
        }), 201
    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "sequence start")


@sequence_bp.route('/sequences/<sequence_id>/stats', methods=['GET'])
def get_sequence_stats(sequence_id):
    """Contact totals, response rate and per-step counters."""
    try:
        sequence = db.session.get(Sequence, sequence_id)
        if not sequence:
            return handle_not_found_error("Sequence", sequence_id)

        return jsonify(_engine().sequence_stats(sequence_id)), 200
    except Exception as e:
        return handle_exception(e, "sequence stats")


@sequence_bp.route('/sequences/<sequence_id>/executions', methods=['GET'])
def get_sequence_executions(sequence_id):
    try:
        sequence = db.session.get(Sequence, sequence_id)
        if not sequence:
            return handle_not_found_error("Sequence", sequence_id)

        limit = min(request.args.get('limit', 100, type=int), 500)
        contexts = ExecutionRepository().list_contexts(sequence_id, state=request.args.get('state'), limit=limit)
        return jsonify({
            'sequence_id': sequence_id,
            'executions': [context.to_dict() for context in contexts]
        }), 200
    except Exception as e:
        return handle_exception(e, "execution listing")
