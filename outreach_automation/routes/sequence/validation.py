"""
Sequence validation and preview.

This module contains functionality for:
- Sequence validation
- Personalization preview for a sample contact
"""

import logging
from flask import request, jsonify

from outreach_automation.extensions import db
from outreach_automation.models import Contact, Sequence
from outreach_automation.services.sequence_engine.definitions import TaskConfig
from outreach_automation.services.sequence_engine.message_formatter import lint_sequence, personalize
from outreach_automation.services.sequence_engine.validation import check_sequence
from outreach_automation.utils.error_handling import (
    handle_exception,
    handle_not_found_error,
    handle_validation_error,
)

logger = logging.getLogger(__name__)

# Import the blueprint from the package
from . import sequence_bp


@sequence_bp.route('/sequences/validate', methods=['POST'])
def validate_sequence():
    """Validate a sequence definition."""
    try:
        data = request.get_json(silent=True)
        if not data or 'sequence' not in data:
            return handle_validation_error("Sequence definition is required")

        report = check_sequence(data['sequence'], for_activation=bool(data.get('for_activation')))

        return jsonify({
            'valid': report['valid'],
            'errors': report.get('errors', []),
            'warnings': report.get('warnings', []),
            'step_id': report.get('step_id')
        }), 200

    except Exception as e:
        return handle_exception(e, "sequence validation")


@sequence_bp.route('/sequences/<sequence_id>/preview', methods=['POST'])
def preview_sequence(sequence_id):
    """Render every step for a sample contact and list tokens that would stay literal."""
    try:
        sequence = db.session.get(Sequence, sequence_id)
        if not sequence:
            return handle_not_found_error("Sequence", sequence_id)

        data = request.get_json(silent=True) or {}
        variables = data.get('variables') or {}

        if data.get('contact_id'):
            contact = db.session.get(Contact, data['contact_id'])
            if not contact:
                return handle_not_found_error("Contact", data['contact_id'])
            record = contact.to_record()
        else:
            # Transient contact, never added to the session
            record = Contact.from_payload(data.get('contact') or {}).to_record()

        definition = sequence.to_definition()
        steps = []
        for step in definition.steps:
            preview = {'step_id': step.id, 'name': step.display_name, 'type': step.type.value}
            config = step.config
            if isinstance(config, TaskConfig):
                preview['title'] = personalize(config.title, record, variables)
                preview['description'] = personalize(config.description, record, variables)
            elif hasattr(config, 'content'):
                if hasattr(config, 'subject'):
                    preview['subject'] = personalize(config.subject, record, variables)
                preview['content'] = personalize(config.content, record, variables)
            steps.append(preview)

        unresolved = lint_sequence(definition, record, variables)
        return jsonify({
            'sequence_id': sequence.id,
            'steps': steps,
            'unresolved_tokens': unresolved,
            'ready': not unresolved
        }), 200

    except Exception as e:
        return handle_exception(e, "sequence preview")
