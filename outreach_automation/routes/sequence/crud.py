"""
Basic CRUD operations for sequences.

This module contains functionality for:
- Listing sequence templates
- Creating sequences from a template or a custom definition
- Getting, listing and updating sequences
"""

import logging
from flask import request, jsonify

from outreach_automation.extensions import db
from outreach_automation.models import Sequence
from outreach_automation.services.sequence_engine.templates import instantiate_template, list_templates
from outreach_automation.services.sequence_engine.validation import parse_and_validate
from outreach_automation.utils.error_handling import (
    handle_business_logic_error,
    handle_conflict_error,
    handle_exception,
    handle_not_found_error,
    handle_validation_error,
)

logger = logging.getLogger(__name__)

# Import the blueprint from the package
from . import sequence_bp


@sequence_bp.route('/sequences/templates', methods=['GET'])
def get_sequence_templates():
    """List the prebuilt sequence templates."""
    return jsonify({'templates': list_templates()}), 200


@sequence_bp.route('/sequences', methods=['POST'])
def create_sequence():
    """Create a draft sequence from a template or from a custom definition."""
    try:
        data = request.get_json(silent=True)
        if not data:
            return handle_validation_error("No data provided")

        if data.get('template_id'):
            definition = instantiate_template(data['template_id'], name=data.get('name'))
            template_id = data['template_id']
        else:
            if not data.get('name'):
                return handle_validation_error("Sequence name is required")
            definition = dict(data)
            definition['status'] = 'draft'
            template_id = None

        # Parse and validate before anything is stored
        parsed = parse_and_validate(definition)

        if parsed.id and db.session.get(Sequence, parsed.id) is not None:
            return handle_conflict_error(f"Sequence {parsed.id} already exists")

        wire = parsed.to_dict()
        sequence = Sequence(
            name=parsed.name,
            description=parsed.description,
            status='draft',
            template_id=template_id,
        )
        if parsed.id:
            sequence.id = parsed.id
        sequence.set_definition(wire['steps'], wire['triggers'])
        db.session.add(sequence)
        db.session.commit()

        logger.info(f"Created sequence {sequence.id} ({sequence.name}) with {len(parsed.steps)} steps")
        return jsonify({
            'message': 'Sequence created successfully',
            'sequence': sequence.to_dict()
        }), 201

    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "sequence creation")


@sequence_bp.route('/sequences', methods=['GET'])
def get_sequences():
    """List sequences, optionally filtered by status."""
    try:
        query = Sequence.query
        status = request.args.get('status')
        if status:
            query = query.filter_by(status=status)
        sequences = query.order_by(Sequence.created_at.desc()).all()
        return jsonify({'sequences': [s.to_dict() for s in sequences]}), 200
    except Exception as e:
        return handle_exception(e, "sequence listing")


@sequence_bp.route('/sequences/<sequence_id>', methods=['GET'])
def get_sequence(sequence_id):
    """Get a specific sequence by ID."""
    try:
        sequence = db.session.get(Sequence, sequence_id)
        if not sequence:
            return handle_not_found_error("Sequence", sequence_id)

        return jsonify({'sequence': sequence.to_dict()}), 200
    except Exception as e:
        return handle_exception(e, "sequence retrieval")


@sequence_bp.route('/sequences/<sequence_id>', methods=['PUT'])
def update_sequence(sequence_id):
    """Update a draft sequence. Active and paused sequences cannot be edited."""
    try:
        sequence = db.session.get(Sequence, sequence_id)
        if not sequence:
            return handle_not_found_error("Sequence", sequence_id)

        if not sequence.is_editable:
            return handle_business_logic_error(
                'SEQUENCE_NOT_EDITABLE',
                f"Sequence {sequence_id} is {sequence.status}; only draft sequences can be edited",
            )

        data = request.get_json(silent=True)
        if not data:
            return handle_validation_error("No data provided")

        definition = sequence.definition_dict()
        for key in ('name', 'description', 'steps', 'triggers'):
            if key in data:
                definition[key] = data[key]

        parsed = parse_and_validate(definition)
        wire = parsed.to_dict()

        sequence.name = parsed.name
        sequence.description = parsed.description
        sequence.set_definition(wire['steps'], wire['triggers'])
        db.session.commit()

        return jsonify({
            'message': 'Sequence updated successfully',
            'sequence': sequence.to_dict()
        }), 200

    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "sequence update")
