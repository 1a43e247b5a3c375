from flask import Blueprint, request, jsonify
from outreach_automation.models import db, Contact, Task
from outreach_automation.services.repository import ExecutionRepository
from outreach_automation.services.repository import INTERACTION_COUNTERS
from outreach_automation.utils.error_handling import (
    handle_validation_error,
    handle_not_found_error,
    validate_required_fields,
    handle_exception
)
import logging

logger = logging.getLogger(__name__)

contact_bp = Blueprint('contact', __name__)


@contact_bp.route('/contacts', methods=['POST'])
def create_contact():
    """Create a contact, or update the one with the same id."""
    try:
        data = request.get_json(silent=True)
        if not data:
            return handle_validation_error("No data provided")

        existing = data.get('id') and db.session.get(Contact, str(data['id'])) is not None
        contact = ExecutionRepository().upsert_contact(data)
        db.session.commit()

        return jsonify({
            'message': 'Contact updated successfully' if existing else 'Contact created successfully',
            'contact': contact.to_dict()
        }), 200 if existing else 201

    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "contact creation")


@contact_bp.route('/contacts/<contact_id>', methods=['GET'])
def get_contact(contact_id):
    """Get a specific contact by ID."""
    try:
        contact = db.session.get(Contact, contact_id)
        if not contact:
            return handle_not_found_error("Contact", contact_id)

        return jsonify({'contact': contact.to_dict()}), 200
    except Exception as e:
        return handle_exception(e, "contact retrieval")


@contact_bp.route('/tracking/events', methods=['POST'])
def record_tracking_event():
    """Record a reply, open or click for a contact.

    Sets the contact's interaction flag and, when the sequence and step are
    known, counts it against that step.
    """
    try:
        data = request.get_json(silent=True) or {}

        validation_error = validate_required_fields(data, ['contact_id', 'event'])
        if validation_error:
            return validation_error

        kind = data['event']
        if kind not in INTERACTION_COUNTERS:
            return handle_validation_error(
                f"Unknown event type: {kind}",
                {'allowed': sorted(INTERACTION_COUNTERS)}
            )

        contact = db.session.get(Contact, data['contact_id'])
        if not contact:
            return handle_not_found_error("Contact", data['contact_id'])

        event = ExecutionRepository().record_interaction(
            contact, kind, sequence_id=data.get('sequence_id'), step_id=data.get('step_id')
        )

        return jsonify({
            'message': f"Recorded {kind} for contact {contact.id}",
            'event': event.to_dict(),
            'contact': contact.to_dict()
        }), 201

    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "tracking event")


@contact_bp.route('/tasks', methods=['POST'])
def create_task():
    """Create a manual task. Called by the deployed workflow's task nodes."""
    try:
        data = request.get_json(silent=True)
        if not data:
            return handle_validation_error("No data provided")

        validation_error = validate_required_fields(data, ['title'])
        if validation_error:
            return validation_error

        task = ExecutionRepository().create_task(
            title=data['title'],
            description=data.get('description'),
            assignee=data.get('assignTo') or data.get('assignee'),
            contact_id=data.get('contactId') or data.get('contact_id'),
            context_id=None,
            step_id=data.get('stepId') or data.get('step_id'),
            idempotency_key=data.get('idempotency_key'),
        )
        db.session.commit()
        logger.info(f"Task '{task.title}' created via API")

        return jsonify({
            'message': 'Task created successfully',
            'task': task.to_dict()
        }), 201

    except Exception as e:
        db.session.rollback()
        return handle_exception(e, "task creation")


@contact_bp.route('/tasks', methods=['GET'])
def get_tasks():
    """List tasks, optionally filtered by contact or status."""
    try:
        query = Task.query
        if request.args.get('contact_id'):
            query = query.filter_by(contact_id=request.args['contact_id'])
        if request.args.get('status'):
            query = query.filter_by(status=request.args['status'])
        tasks = query.order_by(Task.created_at.desc()).all()
        return jsonify({'tasks': [task.to_dict() for task in tasks]}), 200
    except Exception as e:
        return handle_exception(e, "task listing")
