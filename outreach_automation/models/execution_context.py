import uuid
from datetime import datetime
from outreach_automation.models import db
from sqlalchemy import JSON


class ExecutionContext(db.Model):
    """Progress of one contact through one sequence."""
    __tablename__ = 'execution_contexts'

    # States: pending, waiting, running, stopped, completed, failed
    LIVE_STATES = ('pending', 'waiting', 'running')
    TERMINAL_STATES = ('stopped', 'completed', 'failed')

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sequence_id = db.Column(db.String(64), db.ForeignKey('sequences.id'), nullable=False, index=True)
    contact_id = db.Column(db.String(64), db.ForeignKey('contacts.id'), nullable=False, index=True)
    state = db.Column(db.String(20), nullable=False, default='pending')
    cursor = db.Column(db.Integer, nullable=False, default=0)  # Index into the snapshot's steps (0-based)
    definition_json = db.Column(JSON, nullable=False)  # Definition snapshot taken at trigger time
    variables_json = db.Column(JSON, nullable=True)  # Campaign-level personalization variables
    trigger_type = db.Column(db.String(50), nullable=False, default='manual')
    waiting_step_id = db.Column(db.String(64), nullable=True)  # Step whose delay is being waited out
    resume_at = db.Column(db.DateTime, nullable=True, index=True)
    lease_expires_at = db.Column(db.DateTime, nullable=True)
    delivery_attempts = db.Column(db.Integer, nullable=False, default=0)
    steps_sent = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    finished_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    contact = db.relationship('Contact', lazy='joined')
    events = db.relationship('Event', backref='context', lazy=True, cascade='all, delete-orphan')

    @property
    def variables(self):
        return self.variables_json or {}

    @property
    def is_terminal(self):
        return self.state in self.TERMINAL_STATES

    def to_definition(self):
        from outreach_automation.services.sequence_engine.definitions import Sequence as SequenceDefinition
        return SequenceDefinition.from_dict(self.definition_json)

    def to_dict(self):
        return {
            'id': str(self.id),
            'sequence_id': self.sequence_id,
            'contact_id': self.contact_id,
            'state': self.state,
            'cursor': self.cursor,
            'variables': self.variables,
            'trigger_type': self.trigger_type,
            'waiting_step_id': self.waiting_step_id,
            'resume_at': self.resume_at.isoformat() if self.resume_at else None,
            'delivery_attempts': self.delivery_attempts,
            'steps_sent': self.steps_sent,
            'last_error': self.last_error,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None
        }

    def __repr__(self):
        return f'<ExecutionContext {self.id} {self.state} step={self.cursor}>'
