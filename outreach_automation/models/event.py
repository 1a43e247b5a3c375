import uuid
from datetime import datetime
from outreach_automation.models import db
from sqlalchemy import JSON


class Event(db.Model):
    __tablename__ = 'events'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    context_id = db.Column(db.String(36), db.ForeignKey('execution_contexts.id'), nullable=True, index=True)
    contact_id = db.Column(db.String(64), nullable=True)
    step_id = db.Column(db.String(64), nullable=True)
    event_type = db.Column(db.String(50), nullable=False)
    # Event types: step_executed, step_skipped, send_failed, suspended, resumed, jumped, stopped,
    # completed, failed, interaction_recorded
    timestamp = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    meta_json = db.Column(JSON, nullable=True)  # Additional event data, error details, etc.

    def to_dict(self):
        return {
            'id': str(self.id),
            'context_id': self.context_id,
            'contact_id': self.contact_id,
            'step_id': self.step_id,
            'event_type': self.event_type,
            'timestamp': self.timestamp.isoformat(),
            'meta_json': self.meta_json
        }

    def __repr__(self):
        return f'<Event {self.event_type} for context {self.context_id}>'
