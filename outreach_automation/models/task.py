import uuid
from datetime import datetime
from outreach_automation.models import db


class Task(db.Model):
    """A manual to-do created by a task step."""
    __tablename__ = 'tasks'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    context_id = db.Column(db.String(36), db.ForeignKey('execution_contexts.id'), nullable=True)
    contact_id = db.Column(db.String(64), nullable=True)
    step_id = db.Column(db.String(64), nullable=True)
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)
    assignee = db.Column(db.String(255), nullable=True)
    idempotency_key = db.Column(db.String(255), nullable=True, unique=True)
    status = db.Column(db.String(20), nullable=False, default='open')  # open, done
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': str(self.id),
            'context_id': self.context_id,
            'contact_id': self.contact_id,
            'step_id': self.step_id,
            'title': self.title,
            'description': self.description,
            'assignee': self.assignee,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<Task {self.title}>'
