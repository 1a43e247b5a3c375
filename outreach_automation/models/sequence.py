import uuid
from datetime import datetime
from outreach_automation.models import db
from sqlalchemy import JSON


class Sequence(db.Model):
    __tablename__ = 'sequences'

    id = db.Column(db.String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='draft')  # draft, active, paused, completed
    template_id = db.Column(db.String(64), nullable=True)
    definition_json = db.Column(JSON, nullable=False, default=dict)  # {"steps": [...], "triggers": [...]}
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    contexts = db.relationship('ExecutionContext', backref='sequence', lazy=True, cascade='all, delete-orphan')

    @property
    def is_editable(self):
        return self.status == 'draft'

    def definition_dict(self):
        """Full wire-format definition (id, name, status, steps, triggers)."""
        definition = self.definition_json or {}
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description or '',
            'status': self.status,
            'steps': list(definition.get('steps') or []),
            'triggers': list(definition.get('triggers') or []),
        }

    def to_definition(self):
        """Parse the stored definition into the engine's domain model."""
        from outreach_automation.services.sequence_engine.definitions import Sequence as SequenceDefinition
        return SequenceDefinition.from_dict(self.definition_dict())

    def set_definition(self, steps, triggers):
        self.definition_json = {'steps': steps or [], 'triggers': triggers or []}

    def to_dict(self):
        result = self.definition_dict()
        result.update({
            'template_id': self.template_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        })
        return result

    def __repr__(self):
        return f'<Sequence {self.name} ({self.status})>'
