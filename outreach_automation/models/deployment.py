import uuid
from datetime import datetime
from outreach_automation.models import db


class Deployment(db.Model):
    """One attempt to publish a sequence's compiled graph to the automation runtime."""
    __tablename__ = 'deployments'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sequence_id = db.Column(db.String(64), db.ForeignKey('sequences.id'), nullable=False, index=True)
    workflow_id = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False)  # deployed, failed
    fingerprint = db.Column(db.String(64), nullable=True)  # sha256 of the graph topology
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @classmethod
    def latest_for(cls, sequence_id, status='deployed'):
        return cls.query.filter_by(sequence_id=sequence_id, status=status).order_by(
            cls.created_at.desc()
        ).first()

    def to_dict(self):
        return {
            'id': str(self.id),
            'sequence_id': self.sequence_id,
            'workflow_id': self.workflow_id,
            'status': self.status,
            'fingerprint': self.fingerprint,
            'error': self.error,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<Deployment {self.sequence_id} -> {self.workflow_id} ({self.status})>'
