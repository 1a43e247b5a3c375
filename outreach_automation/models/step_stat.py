from outreach_automation.models import db
from sqlalchemy import UniqueConstraint


class StepStat(db.Model):
    __tablename__ = 'step_stats'

    COUNTERS = ('sent', 'opened', 'replied', 'clicked')

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    sequence_id = db.Column(db.String(64), db.ForeignKey('sequences.id'), nullable=False)
    step_id = db.Column(db.String(64), nullable=False)
    sent = db.Column(db.Integer, nullable=False, default=0)
    opened = db.Column(db.Integer, nullable=False, default=0)
    replied = db.Column(db.Integer, nullable=False, default=0)
    clicked = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('sequence_id', 'step_id', name='uq_step_stat_sequence_step'),
    )

    @classmethod
    def increment(cls, sequence_id, step_id, counter, amount=1):
        """Atomically bump one counter with a single UPDATE; returns rows touched.

        The caller owns the transaction, so the increment commits together
        with whatever else the caller changed.
        """
        if counter not in cls.COUNTERS:
            raise ValueError(f"Unknown step counter: {counter}")
        column = getattr(cls, counter)
        return cls.query.filter_by(sequence_id=sequence_id, step_id=step_id).update(
            {column: column + amount}, synchronize_session=False
        )

    def to_dict(self):
        return {
            'sequence_id': self.sequence_id,
            'step_id': self.step_id,
            'sent': self.sent,
            'opened': self.opened,
            'replied': self.replied,
            'clicked': self.clicked
        }

    def __repr__(self):
        return f'<StepStat {self.sequence_id}/{self.step_id} sent={self.sent}>'
