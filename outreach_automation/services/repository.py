"""
Persistence for the sequence engine and scheduler.

ExecutionRepository is the only place the engine and the scheduler touch the
database session. Every write that has to be atomic with respect to other
workers (claims, lease recovery, stat counters) is a single conditional UPDATE.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, or_

from outreach_automation.extensions import db
from outreach_automation.models import Contact, Event, ExecutionContext, Sequence, StepStat, Task
from outreach_automation.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)

CLAIMABLE_STATES = ('pending', 'waiting')

INTERACTION_COUNTERS = {
    'replied': ('has_replied', 'replied'),
    'opened': ('has_opened', 'opened'),
    'clicked': ('has_clicked', 'clicked'),
}


class ExecutionRepository:
    """Data access for sequences, contacts and execution contexts."""

    @property
    def session(self):
        return db.session

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    # --- Sequences and contacts -------------------------------------------

    def get_sequence(self, sequence_id: str) -> Sequence:
        sequence = self.session.get(Sequence, sequence_id)
        if sequence is None:
            raise NotFoundError('Sequence', sequence_id)
        return sequence

    def get_contact(self, contact_id: str) -> Contact:
        contact = self.session.get(Contact, contact_id)
        if contact is None:
            raise NotFoundError('Contact', contact_id)
        return contact

    def upsert_contact(self, data: Dict[str, Any]) -> Contact:
        """Create a contact from a payload, or update the one with the same id."""
        contact = self.session.get(Contact, str(data['id'])) if data.get('id') else None
        if contact is None:
            contact = Contact.from_payload(data)
            self.session.add(contact)
        else:
            contact.update_from_payload(data)
        self.session.flush()
        return contact

    def refresh_contact(self, contact: Contact) -> Contact:
        """Reload interaction flags written by other sessions."""
        self.session.flush()
        self.session.refresh(contact)
        return contact

    # --- Execution contexts -----------------------------------------------

    def get_context(self, context_id: str) -> ExecutionContext:
        context = self.session.get(ExecutionContext, context_id)
        if context is None:
            raise NotFoundError('Execution context', context_id)
        return context

    def has_live_context(self, sequence_id: str, contact_id: str) -> bool:
        return self.session.query(ExecutionContext.id).filter(
            ExecutionContext.sequence_id == sequence_id,
            ExecutionContext.contact_id == contact_id,
            ExecutionContext.state.in_(ExecutionContext.LIVE_STATES),
        ).first() is not None

    def live_context_count(self, sequence_id: str) -> int:
        return self.session.query(func.count(ExecutionContext.id)).filter(
            ExecutionContext.sequence_id == sequence_id,
            ExecutionContext.state.in_(ExecutionContext.LIVE_STATES),
        ).scalar() or 0

    def create_context(self, sequence_id: str, contact_id: str, definition: Dict[str, Any],
                       variables: Optional[Dict[str, Any]], trigger_type: str, now: datetime) -> ExecutionContext:
        context = ExecutionContext(
            sequence_id=sequence_id,
            contact_id=contact_id,
            state='pending',
            cursor=0,
            definition_json=definition,
            variables_json=dict(variables or {}),
            trigger_type=trigger_type,
            started_at=now,
            updated_at=now,
        )
        self.session.add(context)
        self.session.flush()
        return context

    def list_contexts(self, sequence_id: str, state: Optional[str] = None, limit: int = 100) -> List[ExecutionContext]:
        query = ExecutionContext.query.filter_by(sequence_id=sequence_id)
        if state:
            query = query.filter_by(state=state)
        return query.order_by(ExecutionContext.started_at.asc()).limit(limit).all()

    def claim(self, context_id: str, now: datetime, lease_seconds: int) -> bool:
        """Take a due context for exclusive processing.

        Only one worker can win: the UPDATE matches only while the context is
        still pending or waiting and its resume time has passed.
        """
        rows = ExecutionContext.query.filter(
            ExecutionContext.id == context_id,
            ExecutionContext.state.in_(CLAIMABLE_STATES),
            or_(ExecutionContext.resume_at.is_(None), ExecutionContext.resume_at <= now),
        ).update({
            'state': 'running',
            'lease_expires_at': now + timedelta(seconds=lease_seconds),
            'updated_at': now,
        }, synchronize_session=False)
        self.commit()
        return rows == 1

    def due_context_ids(self, now: datetime, limit: int) -> List[str]:
        """Ids of contexts ready to run whose sequence is active."""
        rows = self.session.query(ExecutionContext.id).join(
            Sequence, Sequence.id == ExecutionContext.sequence_id
        ).filter(
            Sequence.status == 'active',
            ExecutionContext.state.in_(CLAIMABLE_STATES),
            or_(ExecutionContext.resume_at.is_(None), ExecutionContext.resume_at <= now),
        ).order_by(ExecutionContext.resume_at.asc(), ExecutionContext.started_at.asc()).limit(limit).all()
        return [row[0] for row in rows]

    def recover_expired_leases(self, now: datetime) -> int:
        """Return contexts whose worker died mid-run to the queue."""
        expired = [
            ExecutionContext.state == 'running',
            ExecutionContext.lease_expires_at.isnot(None),
            ExecutionContext.lease_expires_at < now,
        ]
        waiting = ExecutionContext.query.filter(
            *expired, ExecutionContext.waiting_step_id.isnot(None)
        ).update({'state': 'waiting', 'lease_expires_at': None, 'resume_at': now}, synchronize_session=False)
        pending = ExecutionContext.query.filter(
            *expired, ExecutionContext.waiting_step_id.is_(None)
        ).update({'state': 'pending', 'lease_expires_at': None, 'resume_at': now}, synchronize_session=False)
        self.commit()
        recovered = waiting + pending
        if recovered:
            logger.warning(f"Recovered {recovered} execution contexts with expired leases")
        return recovered

    def release(self, context: ExecutionContext):
        """Give a claimed context back without running it."""
        context.state = 'waiting' if context.waiting_step_id else 'pending'
        context.lease_expires_at = None
        self.commit()

    # --- Stats, events, tasks ---------------------------------------------

    def ensure_step_stats(self, sequence_id: str, step_ids: Iterable[str]):
        existing = {
            row[0] for row in self.session.query(StepStat.step_id).filter_by(sequence_id=sequence_id).all()
        }
        for step_id in step_ids:
            if step_id not in existing:
                self.session.add(StepStat(sequence_id=sequence_id, step_id=step_id))
        self.session.flush()

    def increment_step_stat(self, sequence_id: str, step_id: str, counter: str) -> int:
        rows = StepStat.increment(sequence_id, step_id, counter)
        if rows == 0:
            # The definition changed after activation; start a counter for the new step
            self.session.add(StepStat(sequence_id=sequence_id, step_id=step_id, **{counter: 1}))
            self.session.flush()
            rows = 1
        return rows

    def step_stats(self, sequence_id: str) -> Dict[str, StepStat]:
        return {stat.step_id: stat for stat in StepStat.query.filter_by(sequence_id=sequence_id).all()}

    def record_event(self, context: Optional[ExecutionContext], event_type: str,
                     step_id: Optional[str] = None, contact_id: Optional[str] = None, **meta) -> Event:
        event = Event(
            context_id=context.id if context is not None else None,
            contact_id=contact_id or (context.contact_id if context is not None else None),
            step_id=step_id,
            event_type=event_type,
            meta_json=meta or None,
        )
        self.session.add(event)
        return event

    def create_task(self, title: str, description: Optional[str], assignee: Optional[str],
                    contact_id: Optional[str], context_id: Optional[str], step_id: Optional[str],
                    idempotency_key: Optional[str] = None) -> Task:
        if idempotency_key:
            existing = Task.query.filter_by(idempotency_key=idempotency_key).first()
            if existing is not None:
                logger.info(f"Task for {idempotency_key} already exists, not creating a duplicate")
                return existing
        task = Task(
            title=title,
            description=description,
            assignee=assignee,
            contact_id=contact_id,
            context_id=context_id,
            step_id=step_id,
            idempotency_key=idempotency_key,
        )
        self.session.add(task)
        self.session.flush()
        return task

    def record_interaction(self, contact: Contact, kind: str, sequence_id: Optional[str] = None,
                           step_id: Optional[str] = None) -> Event:
        """Set an interaction flag on a contact and count it against the step that caused it.

        Only the first report of an interaction is counted, so a redelivered
        tracking webhook leaves the step stats unchanged.
        """
        if kind not in INTERACTION_COUNTERS:
            raise ValueError(f"Unknown interaction type: {kind}")
        flag, counter = INTERACTION_COUNTERS[kind]
        first_time = not getattr(contact, flag)
        setattr(contact, flag, True)
        if first_time and sequence_id and step_id:
            self.increment_step_stat(sequence_id, step_id, counter)
        event = self.record_event(
            None, 'interaction_recorded', step_id=step_id, contact_id=contact.id,
            interaction=kind, sequence_id=sequence_id, counted=first_time,
        )
        self.commit()
        logger.info(f"Recorded '{kind}' for contact {contact.id} (sequence={sequence_id}, step={step_id})")
        return event

    def context_counts(self, sequence_id: str) -> Dict[str, int]:
        rows = self.session.query(ExecutionContext.state, func.count(ExecutionContext.id)).filter(
            ExecutionContext.sequence_id == sequence_id
        ).group_by(ExecutionContext.state).all()
        return {state: count for state, count in rows}

    def replied_contact_count(self, sequence_id: str) -> int:
        return self.session.query(func.count(func.distinct(ExecutionContext.contact_id))).join(
            Contact, Contact.id == ExecutionContext.contact_id
        ).filter(
            ExecutionContext.sequence_id == sequence_id,
            Contact.has_replied.is_(True),
        ).scalar() or 0
