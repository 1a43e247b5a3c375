"""
Core sequence engine functionality.

This module contains the main sequence engine class:
- SequenceEngine class
- Starting a sequence for a batch of contacts
- Driving one claimed execution context until it suspends or terminates
- Sequence lifecycle (activate / pause / resume) and stats

Per step the engine checks the step's conditions, suspends for the step's
delay, runs the channel side effect, re-checks the conditions against the
refreshed interaction state, then bumps the step's counter and moves the
cursor in the same commit. Condition steps are the exception: they wait
first and evaluate afterwards. Waits are persisted as resume_at on the context and
picked up again by the scheduler; nothing sleeps.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from outreach_automation.utils.exceptions import DeliveryError, PersonalizationError, ValidationError
from .conditions import ConditionOutcome, evaluate_conditions
from .definitions import Sequence, SequenceStats, SequenceStatus, Step, StepType, TriggerType, _coerce_enum
from .delay_calculator import calculate_resume_at
from .validation import validate_sequence

logger = logging.getLogger(__name__)

# Transitions allowed per run, per step, before a jump loop is declared
JUMP_LOOP_FACTOR = 4


class SequenceEngine:
    """Engine for managing and executing outreach sequences."""

    def __init__(self, repository, channels, clock=None, max_delivery_retries=0, retry_backoff_seconds=300,
                 strict_personalization=False, lease_seconds=600):
        self.repository = repository
        self.channels = channels
        self.clock = clock or datetime.utcnow
        self.max_delivery_retries = max_delivery_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.strict_personalization = strict_personalization
        self.lease_seconds = lease_seconds

    @classmethod
    def from_config(cls, app_config, repository=None, channels=None, clock=None):
        """Build an engine wired from Flask config."""
        from outreach_automation.services.channels import ChannelRegistry
        from outreach_automation.services.repository import ExecutionRepository

        repository = repository or ExecutionRepository()
        return cls(
            repository=repository,
            channels=channels or ChannelRegistry.default(app_config, repository),
            clock=clock,
            max_delivery_retries=app_config.get('DELIVERY_MAX_RETRIES', 0),
            retry_backoff_seconds=app_config.get('DELIVERY_RETRY_BACKOFF_SECONDS', 300),
            strict_personalization=app_config.get('STRICT_PERSONALIZATION', False),
            lease_seconds=app_config.get('SCHEDULER_LEASE_SECONDS', 600),
        )

    # --- Lifecycle ----------------------------------------------------------

    def activate_sequence(self, sequence_id: str):
        sequence = self.repository.get_sequence(sequence_id)
        if sequence.status == SequenceStatus.COMPLETED.value:
            raise ValidationError(f"Sequence {sequence_id} is completed and cannot be activated again")
        definition = validate_sequence(sequence.to_definition(), for_activation=True)

        sequence.status = SequenceStatus.ACTIVE.value
        self.repository.ensure_step_stats(sequence.id, [step.id for step in definition.steps])
        self.repository.commit()
        logger.info(f"Sequence {sequence.id} activated with {len(definition.steps)} steps")
        return sequence

    def pause_sequence(self, sequence_id: str):
        """Stop suspended contacts from resuming. Sends already dispatched are not revoked."""
        sequence = self.repository.get_sequence(sequence_id)
        if sequence.status != SequenceStatus.ACTIVE.value:
            raise ValidationError(f"Only active sequences can be paused (status: {sequence.status})")
        sequence.status = SequenceStatus.PAUSED.value
        self.repository.commit()
        logger.info(f"Sequence {sequence.id} paused")
        return sequence

    def resume_sequence(self, sequence_id: str):
        sequence = self.repository.get_sequence(sequence_id)
        if sequence.status != SequenceStatus.PAUSED.value:
            raise ValidationError(f"Only paused sequences can be resumed (status: {sequence.status})")
        validate_sequence(sequence.to_definition(), for_activation=True)
        sequence.status = SequenceStatus.ACTIVE.value
        self.repository.commit()
        logger.info(f"Sequence {sequence.id} resumed")
        return sequence

    def complete_sequence(self, sequence_id: str):
        """Close an active or paused sequence once no contact is still moving through it.

        Completed is final: the sequence takes no new contacts and cannot be
        activated again.
        """
        sequence = self.repository.get_sequence(sequence_id)
        if sequence.status not in (SequenceStatus.ACTIVE.value, SequenceStatus.PAUSED.value):
            raise ValidationError(f"Only active or paused sequences can be completed (status: {sequence.status})")
        live = self.repository.live_context_count(sequence.id)
        if live:
            raise ValidationError(f"Sequence {sequence_id} still has {live} contacts in progress")
        sequence.status = SequenceStatus.COMPLETED.value
        self.repository.commit()
        logger.info(f"Sequence {sequence.id} completed")
        return sequence

    # --- Starting -----------------------------------------------------------

    def _resolve_contact(self, contact):
        if isinstance(contact, str):
            return self.repository.get_contact(contact)
        if isinstance(contact, dict):
            return self.repository.upsert_contact(contact)
        return contact

    def start_sequence(self, sequence_id: str, contacts: Iterable[Any], variables: Optional[Dict[str, Any]] = None,
                       trigger_type: str = 'manual') -> List:
        """Create one pending execution context per contact.

        Contacts may be Contact rows, contact ids or contact payloads. A contact
        already moving through this sequence is skipped. Each context keeps a
        snapshot of the definition as it is now, so later edits never reach it.
        """
        sequence = self.repository.get_sequence(sequence_id)
        if sequence.status != SequenceStatus.ACTIVE.value:
            raise ValidationError(f"Sequence {sequence_id} is not active (status: {sequence.status})")

        trigger = _coerce_enum(TriggerType, trigger_type, 'trigger type')
        definition = validate_sequence(sequence.to_definition(), for_activation=True)
        snapshot = definition.to_dict()
        now = self.clock()

        contexts = []
        for item in contacts:
            contact = self._resolve_contact(item)
            if self.repository.has_live_context(sequence.id, contact.id):
                logger.info(f"Contact {contact.id} is already in sequence {sequence.id}, skipping")
                continue
            context = self.repository.create_context(
                sequence.id, contact.id, snapshot, variables, trigger.value, now
            )
            self.repository.record_event(context, 'started', trigger_type=trigger.value)
            contexts.append(context)

        self.repository.commit()
        logger.info(f"Started sequence {sequence.id} for {len(contexts)} contacts")
        return contexts

    # --- Running ------------------------------------------------------------

    def advance(self, context_id: str, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """Claim a context and run it. Returns None when another worker has it or it is not due."""
        now = now or self.clock()
        if not self.repository.claim(context_id, now, self.lease_seconds):
            return None
        return self.run_context(self.repository.get_context(context_id), now=now)

    def run_context(self, context, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Drive one claimed context until it suspends or terminates."""
        now = now or self.clock()
        result = {
            'context_id': context.id,
            'contact_id': context.contact_id,
            'state': context.state,
            'steps_executed': 0,
            'error': None,
        }

        try:
            sequence = self.repository.get_sequence(context.sequence_id)
            if sequence.status != SequenceStatus.ACTIVE.value:
                logger.info(f"Sequence {sequence.id} is {sequence.status}; context {context.id} stays suspended")
                self.repository.release(context)
            else:
                self._drive(context, context.to_definition(), now, result)
        except Exception as e:
            logger.error(f"Error running execution context {context.id}: {str(e)}")
            self.repository.rollback()
            self._finish(context, 'failed', now, error=str(e))
            result['error'] = str(e)

        result['state'] = context.state
        return result

    def _drive(self, context, definition: Sequence, now: datetime, result: Dict[str, Any]):
        steps = definition.steps
        contact = context.contact
        max_transitions = max(len(steps), 1) * JUMP_LOOP_FACTOR
        transitions = 0

        while True:
            if context.cursor >= len(steps):
                self._finish(context, 'completed', now)
                return

            step = steps[context.cursor]
            # Condition steps wait first and decide afterwards; other steps are guarded on entry
            checkpoint = 'evaluate' if step.type == StepType.CONDITION else 'entry'

            if context.waiting_step_id == step.id:
                # Delay elapsed (or a retry is due); entry guards already passed
                context.waiting_step_id = None
                context.resume_at = None
                self.repository.record_event(context, 'resumed', step_id=step.id)
            else:
                if checkpoint == 'entry':
                    outcome = evaluate_conditions(step.conditions, contact.interaction_state())
                    if outcome.should_stop:
                        self._stop(context, step, outcome, now, checkpoint=checkpoint)
                        return
                    if outcome.should_jump:
                        transitions += 1
                        if not self._jump(context, definition, step, outcome, now, transitions, max_transitions):
                            return
                        continue
                if step.timing.delay > 0:
                    self._suspend(context, step, now)
                    return

            if checkpoint == 'evaluate':
                outcome = evaluate_conditions(step.conditions, contact.interaction_state())
                if outcome.should_stop:
                    self._stop(context, step, outcome, now, checkpoint=checkpoint)
                    return
                if outcome.should_jump:
                    transitions += 1
                    if not self._jump(context, definition, step, outcome, now, transitions, max_transitions):
                        return
                    continue

            if step.has_side_effect:
                try:
                    send_result = self._execute_side_effect(context, contact, step)
                except DeliveryError as e:
                    self._handle_delivery_failure(context, step, e, now)
                    result['error'] = str(e)
                    return
                except PersonalizationError as e:
                    self.repository.rollback()
                    self._finish(context, 'failed', now, error=str(e), step_id=step.id)
                    result['error'] = str(e)
                    return

                self.repository.increment_step_stat(context.sequence_id, step.id, 'sent')
                context.steps_sent += 1
                context.delivery_attempts = 0
                result['steps_executed'] += 1
                self.repository.record_event(context, 'step_executed', step_id=step.id,
                                             channel=step.type.value, result=send_result)
                logger.info(f"Step {step.id} ({step.type.value}) executed for contact {contact.id}")

                if step.conditions:
                    self.repository.refresh_contact(contact)
                    outcome = evaluate_conditions(step.conditions, contact.interaction_state())
                    if outcome.should_stop:
                        self._stop(context, step, outcome, now, checkpoint='exit')
                        return
                    if outcome.should_jump:
                        transitions += 1
                        if not self._jump(context, definition, step, outcome, now, transitions, max_transitions):
                            return
                        continue
            else:
                self.repository.record_event(context, 'step_executed', step_id=step.id, channel=step.type.value)

            context.cursor += 1
            context.updated_at = now
            self.repository.commit()

            transitions += 1
            if transitions > max_transitions:
                self._finish(context, 'failed', now, error="Jump loop detected", step_id=step.id)
                return

    def _suspend(self, context, step: Step, now: datetime):
        context.state = 'waiting'
        context.waiting_step_id = step.id
        context.resume_at = calculate_resume_at(now, step.timing)
        context.lease_expires_at = None
        context.updated_at = now
        self.repository.record_event(context, 'suspended', step_id=step.id,
                                     resume_at=context.resume_at.isoformat())
        self.repository.commit()
        logger.info(f"Context {context.id} waiting at step {step.id} until {context.resume_at.isoformat()}")

    def _stop(self, context, step: Step, outcome: ConditionOutcome, now: datetime, checkpoint: str):
        logger.info(f"Context {context.id} stopped at step {step.id} by {outcome.matched.type.value} ({checkpoint})")
        self._finish(context, 'stopped', now, step_id=step.id,
                     condition=outcome.matched.type.value, checkpoint=checkpoint)

    def _jump(self, context, definition: Sequence, step: Step, outcome: ConditionOutcome, now: datetime,
              transitions: int, max_transitions: int) -> bool:
        if transitions > max_transitions:
            self._finish(context, 'failed', now, error="Jump loop detected", step_id=step.id)
            return False

        target_index = definition.step_index(outcome.target_step_id)
        if target_index is None:
            self._finish(context, 'failed', now, error=f"Jump target '{outcome.target_step_id}' not found",
                         step_id=step.id)
            return False

        context.cursor = target_index
        context.waiting_step_id = None
        context.resume_at = None
        context.updated_at = now
        self.repository.record_event(context, 'jumped', step_id=step.id, target_step_id=outcome.target_step_id,
                                     condition=outcome.matched.type.value)
        self.repository.commit()
        logger.info(f"Context {context.id} jumped from step {step.id} to {outcome.target_step_id}")
        return True

    def _handle_delivery_failure(self, context, step: Step, error: DeliveryError, now: datetime):
        # Discard anything the failed step wrote (e.g. a half-created task)
        self.repository.rollback()
        context.delivery_attempts += 1
        context.last_error = str(error)
        self.repository.record_event(context, 'send_failed', step_id=step.id, error=str(error),
                                     attempt=context.delivery_attempts)

        if context.delivery_attempts <= self.max_delivery_retries:
            backoff = self.retry_backoff_seconds * 2 ** (context.delivery_attempts - 1)
            context.state = 'waiting'
            context.waiting_step_id = step.id
            context.resume_at = now + timedelta(seconds=backoff)
            context.lease_expires_at = None
            context.updated_at = now
            self.repository.commit()
            logger.warning(f"Delivery failed for context {context.id} at step {step.id}, "
                           f"retry {context.delivery_attempts}/{self.max_delivery_retries} in {backoff}s: {error}")
        else:
            logger.error(f"Delivery failed for context {context.id} at step {step.id}: {error}")
            self._finish(context, 'failed', now, error=str(error), step_id=step.id)

    def _finish(self, context, state: str, now: datetime, error: Optional[str] = None,
                step_id: Optional[str] = None, **meta):
        context.state = state
        context.finished_at = now
        context.updated_at = now
        context.lease_expires_at = None
        context.resume_at = None
        context.waiting_step_id = None
        if error:
            context.last_error = error
        self.repository.record_event(context, state, step_id=step_id, error=error, **meta)
        self.repository.commit()
        logger.info(f"Context {context.id} for contact {context.contact_id} {state}")

    # --- Stats --------------------------------------------------------------

    def sequence_stats(self, sequence_id: str) -> Dict[str, Any]:
        sequence = self.repository.get_sequence(sequence_id)
        definition = sequence.to_definition()
        counts = self.repository.context_counts(sequence.id)
        total = sum(counts.values())
        replied = self.repository.replied_contact_count(sequence.id)

        stats = SequenceStats(
            total_contacts=total,
            completed=counts.get('completed', 0),
            in_progress=sum(counts.get(state, 0) for state in ('pending', 'waiting', 'running')),
            response_rate=round(replied / total * 100, 1) if total else 0.0,
        )
        step_stats = self.repository.step_stats(sequence.id)

        steps = []
        for step in definition.steps:
            stat = step_stats.get(step.id)
            entry = {'step_id': step.id, 'name': step.display_name, 'type': step.type.value}
            entry.update(stat.to_dict() if stat else {'sent': 0, 'opened': 0, 'replied': 0, 'clicked': 0})
            entry.pop('sequence_id', None)
            steps.append(entry)

        result = stats.to_dict()
        result.update({
            'sequenceId': sequence.id,
            'stopped': counts.get('stopped', 0),
            'failed': counts.get('failed', 0),
            'steps': steps,
        })
        return result

    # Import other modules for functionality
    from .action_executor import _execute_side_effect, _build_channel_message, _personalize_for_step
