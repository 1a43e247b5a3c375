"""
Unit tests for the execution scheduler.

Covers polling for due contexts, lease recovery, claim exclusivity,
per-context error isolation and the background thread lifecycle.
"""

import pytest
from datetime import timedelta
from unittest.mock import Mock

from outreach_automation.extensions import db
from outreach_automation.models import ExecutionContext
from outreach_automation.services.scheduler import ExecutionScheduler, get_execution_scheduler


@pytest.fixture
def scheduler(app, engine, clock):
    """Scheduler driving the test engine inline."""
    return ExecutionScheduler(app=app, engine=engine, clock=clock)


@pytest.mark.unit
class TestRunDue:

    def test_runs_every_pending_context(self, scheduler, engine, sender, sample_sequence, make_contact):
        contacts = [make_contact(), make_contact()]
        engine.start_sequence(sample_sequence.id, [c.id for c in contacts])

        results = scheduler.run_due()

        assert len(results) == 2
        assert {r['state'] for r in results} == {'waiting'}
        assert sender.sent_step_ids == ['s1', 's1']

    def test_waiting_contexts_run_once_due(self, scheduler, engine, sender, clock, sample_sequence,
                                           sample_contact):
        engine.start_sequence(sample_sequence.id, [sample_contact.id])
        scheduler.run_due()

        clock.advance(days=2)
        assert scheduler.run_due() == []

        clock.advance(days=1)
        [result] = scheduler.run_due()
        assert result['state'] == 'waiting'
        assert sender.sent_step_ids == ['s1', 's3']

    def test_paused_sequence_is_not_polled(self, scheduler, engine, sender, sample_sequence, sample_contact):
        engine.start_sequence(sample_sequence.id, [sample_contact.id])
        engine.pause_sequence(sample_sequence.id)

        assert scheduler.run_due() == []
        assert sender.sent == []

        engine.resume_sequence(sample_sequence.id)
        assert len(scheduler.run_due()) == 1

    def test_nothing_due(self, scheduler):
        assert scheduler.run_due() == []

    def test_batch_size_limits_each_poll(self, scheduler, engine, sample_sequence, make_contact):
        contacts = [make_contact() for _ in range(3)]
        engine.start_sequence(sample_sequence.id, [c.id for c in contacts])
        scheduler.batch_size = 2

        assert len(scheduler.run_due()) == 2
        assert len(scheduler.run_due()) == 1


@pytest.mark.unit
class TestLeases:

    def test_claim_is_exclusive(self, repository, engine, clock, sample_sequence, sample_contact):
        [context] = engine.start_sequence(sample_sequence.id, [sample_contact.id])

        assert repository.claim(context.id, clock(), 60) is True
        assert repository.claim(context.id, clock(), 60) is False
        assert engine.advance(context.id) is None

    def test_expired_lease_is_recovered(self, scheduler, repository, engine, sender, clock, sample_sequence,
                                        sample_contact):
        [context] = engine.start_sequence(sample_sequence.id, [sample_contact.id])
        context_id = context.id
        # A worker claimed the context and died
        repository.claim(context_id, clock(), 60)

        assert scheduler.run_due() == []

        clock.advance(minutes=2)
        [result] = scheduler.run_due()
        assert result['context_id'] == context_id
        assert sender.sent_step_ids == ['s1']

    def test_recovery_keeps_waiting_step(self, repository, engine, clock, sample_sequence, sample_contact):
        [context] = engine.start_sequence(sample_sequence.id, [sample_contact.id])
        engine.advance(context.id)
        context = ExecutionContext.query.get(context.id)
        assert context.waiting_step_id == 's2'

        context.state = 'running'
        context.lease_expires_at = clock() - timedelta(minutes=1)
        db.session.commit()

        assert repository.recover_expired_leases(clock()) == 1
        db.session.refresh(context)
        assert context.state == 'waiting'
        assert context.waiting_step_id == 's2'
        assert context.lease_expires_at is None


@pytest.mark.unit
class TestErrorIsolation:

    def test_failing_context_does_not_stop_batch(self, app, clock, engine, sample_sequence, make_contact):
        contacts = [make_contact(), make_contact()]
        contexts = engine.start_sequence(sample_sequence.id, [c.id for c in contacts])
        failing_id = contexts[0].id

        mock_engine = Mock()

        def advance(context_id, now=None):
            if context_id == failing_id:
                raise RuntimeError("database went away")
            return {'context_id': context_id, 'state': 'waiting', 'steps_executed': 1, 'error': None}

        mock_engine.advance.side_effect = advance
        scheduler = ExecutionScheduler(app=app, engine=mock_engine, clock=clock)

        results = {r['context_id']: r for r in scheduler.run_due()}

        assert results[failing_id]['error'] == "database went away"
        assert results[contexts[1].id]['state'] == 'waiting'

    def test_worker_pool(self, app, clock, engine, sample_sequence, make_contact):
        contacts = [make_contact() for _ in range(3)]
        engine.start_sequence(sample_sequence.id, [c.id for c in contacts])

        mock_engine = Mock()
        mock_engine.advance.side_effect = lambda context_id, now=None: {'context_id': context_id}
        scheduler = ExecutionScheduler(app=app, engine=mock_engine, clock=clock)
        scheduler.max_workers = 3

        results = scheduler.run_due()

        assert len(results) == 3
        assert mock_engine.advance.call_count == 3

    def test_unclaimed_contexts_left_out(self, app, clock, engine, sample_sequence, sample_contact):
        engine.start_sequence(sample_sequence.id, [sample_contact.id])
        mock_engine = Mock()
        mock_engine.advance.return_value = None

        assert ExecutionScheduler(app=app, engine=mock_engine, clock=clock).run_due() == []


@pytest.mark.unit
class TestLifecycle:

    def test_init_app_reads_config(self, app):
        app.config['SCHEDULER_POLL_INTERVAL'] = 5
        app.config['SCHEDULER_BATCH_SIZE'] = 10
        scheduler = ExecutionScheduler(app=app)

        assert scheduler.poll_interval == 5
        assert scheduler.batch_size == 10
        assert scheduler.max_workers == 1

    def test_builds_engine_from_config(self, app):
        scheduler = ExecutionScheduler(app=app)
        engine = scheduler._get_engine()

        assert engine is scheduler._get_engine()
        scheduler.init_app(app)
        assert scheduler.engine is None

    def test_injected_engine_survives_init_app(self, app, engine):
        scheduler = ExecutionScheduler(app=app, engine=engine)
        scheduler.init_app(app)
        assert scheduler.engine is engine

    def test_start_and_stop(self, scheduler):
        scheduler.poll_interval = 60
        scheduler.run_due = Mock(return_value=[])

        scheduler.start()
        assert scheduler.running is True
        assert scheduler.thread.is_alive()

        # Second start is a no-op
        thread = scheduler.thread
        scheduler.start()
        assert scheduler.thread is thread

        scheduler.stop(timeout=5)
        assert scheduler.running is False
        assert not thread.is_alive()
        scheduler.run_due.assert_called()

    def test_stop_when_not_running(self, scheduler):
        scheduler.stop()
        assert scheduler.running is False

    def test_global_instance(self):
        assert get_execution_scheduler() is get_execution_scheduler()
