"""
Core scheduler functionality.

This module contains the durable execution scheduler:
- ExecutionScheduler class
- Thread management and the polling loop
- Claiming due execution contexts and running them on a worker pool

Suspended contacts live in the database as execution contexts with a
resume_at timestamp, so pending waits survive a restart. Each poll recovers
contexts whose worker lease expired, then claims and runs whatever is due.
"""

import concurrent.futures
import contextlib
import logging
import threading
from datetime import datetime

from flask import has_app_context

from outreach_automation.services.repository import ExecutionRepository
from outreach_automation.services.sequence_engine import SequenceEngine

logger = logging.getLogger(__name__)

# Global scheduler instance
_execution_scheduler = None


def get_execution_scheduler():
    """Get the global scheduler instance."""
    global _execution_scheduler
    if _execution_scheduler is None:
        _execution_scheduler = ExecutionScheduler()
    return _execution_scheduler


class ExecutionScheduler:
    """Background scheduler that resumes suspended execution contexts."""

    def __init__(self, app=None, engine=None, clock=None):
        self.app = app
        self.engine = engine  # Built lazily from app config
        self._owns_engine = engine is None
        self.clock = clock or datetime.utcnow
        self.running = False
        self.thread = None
        self._stop_event = threading.Event()

        self.poll_interval = 30
        self.max_workers = 8
        self.batch_size = 100

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize the scheduler with the Flask app."""
        self.app = app
        self.poll_interval = app.config.get('SCHEDULER_POLL_INTERVAL', 30)
        self.max_workers = app.config.get('SCHEDULER_MAX_WORKERS', 8)
        self.batch_size = app.config.get('SCHEDULER_BATCH_SIZE', 100)
        if self._owns_engine:
            self.engine = None
        logger.info(f"Scheduler initialized (poll every {self.poll_interval}s, {self.max_workers} workers)")

    def _get_engine(self):
        """Get sequence engine instance (lazy initialization)."""
        if self.engine is None:
            self.engine = SequenceEngine.from_config(self.app.config, clock=self.clock)
        return self.engine

    def _app_context(self):
        if has_app_context():
            return contextlib.nullcontext()
        return self.app.app_context()

    def start(self):
        """Start the background processing thread."""
        if self.running:
            logger.warning("Scheduler is already running")
            return

        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._process_loop, daemon=True)
        self.thread.start()
        logger.info("Execution scheduler started successfully")

    def stop(self, timeout=30):
        """Stop the background processing thread."""
        if not self.running:
            logger.info("Scheduler is already stopped")
            return

        logger.info("Stopping scheduler...")
        self.running = False
        self._stop_event.set()

        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=timeout)
            if self.thread.is_alive():
                logger.warning(f"Scheduler thread did not terminate within {timeout} seconds")

        logger.info("Scheduler stopped")

    def _process_loop(self):
        """Main processing loop for the scheduler."""
        logger.info("Starting scheduler processing loop")

        while self.running:
            try:
                results = self.run_due()
                if results:
                    logger.info(f"Processed {len(results)} due execution contexts")
            except Exception as e:
                logger.error(f"Error in scheduler processing loop: {str(e)}")

            self._stop_event.wait(self.poll_interval)

        logger.info("Scheduler processing loop ended")

    def run_due(self, now=None):
        """Run every execution context that is due.

        Returns one result dict per context this scheduler actually ran;
        contexts claimed by another worker in the meantime are left out.
        """
        now = now or self.clock()

        with self._app_context():
            repository = ExecutionRepository()
            repository.recover_expired_leases(now)
            context_ids = repository.due_context_ids(now, self.batch_size)

        if not context_ids:
            return []

        logger.info(f"{len(context_ids)} execution contexts due at {now.isoformat()}")

        results = []
        if self.max_workers <= 1:
            for context_id in context_ids:
                result = self._run_one(context_id, now)
                if result is not None:
                    results.append(result)
            return results

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._run_one, context_id, now) for context_id in context_ids]
            for future in concurrent.futures.as_completed(futures):
                result = future.result()
                if result is not None:
                    results.append(result)
        return results

    def _run_one(self, context_id, now):
        """Claim and run a single context inside its own app context."""
        with self._app_context():
            try:
                return self._get_engine().advance(context_id, now=now)
            except Exception as e:
                logger.error(f"Error processing execution context {context_id}: {str(e)}")
                return {'context_id': context_id, 'state': None, 'steps_executed': 0, 'error': str(e)}
