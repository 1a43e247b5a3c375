# Import db from extensions to use the same instance
from outreach_automation.extensions import db

# Import all models to ensure they are registered with SQLAlchemy
from outreach_automation.models.sequence import Sequence
from outreach_automation.models.contact import Contact
from outreach_automation.models.execution_context import ExecutionContext
from outreach_automation.models.step_stat import StepStat
from outreach_automation.models.event import Event
from outreach_automation.models.task import Task
from outreach_automation.models.deployment import Deployment

__all__ = ['db', 'Sequence', 'Contact', 'ExecutionContext', 'StepStat', 'Event', 'Task', 'Deployment']
