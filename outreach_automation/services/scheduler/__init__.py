"""
Scheduler services package.

- core.py: the durable execution scheduler that resumes waiting contacts
"""

from .core import ExecutionScheduler, get_execution_scheduler

# Export the main scheduler class and function
__all__ = ['ExecutionScheduler', 'get_execution_scheduler']
