"""
Sequence engine services package.

This package contains organized sequence engine functionality:
- definitions.py: Sequence, Step and config data structures
- validation.py: Structural and activation checks
- message_formatter.py: Token personalization and runtime expressions
- conditions.py: Condition evaluation against interaction state
- delay_calculator.py: Delay calculations and timing logic
- action_executor.py: Channel side effects for steps
- templates.py: Prebuilt sequence templates
- core.py: Main sequence engine class
"""

from .core import SequenceEngine
from .definitions import Sequence, Step, StepType
from .templates import SEQUENCE_TEMPLATES

__all__ = ['SequenceEngine', 'Sequence', 'Step', 'StepType', 'SEQUENCE_TEMPLATES']
