"""
Sequence routes package.

This package contains organized sequence functionality:
- crud.py: Templates and basic CRUD operations for sequences
- management.py: Lifecycle, starting contacts, stats and executions
- validation.py: Sequence validation and personalization preview
- deployment.py: Graph compilation, runtime deployment and invocation
"""

from flask import Blueprint

# Create the main sequence blueprint
sequence_bp = Blueprint('sequence', __name__)

# Import all route modules to register them
from . import crud
from . import management
from . import validation
from . import deployment

# Export the blueprint
__all__ = ['sequence_bp']
