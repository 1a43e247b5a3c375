"""
Workflow compiler package.

- graph.py: GraphNode, CompiledGraph and the builder used while compiling
- nodes.py: node factories for the automation runtime
- core.py: WorkflowCompiler
"""

from .core import WorkflowCompiler
from .graph import CompiledGraph, GraphNode

__all__ = ['WorkflowCompiler', 'CompiledGraph', 'GraphNode']
