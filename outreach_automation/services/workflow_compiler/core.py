"""
Workflow graph compiler.

Lowers a validated Sequence into a CompiledGraph for the automation runtime.
Per step, in order:
- entry guard: one IF node per condition (for condition steps these IF
  nodes are the step itself and come after the wait)
- a wait node when the step has a delay and is not itself a wait
- the step's action node
- exit guard: the same conditions again after a message or task is sent

IF output 0 is "condition matched": stop leaves it unconnected, continue
joins the main path, jump_to goes straight to the target step's first node.
Output 1 falls through to the next condition or the next node.
"""

import logging
from typing import Dict, List, Tuple

from outreach_automation.services.sequence_engine.definitions import ConditionAction, Sequence, Step, StepType
from outreach_automation.services.sequence_engine.validation import validate_sequence
from .graph import CompiledGraph, GraphBuilder, GraphNode
from .nodes import TRIGGER_NODE_NAME

logger = logging.getLogger(__name__)

Outlet = Tuple[str, int]

ACTION_FACTORIES = {
    StepType.EMAIL: '_email_node',
    StepType.SOCIAL_MESSAGE: '_social_message_node',
    StepType.SMS: '_sms_node',
    StepType.TASK: '_task_node',
    StepType.WAIT: '_wait_node',
}


class WorkflowCompiler:
    """Compiles sequences into runtime workflow graphs."""

    def __init__(self, webhook_prefix: str = 'sequence-'):
        self.webhook_prefix = webhook_prefix

    def webhook_path(self, sequence_id: str) -> str:
        return f"{self.webhook_prefix}{sequence_id}"

    def compile(self, sequence: Sequence) -> CompiledGraph:
        validate_sequence(sequence)

        builder = GraphBuilder(sequence.name or f"Sequence {sequence.id}")
        trigger = builder.add_node(TRIGGER_NODE_NAME, *self._webhook_trigger(sequence), role='trigger')

        outlets: List[Outlet] = [(trigger.name, 0)]
        first_nodes: Dict[str, str] = {}
        jumps: List[Tuple[str, int, str]] = []

        for step in sequence.steps:
            outlets = self._compile_step(builder, step, outlets, first_nodes, jumps)

        # Jump targets may come later in the sequence, so edges are added last
        for source, output, target_step_id in jumps:
            builder.connect(source, first_nodes[target_step_id], output)

        graph = builder.build()
        logger.info(f"Compiled sequence {sequence.id} into {len(graph.nodes)} nodes")
        return graph

    def _attach(self, builder: GraphBuilder, outlets: List[Outlet], node: GraphNode,
                first_nodes: Dict[str, str], step: Step):
        for source, output in outlets:
            builder.connect(source, node.name, output)
        first_nodes.setdefault(step.id, node.name)

    def _compile_step(self, builder: GraphBuilder, step: Step, outlets: List[Outlet],
                      first_nodes: Dict[str, str], jumps: List[Tuple[str, int, str]]) -> List[Outlet]:
        name = step.display_name

        if step.conditions and step.type != StepType.CONDITION:
            outlets = self._guard_chain(builder, step, outlets, first_nodes, jumps, 'entry_guard',
                                        lambda condition: f"{name}: {condition.type.value}")

        if step.timing.delay > 0 and step.type != StepType.WAIT:
            wait = builder.add_node(f"Wait before {name}", *self._wait_node(step), step_id=step.id, role='wait')
            self._attach(builder, outlets, wait, first_nodes, step)
            outlets = [(wait.name, 0)]

        if step.type == StepType.CONDITION:
            return self._guard_chain(builder, step, outlets, first_nodes, jumps, 'action', lambda condition: name)

        factory = getattr(self, ACTION_FACTORIES[step.type])
        node = builder.add_node(name, *factory(step), step_id=step.id, role='action')
        self._attach(builder, outlets, node, first_nodes, step)
        outlets = [(node.name, 0)]

        if step.conditions and step.has_side_effect:
            outlets = self._guard_chain(builder, step, outlets, first_nodes, jumps, 'exit_guard',
                                        lambda condition: f"{name}: {condition.type.value} after send")
        return outlets

    def _guard_chain(self, builder: GraphBuilder, step: Step, outlets: List[Outlet], first_nodes: Dict[str, str],
                     jumps: List[Tuple[str, int, str]], role: str, name_for) -> List[Outlet]:
        """One IF node per condition, first match wins."""
        matched_continue = []
        current = outlets
        for condition in step.conditions:
            node = builder.add_node(name_for(condition), *self._condition_node(condition),
                                    step_id=step.id, role=role)
            self._attach(builder, current, node, first_nodes, step)

            if condition.action == ConditionAction.CONTINUE:
                matched_continue.append((node.name, 0))
            elif condition.action == ConditionAction.JUMP_TO:
                jumps.append((node.name, 0, condition.target_step_id))
            current = [(node.name, 1)]

        return matched_continue + current

    # Import other modules for functionality
    from .nodes import (_webhook_trigger, _email_node, _social_message_node, _sms_node, _task_node,
                        _wait_node, _condition_node)
