"""
Message formatting and personalization functionality.

This module contains functionality for:
- Replacing {{token}} placeholders with contact fields or campaign variables
- Strict-mode personalization for pre-send linting
- Rewriting tokens into the automation runtime's expression syntax

Resolution order for a token: the contact record's field, then the campaign
variable map, then the literal token is left in place.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from outreach_automation.utils.exceptions import PersonalizationError
from .definitions import Sequence, TaskConfig

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r'\{\{([A-Za-z0-9_]+)\}\}')


def _lookup(token: str, contact: Mapping[str, Any], variables: Mapping[str, Any]):
    value = contact.get(token)
    if value is not None:
        return value
    return variables.get(token)


def find_tokens(text: Optional[str]) -> List[str]:
    """Return the distinct token names in text, in order of first appearance."""
    if not text:
        return []
    seen = []
    for match in TOKEN_PATTERN.finditer(text):
        if match.group(1) not in seen:
            seen.append(match.group(1))
    return seen


def find_unresolved_tokens(text: Optional[str], contact: Optional[Mapping[str, Any]] = None,
                           variables: Optional[Mapping[str, Any]] = None) -> List[str]:
    contact = contact or {}
    variables = variables or {}
    return [t for t in find_tokens(text) if _lookup(t, contact, variables) is None]


def personalize(text: Optional[str], contact: Optional[Mapping[str, Any]] = None,
                variables: Optional[Mapping[str, Any]] = None, strict: bool = False) -> str:
    """Replace every {{token}} in text.

    Substitution is a single pass, so values that themselves contain {{...}}
    are inserted verbatim. A contact field holding None counts as missing.
    """
    if not text:
        return ''
    contact = contact or {}
    variables = variables or {}

    if strict:
        unresolved = find_unresolved_tokens(text, contact, variables)
        if unresolved:
            raise PersonalizationError(
                f"Unresolved personalization tokens: {', '.join(unresolved)}", tokens=unresolved
            )

    def replace(match):
        value = _lookup(match.group(1), contact, variables)
        if value is None:
            return match.group(0)
        return str(value)

    return TOKEN_PATTERN.sub(replace, text)


def lint_sequence(sequence: Sequence, contact: Optional[Mapping[str, Any]] = None,
                  variables: Optional[Mapping[str, Any]] = None) -> Dict[str, List[str]]:
    """Map step id -> unresolved tokens, for steps that would send with literal tokens."""
    report = {}
    for step in sequence.steps:
        unresolved = []
        for text in _step_texts(step.config):
            for token in find_unresolved_tokens(text, contact, variables):
                if token not in unresolved:
                    unresolved.append(token)
        if unresolved:
            report[step.id] = unresolved
    return report


def _step_texts(config) -> List[str]:
    if isinstance(config, TaskConfig):
        return [config.title or '', config.description or '']
    return [getattr(config, 'subject', None) or '', getattr(config, 'content', None) or '']


def current_item_field(name: str) -> str:
    return '$json["%s"]' % name


def to_runtime_expression(text: Optional[str], field_ref: Callable[[str], str] = current_item_field) -> str:
    """Rewrite {{firstName}} as a runtime expression reading that field.

    field_ref turns a field name into the expression body; the default reads
    the current item, {{$json["firstName"]}}. Strings containing expressions
    get the runtime's leading '=' marker so they are evaluated rather than
    sent verbatim.
    """
    if not text:
        return ''
    rewritten = TOKEN_PATTERN.sub(lambda m: '{{%s}}' % field_ref(m.group(1)), text)
    if rewritten != text:
        return '=' + rewritten
    return rewritten
