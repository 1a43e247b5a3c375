"""
Unit tests for personalization, condition evaluation, delay calculation and
the error response helpers.
"""

import pytest
from datetime import datetime, timedelta

from outreach_automation.services.sequence_engine.conditions import (
    InteractionState,
    evaluate_conditions,
)
from outreach_automation.services.sequence_engine.definitions import (
    ConditionAction,
    DelayUnit,
    Sequence,
    StepCondition,
    ConditionType,
    StepTiming,
)
from outreach_automation.services.sequence_engine.delay_calculator import (
    calculate_resume_at,
    describe_delay,
    runtime_wait_parameters,
    to_seconds,
)
from outreach_automation.services.sequence_engine.message_formatter import (
    find_tokens,
    find_unresolved_tokens,
    lint_sequence,
    personalize,
    to_runtime_expression,
)
from outreach_automation.utils.error_handling import (
    create_error_response,
    handle_exception,
    validate_required_fields,
)
from outreach_automation.utils.exceptions import (
    DeliveryError,
    NotFoundError,
    PersonalizationError,
    ValidationError,
)


@pytest.mark.unit
class TestPersonalization:

    def test_contact_and_variables(self):
        text = "Hi {{firstName}}, re {{topic}}"
        assert personalize(text, {"firstName": "Ana"}, {"topic": "pricing"}) == "Hi Ana, re pricing"

    def test_missing_token_left_literal(self):
        assert personalize("Hi {{firstName}}, re {{topic}}", {"firstName": "Ana"}) == "Hi Ana, re {{topic}}"

    def test_contact_field_wins_over_variable(self):
        assert personalize("{{company}}", {"company": "Acme"}, {"company": "Other"}) == "Acme"

    def test_none_counts_as_missing(self):
        assert personalize("{{company}}", {"company": None}, {"company": "Fallback"}) == "Fallback"

    def test_single_pass(self):
        assert personalize("{{a}}", {"a": "{{b}}", "b": "x"}) == "{{b}}"

    def test_tokens_are_case_sensitive(self):
        assert personalize("{{FirstName}}", {"firstName": "Ana"}) == "{{FirstName}}"

    def test_non_string_values(self):
        assert personalize("{{count}} seats", {}, {"count": 5}) == "5 seats"

    def test_empty_text(self):
        assert personalize(None, {"a": 1}) == ''

    def test_strict_mode_raises(self):
        with pytest.raises(PersonalizationError) as exc_info:
            personalize("Hi {{firstName}} {{nickname}}", {"firstName": "Ana"}, strict=True)
        assert exc_info.value.tokens == ["nickname"]

    def test_find_tokens(self):
        assert find_tokens("{{a}} {{b}} {{a}} {{ not_a_token }}") == ["a", "b"]
        assert find_unresolved_tokens("{{a}} {{b}}", {"a": 1}) == ["b"]

    def test_lint_sequence(self):
        sequence = Sequence.from_dict({
            "id": "s", "name": "S",
            "steps": [
                {"id": "one", "type": "email", "config": {"subject": "{{firstName}}", "content": "{{topic}}"}},
                {"id": "two", "type": "task", "config": {"taskTitle": "Call {{firstName}}"}},
            ],
        })
        assert lint_sequence(sequence, {"firstName": "Ana"}) == {"one": ["topic"]}

    def test_runtime_expression(self):
        assert to_runtime_expression("Hi {{firstName}}") == '=Hi {{$json["firstName"]}}'
        assert to_runtime_expression("No tokens") == "No tokens"


@pytest.mark.unit
class TestConditions:

    def test_no_conditions_continue(self):
        assert evaluate_conditions([], InteractionState()).action == ConditionAction.CONTINUE

    def test_first_match_wins(self):
        conditions = [
            StepCondition(ConditionType.IF_OPENED, ConditionAction.JUMP_TO, 'x'),
            StepCondition(ConditionType.IF_REPLIED, ConditionAction.STOP),
        ]
        outcome = evaluate_conditions(conditions, InteractionState(has_replied=True, has_opened=True))
        assert outcome.should_jump
        assert outcome.target_step_id == 'x'

    def test_unmatched_continues(self):
        conditions = [StepCondition(ConditionType.IF_REPLIED, ConditionAction.STOP)]
        outcome = evaluate_conditions(conditions, {"hasReplied": False})
        assert outcome.action == ConditionAction.CONTINUE
        assert outcome.matched is None

    def test_negated_conditions(self):
        conditions = [StepCondition(ConditionType.IF_NOT_CLICKED, ConditionAction.STOP)]
        assert evaluate_conditions(conditions, {"has_clicked": False}).should_stop
        assert not evaluate_conditions(conditions, {"has_clicked": True}).should_stop

    def test_missing_state_is_no_interaction(self):
        conditions = [StepCondition(ConditionType.IF_NOT_REPLIED, ConditionAction.STOP)]
        assert evaluate_conditions(conditions, None).should_stop


@pytest.mark.unit
class TestDelayCalculator:

    def test_unit_conversion(self):
        assert to_seconds(2, DelayUnit.MINUTES) == 120
        assert to_seconds(1, DelayUnit.HOURS) == 3600
        assert to_seconds(1, DelayUnit.DAYS) == 86400
        assert to_seconds(1, DelayUnit.WEEKS) == 7 * 86400

    def test_resume_at(self):
        now = datetime(2024, 1, 1, 12, 0)
        assert calculate_resume_at(now, StepTiming(3, DelayUnit.DAYS)) == now + timedelta(days=3)

    def test_business_hours_does_not_move_resume_time(self):
        now = datetime(2024, 1, 6, 23, 0)  # Saturday night
        timing = StepTiming(1, DelayUnit.HOURS, business_hours=True)
        assert calculate_resume_at(now, timing) == now + timedelta(hours=1)

    def test_runtime_wait_parameters(self):
        assert runtime_wait_parameters(StepTiming(2, DelayUnit.WEEKS)) == {
            'resume': 'timeInterval', 'amount': 14, 'unit': 'days'
        }
        assert runtime_wait_parameters(StepTiming(5, DelayUnit.HOURS))['unit'] == 'hours'

    def test_describe_delay(self):
        assert describe_delay(StepTiming()) == 'Immediate'
        assert describe_delay(StepTiming(3, DelayUnit.DAYS)) == 'After 3 days'


@pytest.mark.unit
class TestErrorHandling:

    def test_create_error_response(self, app):
        with app.test_request_context():
            response, status = create_error_response('NOT_FOUND', "Sequence not found", {'id': 'x'})
            body = response.get_json()

        assert status == 404
        assert body['error']['code'] == 'NOT_FOUND'
        assert body['error']['details'] == {'id': 'x'}
        assert body['error']['timestamp']

    def test_unknown_code_defaults_to_internal(self, app):
        with app.test_request_context():
            response, status = create_error_response('NOPE', "x")
        assert status == 500
        assert response.get_json()['error']['code'] == 'INTERNAL_ERROR'

    def test_taxonomy_mapping(self, app):
        with app.test_request_context():
            cases = [
                (ValidationError("bad", step_id='s1'), 400, 'INVALID_SEQUENCE'),
                (PersonalizationError("tokens", tokens=['x']), 422, 'PERSONALIZATION_ERROR'),
                (NotFoundError('Sequence', 'x'), 404, 'NOT_FOUND'),
                (DeliveryError("down", contact_id='c'), 502, 'DELIVERY_ERROR'),
                (RuntimeError("boom"), 500, 'INTERNAL_ERROR'),
            ]
            for error, expected_status, expected_code in cases:
                response, status = handle_exception(error)
                assert status == expected_status
                assert response.get_json()['error']['code'] == expected_code

    def test_validate_required_fields(self, app):
        with app.test_request_context():
            assert validate_required_fields({'a': 1}, ['a']) is None
            response, status = validate_required_fields({'a': None}, ['a', 'b'])
        assert status == 400
        assert response.get_json()['error']['details']['missing_fields'] == ['a', 'b']

