"""Tests for typed rule conditions, merging and scheduled amounts."""

from datetime import date

from cadence.schedules.conditions import (
    AccountCondition,
    AmountCondition,
    DateCondition,
    OtherCondition,
    PayeeCondition,
    extract_schedule_conditions,
    merge_conditions,
    parse_condition,
    parse_conditions,
    scheduled_amount,
    serialize_conditions,
)

from conftest import schedule_conditions, weekly_config


# =============================================================================
# Parsing
# =============================================================================

class TestParseCondition:
    """Serialized conditions map onto their role variants."""

    def test_roles(self):
        parsed = parse_conditions(schedule_conditions("2024-03-01"))

        assert [type(c) for c in parsed] == [PayeeCondition, AccountCondition, AmountCondition, DateCondition]

    def test_unrecognized_op_is_other(self):
        cond = parse_condition({"field": "date", "op": "gt", "value": "2024-03-01"})
        assert isinstance(cond, OtherCondition)

    def test_extra_keys_survive_round_trip(self):
        raw = {"field": "amount", "op": "isbetween", "value": {"num1": 100, "num2": 200}, "type": "number"}
        assert parse_condition(raw).to_dict() == raw

    def test_date_condition_properties(self):
        one_off = DateCondition(field="date", op="is", value="2024-03-10")
        recurring = DateCondition(field="date", op="is", value=weekly_config())

        assert one_off.literal_date == date(2024, 3, 10)
        assert one_off.frequency is None
        assert recurring.is_recurring
        assert recurring.frequency == "weekly"
        assert recurring.literal_date is None

    def test_substantive_ignores_type_tag(self):
        tagged = DateCondition(field="date", op="is", value="2024-03-10", extra={"type": "date"})
        plain = DateCondition(field="date", op="is", value="2024-03-10")
        assert tagged.substantive() == plain.substantive()


# =============================================================================
# Merging
# =============================================================================

class TestMergeConditions:
    """Tests for merging updated conditions into a rule."""

    def test_role_is_replaced_in_place(self):
        old = parse_conditions(schedule_conditions("2024-03-01"))
        new = [AmountCondition(field="amount", op="is", value=-5000)]

        merged = merge_conditions(old, new)

        assert len(merged) == 4
        assert merged[2].value == -5000
        assert merged[0] == old[0]

    def test_new_role_is_appended(self):
        old = [DateCondition(field="date", op="is", value="2024-03-01")]
        new = [PayeeCondition(field="payee", op="is", value="payee-gym")]

        merged = merge_conditions(old, new)

        assert merged == [old[0], new[0]]

    def test_other_conditions_are_kept_and_not_duplicated(self):
        note = OtherCondition(field="notes", op="contains", value="rent")
        old = [DateCondition(field="date", op="is", value="2024-03-01"), note]
        new = [OtherCondition(field="notes", op="contains", value="rent"), OtherCondition(field="category", op="is", value="c1")]

        merged = merge_conditions(old, new)

        assert serialize_conditions(merged) == [
            {"field": "date", "op": "is", "value": "2024-03-01"},
            {"field": "notes", "op": "contains", "value": "rent"},
            {"field": "category", "op": "is", "value": "c1"},
        ]

    def test_extract_prefers_payee_field(self):
        conds = [
            PayeeCondition(field="description", op="is", value="legacy"),
            PayeeCondition(field="payee", op="is", value="payee-gym"),
        ]
        assert extract_schedule_conditions(conds).payee.value == "payee-gym"


# =============================================================================
# Amounts
# =============================================================================

class TestScheduledAmount:
    """Tests for resolving amount conditions to posted amounts."""

    def test_plain_amount(self):
        assert scheduled_amount(AmountCondition(field="amount", op="is", value=-1250)) == -1250

    def test_missing_amount_is_zero(self):
        assert scheduled_amount(None) == 0

    def test_range_midpoint_rounds_half_up(self):
        cond = AmountCondition(field="amount", op="isbetween", value={"num1": 100, "num2": 201})
        assert scheduled_amount(cond) == 151

    def test_range_bounds(self):
        cond = AmountCondition(field="amount", op="isbetween", value={"num1": 300, "num2": 100})

        assert scheduled_amount(cond, "low") == 100
        assert scheduled_amount(cond, "high") == 300

    def test_inverse(self):
        assert scheduled_amount(AmountCondition(field="amount", op="is", value=500), inverse=True) == -500
