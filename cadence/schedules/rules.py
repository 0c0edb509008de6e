"""
Rule adapter for schedules.

Inserts, updates, looks up and deletes the condition/action rules that link
transactions to schedules. Writes are staged; the caller commits.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.data.base import generate_id
from cadence.data.models import Rule, Schedule
from .conditions import Condition, serialize_conditions
from .errors import ScheduleValidationError

logger = logging.getLogger(__name__)

LINK_SCHEDULE = "link-schedule"


def link_schedule_action(schedule_id: str) -> Dict[str, Any]:
    return {"op": LINK_SCHEDULE, "value": schedule_id}


def linked_schedule_id(rule: Rule) -> Optional[str]:
    """Schedule id referenced by the rule's ``link-schedule`` action."""
    for action in rule.actions or []:
        if action.get("op") == LINK_SCHEDULE:
            return action.get("value")
    return None


class RuleStore:
    """Access to the ``rules`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, rule_id: Optional[str]) -> Optional[Rule]:
        if rule_id is None:
            return None
        rule = await self.db.get(Rule, rule_id)
        if rule is None or rule.tombstone:
            return None
        return rule

    def insert(
        self,
        conditions: List[Condition],
        actions: List[Dict[str, Any]],
        conditions_op: str = "and",
        stage: Optional[str] = None,
    ) -> Rule:
        rule = Rule(
            id=generate_id(),
            stage=stage,
            conditions_op=conditions_op,
            conditions=serialize_conditions(conditions),
            actions=list(actions),
        )
        self.db.add(rule)
        return rule

    async def update(self, rule_id: str, conditions: List[Condition]) -> Rule:
        rule = await self.get(rule_id)
        if rule is None:
            raise ScheduleValidationError(f"Rule not found: {rule_id}")
        # Assign a new list so the JSON column is flagged dirty
        rule.conditions = serialize_conditions(conditions)
        return rule

    async def delete(self, rule_id: str, allow_linked: bool = False) -> None:
        """
        Delete a rule.

        A rule that still links a live schedule can only be removed together
        with that schedule (``allow_linked=True``, used by schedule deletion
        and rule repair); deleting it on its own would orphan the schedule.
        """
        rule = await self.get(rule_id)
        if rule is None:
            return

        if not allow_linked:
            result = await self.db.execute(
                select(Schedule.id)
                .where(Schedule.rule == rule_id)
                .where(Schedule.tombstone == False)
            )
            schedule_id = result.scalars().first()
            if schedule_id is not None:
                raise ScheduleValidationError(
                    f"Rule {rule_id} is linked to schedule {schedule_id}; delete the schedule instead"
                )

        rule.tombstone = True
        logger.info(f"Deleted rule {rule_id}")
