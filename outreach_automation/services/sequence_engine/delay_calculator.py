"""
Delay calculations and timing logic.

This module contains functionality for:
- Converting step timing into a canonical duration
- Calculating when a suspended contact may resume
- Expressing a delay in the automation runtime's wait parameters

Units are fixed multiples: a day is exactly 24 hours and a week exactly 7 days.
The businessHours flag is carried on the timing but does not move resume times.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict

from .definitions import DelayUnit, StepTiming

logger = logging.getLogger(__name__)

UNIT_SECONDS = {
    DelayUnit.MINUTES: 60,
    DelayUnit.HOURS: 60 * 60,
    DelayUnit.DAYS: 24 * 60 * 60,
    DelayUnit.WEEKS: 7 * 24 * 60 * 60,
}


def to_seconds(delay: float, unit: DelayUnit) -> float:
    """Convert a delay amount in the given unit to seconds."""
    return delay * UNIT_SECONDS[DelayUnit(unit)]


def to_timedelta(timing: StepTiming) -> timedelta:
    return timedelta(seconds=to_seconds(timing.delay, timing.unit))


def calculate_resume_at(now: datetime, timing: StepTiming) -> datetime:
    """Calculate when a contact suspended at a step with this timing may resume."""
    if timing.business_hours:
        logger.debug("businessHours requested on step timing; resume time is not adjusted")
    return now + to_timedelta(timing)


def runtime_wait_parameters(timing: StepTiming) -> Dict[str, Any]:
    """Wait-node parameters for the automation runtime.

    The runtime has no week unit, so weeks are expressed as days.
    """
    if timing.unit == DelayUnit.WEEKS:
        amount, unit = timing.delay * 7, DelayUnit.DAYS.value
    else:
        amount, unit = timing.delay, timing.unit.value
    return {
        'resume': 'timeInterval',
        'amount': amount,
        'unit': unit,
    }


def describe_delay(timing: StepTiming) -> str:
    if not timing.delay:
        return 'Immediate'
    return f"After {timing.delay:g} {timing.unit.value}"
