"""Default meal windows.

New users get one fasting window and five post-meal windows on each day
of the week. Post-meal windows sit roughly one hour after typical meals.
"""

import uuid
from datetime import time

from reminder_scheduler.models.glucose import MeasurementType
from reminder_scheduler.schemas.reminders import MealWindowRecord

# (measurement_type, meal_number, time_start, time_end)
DEFAULT_MEAL_WINDOWS: list[tuple[MeasurementType, int | None, time, time]] = [
    (MeasurementType.FASTING, None, time(7, 30), time(9, 0)),
    (MeasurementType.AFTER_MEAL, 1, time(10, 0), time(11, 0)),
    (MeasurementType.AFTER_MEAL, 2, time(12, 0), time(13, 30)),
    (MeasurementType.AFTER_MEAL, 3, time(15, 0), time(16, 0)),
    (MeasurementType.AFTER_MEAL, 4, time(17, 30), time(19, 0)),
    (MeasurementType.AFTER_MEAL, 5, time(20, 0), time(21, 0)),
]


def build_default_meal_windows(user_id: uuid.UUID) -> list[MealWindowRecord]:
    """Build the default window set for all seven days (Sunday first)."""
    return [
        MealWindowRecord(
            user_id=user_id,
            day_of_week=day_of_week,
            measurement_type=measurement_type,
            meal_number=meal_number,
            time_start=time_start,
            time_end=time_end,
        )
        for day_of_week in range(7)
        for measurement_type, meal_number, time_start, time_end in DEFAULT_MEAL_WINDOWS
    ]
