"""
Aggregations used by the dashboards and scorecards.

Every function takes a list of records and returns a derived value. None of them
raise on an empty list; they return 0, zeros or an empty list instead. Rounding
is half-up so that scores match what students see on the web portal.
"""
# campuscare/aggregates.py

from __future__ import annotations

import math
from typing import Dict, List, Sequence

import pandas as pd

from campuscare.models import APPOINTMENT_STATUSES


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def mean(values: Sequence[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)


def average_rating(ratings) -> float:
    """Mean food quality rating (1-5), or 0.0 without ratings."""
    return mean([r.food_quality_rating for r in ratings])


def hygiene_score(ratings) -> int:
    """Scales the average rating to a 0-100 score: round((avg / 5) * 100)."""
    if not ratings:
        return 0
    return int(round_half_up((average_rating(ratings) / 5) * 100))


def average_waiting_time(feedbacks) -> int:
    """Mean waiting time in whole minutes (rounded down), or 0 without feedback."""
    if not feedbacks:
        return 0
    return int(math.floor(mean([f.waiting_time for f in feedbacks])))


def _frame(records, columns: Dict[str, str]) -> pd.DataFrame:
    rows = []
    for record in records:
        if record.timestamp is None:
            continue
        rows.append({column: getattr(record, attr) for column, attr in columns.items()})
    return pd.DataFrame(rows, columns=list(columns))


def daily_mess_averages(ratings) -> List[Dict[str, object]]:
    """Average rating per calendar day (UTC) and per mess.

    Returns:
        A list of rows such as ``{"day": "2024-05-01", "Veg mess": 2.4}``, sorted by day.
        A mess with no ratings on a day is absent from that day's row.
    """
    frame = _frame(ratings, {"timestamp": "timestamp", "mess": "mess_name", "rating": "food_quality_rating"})
    frame = frame.dropna(subset=["mess"])
    if frame.empty:
        return []
    frame["day"] = frame["timestamp"].map(lambda ts: ts.date().isoformat())
    grouped = frame.groupby(["day", "mess"])["rating"].mean()

    rows = []
    for day in sorted(grouped.index.get_level_values("day").unique()):
        row: Dict[str, object] = {"day": day}
        for mess, value in grouped.loc[day].items():
            row[mess] = round_half_up(float(value), 1)
        rows.append(row)
    return rows


def mess_names(rows: List[Dict[str, object]]) -> List[str]:
    """Sorted mess names appearing in `daily_mess_averages` rows."""
    names = set()
    for row in rows:
        names.update(key for key in row if key != "day")
    return sorted(names)


def daily_response_times(feedbacks) -> List[Dict[str, object]]:
    """Average hospital waiting time per calendar day, rounded to whole minutes."""
    frame = _frame(feedbacks, {"timestamp": "timestamp", "waiting": "waiting_time"})
    if frame.empty:
        return []
    frame["date"] = frame["timestamp"].map(lambda ts: ts.date().isoformat())
    grouped = frame.groupby("date")["waiting"].mean().sort_index()
    return [{"date": day, "Response Time": int(round_half_up(float(value)))} for day, value in grouped.items()]


def nutrition_totals(logs) -> Dict[str, float]:
    totals = {"calories": 0.0, "proteinGrams": 0.0, "carbsGrams": 0.0, "fatGrams": 0.0}
    for log in logs:
        totals["calories"] += log.calories
        totals["proteinGrams"] += log.protein_grams
        totals["carbsGrams"] += log.carbs_grams
        totals["fatGrams"] += log.fat_grams
    return totals


def status_counts(appointments) -> Dict[str, int]:
    counts = {status: 0 for status in APPOINTMENT_STATUSES}
    for appointment in appointments:
        if appointment.status in counts:
            counts[appointment.status] += 1
    return counts


def sickness_reports(ratings) -> int:
    return sum(1 for r in ratings if r.sick_after_meal_report == "yes")


def to_chart_frame(rows: List[Dict[str, object]], index: str) -> pd.DataFrame:
    """Turns aggregate rows into a DataFrame indexed by `index` for Streamlit charts."""
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows).set_index(index)
