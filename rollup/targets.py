"""Prorate monthly targets into yesterday / week-to-date / month-to-date.

Business rules
--------------
- Yesterday's target is a working day of a 26-day month: ``monthly / 26``.
- WTD is that daily target times the days from Monday of the current week up
  to and including yesterday.
- MTD is ``monthly / calendar days in month`` times the days from the 1st up
  to and including yesterday.

Day counts never go below zero: on a Monday the WTD target is 0 and on the
1st of a month the MTD target is 0.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Dict, Mapping

from rollup.entities import PeriodValues, StreamValues
from rollup.parsing import round_half_up

WORKING_DAYS_PER_MONTH = 26


def start_of_week(day: date) -> date:
    return day - timedelta(days=day.weekday())


def days_elapsed(start: date, yesterday: date) -> int:
    return max(0, (yesterday - start).days + 1)


def scale_target(monthly_target: float, today: date) -> Dict[str, float]:
    yesterday = today - timedelta(days=1)
    daily = monthly_target / WORKING_DAYS_PER_MONTH

    week_days = days_elapsed(start_of_week(today), yesterday)
    wtd = daily * week_days

    month_days = days_elapsed(today.replace(day=1), yesterday)
    total_days = calendar.monthrange(today.year, today.month)[1]
    mtd = monthly_target / total_days * month_days

    return {
        "y": round_half_up(daily),
        "w": round_half_up(wtd),
        "m": round_half_up(mtd),
    }


def scale_targets(targets: Mapping[str, float], today: date) -> StreamValues:
    service = scale_target(float(targets.get("service", 0.0)), today)
    commerce = scale_target(float(targets.get("commerce", 0.0)), today)
    return StreamValues(service=PeriodValues(**service), commerce=PeriodValues(**commerce))
