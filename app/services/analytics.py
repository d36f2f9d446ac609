"""Dashboard and analytics aggregates.

Every total is computed by the database (SUM/COUNT/GROUP BY); only the
already-grouped rows reach Python. Hours logged against non-work projects
(``NON_WORK_PROJECTS``, e.g. leave and holiday) never count as worked hours.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import ColumnElement, and_, case, distinct, func, select
from sqlalchemy.orm import Session

from app.models import Project, TimesheetEntry, TimesheetStatus
from app.policies import Caller
from app.settings import get_non_work_projects, get_settings


@dataclass(frozen=True, slots=True)
class TrendWindow:
    label: str
    start: date
    end: date  # exclusive


def _as_float(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, Decimal):
        return float(value)
    return float(value)


def _round1(value: Any) -> float:
    return round(_as_float(value), 1)


def _is_work_project() -> ColumnElement[bool]:
    return ~func.upper(Project.name).in_(get_non_work_projects())


def _approved_work() -> ColumnElement[bool]:
    return and_(TimesheetEntry.status == TimesheetStatus.APPROVED, _is_work_project())


def recent_window_start(today: date) -> date:
    """First day of the 7-day window that ends today."""
    return today - timedelta(days=6)


def dashboard_stats(db: Session, caller: Caller, *, today: date | None = None) -> dict[str, Any]:
    today = today or date.today()
    recent = and_(
        TimesheetEntry.start_date >= recent_window_start(today),
        TimesheetEntry.status.in_([TimesheetStatus.APPROVED, TimesheetStatus.PENDING]),
        _is_work_project(),
    )
    stmt = (
        select(
            func.coalesce(func.sum(case((_approved_work(), TimesheetEntry.hours), else_=0)), 0),
            func.count(distinct(TimesheetEntry.project_id)),
            func.coalesce(func.sum(case((recent, TimesheetEntry.hours), else_=0)), 0),
            func.count(TimesheetEntry.id),
        )
        .select_from(TimesheetEntry)
        .join(Project, Project.id == TimesheetEntry.project_id)
    )
    if not caller.is_admin:
        stmt = stmt.where(TimesheetEntry.account_id == caller.account_id)

    total_hours, total_projects, this_week_hours, total_entries = db.execute(stmt).one()
    return {
        "total_hours": _as_float(total_hours),
        "total_projects": int(total_projects or 0),
        "this_week_hours": _as_float(this_week_hours),
        "total_entries": int(total_entries or 0),
    }


def analytics_stats(db: Session) -> dict[str, Any]:
    approved_work = _approved_work()
    stmt = (
        select(
            func.coalesce(func.sum(case((approved_work, TimesheetEntry.hours), else_=0)), 0),
            func.count(distinct(TimesheetEntry.employee_id)),
            func.count(distinct(TimesheetEntry.project_id)),
            func.coalesce(func.avg(case((approved_work, TimesheetEntry.hours))), 0),
            func.count(TimesheetEntry.id),
        )
        .select_from(TimesheetEntry)
        .join(Project, Project.id == TimesheetEntry.project_id)
    )
    total_hours, total_employees, total_projects, avg_hours, total_entries = db.execute(stmt).one()
    return {
        "total_hours": _as_float(total_hours),
        "total_employees": int(total_employees or 0),
        "total_projects": int(total_projects or 0),
        "avg_hours_per_entry": _round1(avg_hours),
        "total_entries": int(total_entries or 0),
    }


def project_distribution(db: Session) -> list[dict[str, Any]]:
    total = func.sum(TimesheetEntry.hours).label("total_hours")
    stmt = (
        select(Project.name, total)
        .select_from(TimesheetEntry)
        .join(Project, Project.id == TimesheetEntry.project_id)
        .where(TimesheetEntry.status == TimesheetStatus.APPROVED)
        .group_by(Project.name)
        .order_by(total.desc())
    )
    return [{"name": name, "value": _round1(hours)} for name, hours in db.execute(stmt).all()]


def employee_productivity(db: Session, *, limit: int | None = None) -> list[dict[str, Any]]:
    limit = limit or get_settings().productivity_top_n
    total = func.sum(TimesheetEntry.hours).label("total_hours")
    stmt = (
        select(func.max(TimesheetEntry.name), total, func.count(TimesheetEntry.id))
        .select_from(TimesheetEntry)
        .join(Project, Project.id == TimesheetEntry.project_id)
        .where(_approved_work())
        .group_by(TimesheetEntry.account_id)
        .order_by(total.desc())
        .limit(limit)
    )
    return [
        {"name": name, "hours": _round1(hours), "entries": int(entries or 0)}
        for name, hours, entries in db.execute(stmt).all()
    ]


def trend_windows(today: date, weeks: int) -> list[TrendWindow]:
    """Fixed seven-day buckets ending at ``today`` (exclusive), oldest first."""
    windows: list[TrendWindow] = []
    for offset in reversed(range(weeks)):
        windows.append(
            TrendWindow(
                label=f"Week {weeks - offset}",
                start=today - timedelta(days=(offset + 1) * 7),
                end=today - timedelta(days=offset * 7),
            )
        )
    return windows


def bucket_daily_totals(
    windows: list[TrendWindow],
    daily_totals: Iterable[tuple[date, Any]],
) -> list[dict[str, Any]]:
    sums = [Decimal("0") for _ in windows]
    for day, hours in daily_totals:
        for index, window in enumerate(windows):
            if window.start <= day < window.end:
                sums[index] += Decimal(str(hours or 0))
                break
    return [
        {
            "week": window.label,
            "hours": _round1(total),
            "start_date": window.start,
            "end_date": window.end - timedelta(days=1),
        }
        for window, total in zip(windows, sums)
    ]


def weekly_trend(db: Session, *, today: date | None = None, weeks: int | None = None) -> list[dict[str, Any]]:
    today = today or date.today()
    weeks = weeks or get_settings().weekly_trend_weeks
    windows = trend_windows(today, weeks)

    stmt = (
        select(TimesheetEntry.start_date, func.sum(TimesheetEntry.hours))
        .select_from(TimesheetEntry)
        .join(Project, Project.id == TimesheetEntry.project_id)
        .where(
            _approved_work(),
            TimesheetEntry.start_date >= windows[0].start,
            TimesheetEntry.start_date < today,
        )
        .group_by(TimesheetEntry.start_date)
    )
    return bucket_daily_totals(windows, db.execute(stmt).all())
