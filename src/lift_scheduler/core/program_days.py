"""
Program day generation and program creation.

Expands the abstract FourWeekPlan into dated ProgramDay rows, persists a
new ProgramInstance with its days, and caches day reads for the active
program.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from .engine.config_loader import RuleTables
from .errors import ProgramGenerationError
from .interfaces import EventLog, RemoteStore, safe_log_event
from .models import FourWeekPlan, ProgramDay, ProgramInstance, TrainingProfile
from .program_planner import build_four_week_plan, snapshot_profile

logger = logging.getLogger(__name__)


def first_date_for_weekday(start: datetime, weekday: int) -> datetime:
    """First date on or after *start* falling on ISO *weekday* (1=Mon .. 7=Sun)."""
    return start + timedelta(days=(weekday - start.isoweekday()) % 7)


def generate_program_days(
    instance_id: str,
    user_id: str,
    plan: FourWeekPlan,
    start_date: str,
) -> list[ProgramDay]:
    """
    Expand the abstract plan into dated ProgramDay rows.

    Week w covers the 7 days starting at start_date + 7(w-1); every selected
    weekday gets the first matching date in that window.  Rows are ordered
    by date, so day 1 of week 1 always precedes day 1 of week 2.

    Args:
        instance_id: Owning ProgramInstance id
        user_id: Owner
        plan: Output of build_four_week_plan()
        start_date: ISO date the program starts

    Returns:
        ProgramDay rows in date order

    Raises:
        ProgramGenerationError: If the row count is not weeks x selected weekdays
    """
    start = datetime.strptime(start_date, "%Y-%m-%d")
    rows: list[ProgramDay] = []

    for week in plan.weeks:
        by_weekday = {t.weekday: t for t in week.days}
        dated = []
        for weekday in plan.weekdays:
            template = by_weekday.get(weekday)
            if template is None:
                logger.error("Week %d has no template for weekday %d", week.week_index, weekday)
                continue
            date = first_date_for_weekday(start, weekday) + timedelta(days=7 * (week.week_index - 1))
            dated.append((date, template))
        dated.sort(key=lambda pair: pair[0])

        for day_index, (date, template) in enumerate(dated, 1):
            rows.append(
                ProgramDay(
                    id=f"{instance_id}-w{week.week_index}-d{day_index}",
                    program_id=instance_id,
                    user_id=user_id,
                    date=date.strftime("%Y-%m-%d"),
                    week_index=week.week_index,
                    day_index=day_index,
                    weekday=template.weekday,
                    label=template.label,
                    template_key=template.template_key,
                    intents=template.intents,
                )
            )

    expected = plan.duration_weeks * len(plan.weekdays)
    if len(rows) != expected:
        raise ProgramGenerationError(
            f"Generated {len(rows)} program days, expected {expected} "
            f"({plan.duration_weeks} weeks x {len(plan.weekdays)} weekdays)"
        )
    return rows


async def create_program(
    remote: RemoteStore,
    user_id: str,
    profile: TrainingProfile,
    weekdays: list[int],
    start_date: str,
    event_log: EventLog | None = None,
    rules: RuleTables | None = None,
    program_id: str | None = None,
) -> tuple[ProgramInstance, list[ProgramDay]]:
    """
    Create and persist a new active program.

    The profile is snapshotted first; days are generated and verified before
    anything is written, so a generation fault leaves no partial program.
    The remote store cancels any previously active program for the user.

    Raises:
        ProgramGenerationError: Day count mismatch (nothing persisted)
        ValueError: Invalid weekdays or start date
    """
    plan = build_four_week_plan(profile, weekdays, start_date, rules)
    instance = ProgramInstance(
        id=program_id or uuid.uuid4().hex,
        user_id=user_id,
        start_date=start_date,
        weekdays=list(plan.weekdays),
        profile_snapshot=snapshot_profile(profile, list(plan.weekdays)),
        plan=plan,
        created_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
    )

    days = generate_program_days(instance.id, user_id, plan, start_date)
    if len(days) != instance.expected_day_count:
        raise ProgramGenerationError(
            f"Program {instance.id}: {len(days)} days for {instance.expected_day_count} expected"
        )

    await remote.create_program_instance(instance)
    await remote.create_program_days(days)
    logger.info("Created program %s with %d days starting %s", instance.id, len(days), start_date)

    safe_log_event(
        event_log,
        "program_created",
        {"program_id": instance.id, "days": len(days), "warnings": list(plan.warnings)},
    )
    return instance, days


class ProgramDayCache:
    """
    Cached reads of an instance's program days.

    An active program showing zero days means the cache went stale (e.g. it
    was filled before the days were written): the entry is dropped and the
    remote is asked once more.
    """

    def __init__(self, remote: RemoteStore):
        self._remote = remote
        self._days: dict[str, list[ProgramDay]] = {}

    def invalidate(self, instance_id: str | None = None) -> None:
        if instance_id is None:
            self._days.clear()
        else:
            self._days.pop(instance_id, None)

    async def _fetch(self, instance_id: str) -> list[ProgramDay]:
        days = await self._remote.get_program_days(instance_id)
        days = sorted(days, key=lambda d: (d.date, d.day_index))
        self._days[instance_id] = days
        return days

    async def get_days(
        self,
        instance: ProgramInstance,
        from_date: str | None = None,
        to_date: str | None = None,
    ) -> list[ProgramDay]:
        """
        Return the instance's days within [from_date, to_date] (inclusive, ISO).

        Args:
            instance: Program whose days to read
            from_date: Lower bound, or None for no bound
            to_date: Upper bound, or None for no bound
        """
        days = self._days.get(instance.id)
        if days is None:
            days = await self._fetch(instance.id)

        if not days and instance.status == "active":
            logger.info("Active program %s has no cached days; refetching", instance.id)
            self.invalidate(instance.id)
            days = await self._fetch(instance.id)

        return [
            d for d in days
            if (from_date is None or d.date >= from_date) and (to_date is None or d.date <= to_date)
        ]

    async def day_for_date(self, instance: ProgramInstance, date: str) -> ProgramDay | None:
        """The program day scheduled on *date*, if any."""
        days = await self.get_days(instance, date, date)
        return days[0] if days else None
