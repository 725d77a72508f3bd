"""Point expiry policy: expiry windows per trust level, exemption floor,
warning offsets and batch settings.

All date math here is pure. Expiry uses calendar-month addition, so points
awarded on the 15th expire on the 15th; a day that does not exist in the
target month is clamped to that month's last day (Jan 31 + 1 month = Feb 28/29).
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import NamedTuple

from berse.config import Settings

NEVER_EXPIRE_YEARS = 100

FIRST_WARNING_DAYS = 30
SECOND_WARNING_DAYS = 7
FINAL_WARNING_DAYS = 1

# Points per action. BADGE_EARNED carries the badge's own point value.
POINT_VALUES: dict[str, int] = {
    "REGISTER": 5,
    "VERIFY_EMAIL": 2,
    "COMPLETE_PROFILE_SECTION": 2,
    "ATTEND_EVENT": 10,
    "HOST_EVENT": 15,
    "RECEIVE_VOUCH": 8,
    "GIVE_TRUST_MOMENT": 2,
    "RECEIVE_POSITIVE_TRUST_MOMENT": 1,
    "JOIN_COMMUNITY": 3,
    "REFERRAL": 3,
    "BADGE_EARNED": 0,
}


@dataclass(frozen=True)
class ExpiryPolicy:
    standard_expiry_months: int = 12
    trust_level_expiry: dict[str, int] = field(
        default_factory=lambda: {"starter": 12, "trusted": 12, "leader": 18}
    )
    action_expiry_overrides: dict[str, int | None] = field(default_factory=dict)
    min_balance_exemption: int = 100
    warning_days: tuple[int, ...] = (FIRST_WARNING_DAYS, SECOND_WARNING_DAYS, FINAL_WARNING_DAYS)
    batch_size: int = 5000
    batch_delay_ms: int = 100
    run_hour: int = 3
    run_minute: int = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> ExpiryPolicy:
        return cls(
            standard_expiry_months=settings.points_standard_expiry_months,
            trust_level_expiry={k.lower(): v for k, v in settings.points_trust_level_expiry.items()},
            action_expiry_overrides=dict(settings.points_action_expiry_overrides),
            min_balance_exemption=settings.points_min_balance_exemption,
            warning_days=tuple(settings.points_warning_days),
            batch_size=settings.points_expiry_batch_size,
            batch_delay_ms=settings.points_expiry_batch_delay_ms,
            run_hour=settings.points_expiry_hour,
            run_minute=settings.points_expiry_minute,
        )

    @property
    def cron_schedule(self) -> str:
        """The daily run time in crontab notation, for status reporting."""
        return f"{self.run_minute} {self.run_hour} * * *"


DEFAULT_POLICY = ExpiryPolicy()


class WarningDates(NamedTuple):
    first_warning: datetime
    second_warning: datetime
    final_warning: datetime


def add_months(dt: datetime, months: int) -> datetime:
    """Advance ``dt`` by whole calendar months, keeping the time of day."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def get_expiry_months_for_trust_level(trust_level: str | None, policy: ExpiryPolicy = DEFAULT_POLICY) -> int:
    """Months until points expire for a trust level. Unknown levels get the standard window."""
    level = (trust_level or "").lower()
    return policy.trust_level_expiry.get(level) or policy.standard_expiry_months


def calculate_expiry_date(
    awarded_at: datetime,
    trust_level: str | None,
    action: str | None = None,
    policy: ExpiryPolicy = DEFAULT_POLICY,
) -> datetime:
    """Expiry timestamp for points awarded at ``awarded_at``.

    An action override of ``None`` means the points never expire; that is
    encoded as a date 100 years out so downstream comparisons need no
    special case.
    """
    if action and action in policy.action_expiry_overrides:
        override_months = policy.action_expiry_overrides[action]
        if override_months is None:
            return add_months(awarded_at, NEVER_EXPIRE_YEARS * 12)
        if override_months:
            return add_months(awarded_at, override_months)

    return add_months(awarded_at, get_expiry_months_for_trust_level(trust_level, policy))


def is_exempt_from_expiry(available_points: int, policy: ExpiryPolicy = DEFAULT_POLICY) -> bool:
    """True if the user's available (active, unspent) balance is below the exemption floor."""
    return available_points < policy.min_balance_exemption


def get_warning_dates(expiry_date: datetime) -> WarningDates:
    """Dates to send the 30-, 7- and 1-day expiry warnings."""
    return WarningDates(
        first_warning=expiry_date - timedelta(days=FIRST_WARNING_DAYS),
        second_warning=expiry_date - timedelta(days=SECOND_WARNING_DAYS),
        final_warning=expiry_date - timedelta(days=FINAL_WARNING_DAYS),
    )
