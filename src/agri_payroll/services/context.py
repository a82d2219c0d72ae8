"""Explicit caller context passed into every service call."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from uuid import uuid4
from zoneinfo import ZoneInfo

from agri_payroll.config import get_settings
from agri_payroll.models.base import utcnow


@dataclass(frozen=True)
class ServiceContext:
    """Who is acting, for which request, and when."""

    actor_name: str = "system"
    actor_id: str | None = None
    request_id: str = field(default_factory=lambda: uuid4().hex)
    occurred_at: datetime = field(default_factory=utcnow)

    @classmethod
    def system(cls) -> ServiceContext:
        return cls()

    def local_date(self, tz: str | None = None) -> date:
        """Calendar day of ``occurred_at`` on the estate's clock.

        Naive timestamps are taken as UTC. ``tz`` defaults to the configured
        payroll timezone.
        """
        moment = self.occurred_at
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(ZoneInfo(tz or get_settings().payroll_timezone)).date()

    def log_fields(self) -> dict[str, str]:
        return {"actor": self.actor_name, "request_id": self.request_id}
