"""
Onboarding Sync — composition of requirements and field sync.

The resolver and the synchronizer know nothing about each other. This module
is the caller that joins them: it reads a volunteer's field values, resolves
what their teams require, and reports which required steps are still open.
It also owns structured logging setup for the entrypoints.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

import structlog
from pydantic import BaseModel, Field

from onboarding_sync.config import settings
from onboarding_sync.integrations.planning_center import PlanningCenterClient
from onboarding_sync.requirements.catalog import RequirementsCatalog
from onboarding_sync.requirements.resolver import get_required_steps
from onboarding_sync.requirements.schema import CovenantLevel, OnboardingStep, RequiredSteps
from onboarding_sync.sync.field_sync import FieldSynchronizer
from onboarding_sync.sync.models import FieldDataSnapshot, UpsertResult

logger = logging.getLogger(__name__)


# Upstream custom field recording completion of each step.
# Life group, discipleship and leadership have no field in PCO People.
STEP_FIELD_NAMES: dict[OnboardingStep, str] = {
    OnboardingStep.BACKGROUND_CHECK: "Declaration Reviewed",
    OnboardingStep.REFERENCES: "References Checked",
    OnboardingStep.CHILD_SAFETY: "Child Safety Training Last Completed",
    OnboardingStep.MANDATED_REPORTER: "Mandated Reporter Training Last Completed",
    OnboardingStep.WELCOME_TO_ORG: "Welcome to RCC",
    OnboardingStep.MEMBERSHIP: "Membership",
}

COVENANT_FIELD_NAMES: dict[CovenantLevel, str] = {
    CovenantLevel.BASE: "Covenant Signed",
    CovenantLevel.MORAL_CONDUCT: "Moral Conduct Policy Signed",
    CovenantLevel.PUBLIC_PRESENCE: "Public Presence Policy Signed",
}

_FALSE_VALUES = {"", "false", "no", "0"}


def configure_logging() -> None:
    """Configure structured logging."""
    logging.basicConfig(level=logging.getLevelName(settings.log_level.upper()))
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def has_value(value: Any) -> bool:
    """True if a field value records a completed step."""
    if value is None:
        return False
    return str(value).strip().lower() not in _FALSE_VALUES


def field_name_for(step: OnboardingStep, covenant: CovenantLevel | None = None) -> str | None:
    """Upstream field name recording a step, or None if the step isn't tracked upstream."""
    if step == OnboardingStep.COVENANT:
        return COVENANT_FIELD_NAMES.get(covenant) if covenant is not None else None
    return STEP_FIELD_NAMES.get(step)


class StepStatus(BaseModel):
    """Completion state of one required step."""

    step: OnboardingStep
    field_name: str | None = None
    completed: bool | None = Field(
        default=None, description="None when the step has no upstream field"
    )
    value: Any = None


class OnboardingStatus(BaseModel):
    """Required steps for a volunteer and how far along they are."""

    person_id: str
    required: RequiredSteps
    steps: list[StepStatus] = Field(default_factory=list)

    def outstanding(self) -> list[OnboardingStep]:
        return [s.step for s in self.steps if s.completed is False]

    @property
    def is_complete(self) -> bool:
        return not self.outstanding()


def build_onboarding_status(
    snapshot: FieldDataSnapshot,
    active_teams: Iterable[str],
    completed_teams: Iterable[str] = (),
    catalog: RequirementsCatalog | None = None,
) -> OnboardingStatus:
    """
    Compare a volunteer's field values against what their teams require.

    A covenant tier counts as signed if that tier's field, or any higher
    tier's field, carries a value.
    """
    required = get_required_steps(active_teams, completed_teams, catalog)
    values = snapshot.values_by_name()
    steps: list[StepStatus] = []

    for step in required.required_steps():
        if step == OnboardingStep.COVENANT:
            field_name = field_name_for(step, required.covenant)
            signed = [
                values.get(name)
                for level, name in COVENANT_FIELD_NAMES.items()
                if level >= required.covenant and has_value(values.get(name))
            ]
            steps.append(
                StepStatus(
                    step=step,
                    field_name=field_name,
                    completed=bool(signed),
                    value=signed[0] if signed else values.get(field_name),
                )
            )
            continue

        field_name = field_name_for(step)
        if field_name is None:
            steps.append(StepStatus(step=step))
            continue
        value = values.get(field_name)
        steps.append(
            StepStatus(step=step, field_name=field_name, completed=has_value(value), value=value)
        )

    return OnboardingStatus(person_id=snapshot.person_id, required=required, steps=steps)


class OnboardingService:
    """
    Onboarding status and step recording for one Planning Center account.

    Usage:
        async with OnboardingService() as service:
            status = await service.get_status(person_id, ["worship"])
            await service.mark_step_complete(person_id, OnboardingStep.REFERENCES, "2025-01-05")
    """

    def __init__(
        self,
        client: PlanningCenterClient | None = None,
        catalog: RequirementsCatalog | None = None,
    ) -> None:
        self.client = client or PlanningCenterClient()
        self.catalog = catalog
        self.synchronizer = FieldSynchronizer(self.client)
        self.log = structlog.get_logger()

    async def __aenter__(self) -> OnboardingService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()

    def start_sync(self) -> None:
        """Reset rate-limit counters at the start of a sync run."""
        self.client.governor.reset_stats()

    def sync_stats(self) -> dict[str, Any]:
        budget = self.client.governor.stats()
        return {
            "limit": budget.limit,
            "remaining": budget.remaining,
            "total_calls": budget.total_calls,
            "rate_limit_errors": budget.rate_limit_errors,
        }

    async def get_status(
        self,
        person_id: str,
        active_teams: Iterable[str],
        completed_teams: Iterable[str] = (),
    ) -> OnboardingStatus:
        snapshot = await self.synchronizer.fetch_person_field_data(person_id)
        status = build_onboarding_status(snapshot, active_teams, completed_teams, self.catalog)
        self.log.info(
            "onboarding_sync.status",
            person_id=person_id,
            outstanding=[s.value for s in status.outstanding()],
        )
        return status

    async def mark_step_complete(
        self,
        person_id: str,
        step: OnboardingStep,
        value: Any,
        covenant: CovenantLevel | None = None,
    ) -> UpsertResult:
        """
        Record a step as completed by writing its upstream field.

        Raises:
            ValueError: The step has no upstream field (or covenant tier missing).
            FieldNotFoundError: The field doesn't exist in PCO People.
        """
        field_name = field_name_for(step, covenant)
        if field_name is None:
            raise ValueError(f"Step {step.value} has no upstream field to record completion")

        result = await self.synchronizer.upsert_field(person_id, field_name, value)
        self.log.info(
            "onboarding_sync.step_recorded",
            person_id=person_id,
            step=step.value,
            field_name=field_name,
            action=result.action.value,
        )
        return result
