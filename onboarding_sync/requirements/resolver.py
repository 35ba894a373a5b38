"""
Requirements Resolver — consolidate onboarding steps across team memberships.

Step flags are additive: a volunteer on two teams must satisfy the union of
both teams' requirements. The covenant is an ordinal ladder: the highest tier
demanded by any active team wins, and a previously signed covenant only
cancels that demand if it is at or above the tier now required.

Unknown team labels never raise. They simply add no requirements, so one
unrecognized team can't block a volunteer's whole profile.
"""

from __future__ import annotations

from typing import Iterable

from onboarding_sync.requirements.catalog import RequirementsCatalog, requirements_catalog
from onboarding_sync.requirements.schema import STEP_FLAGS, CovenantLevel, RequiredSteps


def get_covenant_level(
    teams: Iterable[str],
    catalog: RequirementsCatalog | None = None,
) -> CovenantLevel | None:
    """
    Return the highest covenant tier imposed by any of the given teams.

    Public presence (tier 3) short-circuits the scan. Otherwise the result is
    the running maximum of moral conduct (2) and base covenant (1). Returns
    None if no known team imposes a covenant.
    """
    if catalog is None:
        catalog = requirements_catalog
    max_level: CovenantLevel | None = None

    for team in teams:
        profile = catalog.get(team)
        if profile is None:
            continue

        if profile.public_presence:
            return CovenantLevel.PUBLIC_PRESENCE

        if profile.moral_conduct:
            level = CovenantLevel.MORAL_CONDUCT
        elif profile.covenant_base:
            level = CovenantLevel.BASE
        else:
            continue

        if max_level is None or level > max_level:
            max_level = level

    return max_level


def get_required_steps(
    active_teams: Iterable[str],
    completed_teams: Iterable[str] = (),
    catalog: RequirementsCatalog | None = None,
) -> RequiredSteps:
    """
    Compute the consolidated onboarding steps for a volunteer.

    Args:
        active_teams: Teams the volunteer currently serves on (or is joining).
        completed_teams: Teams the volunteer has already completed onboarding for.
        catalog: Catalog to resolve against. Defaults to the global catalog.

    Returns:
        RequiredSteps with the union of step flags and the covenant tier still
        owed (None if no covenant is needed or it is already satisfied).
    """
    if catalog is None:
        catalog = requirements_catalog
    active = list(active_teams)
    flags = dict.fromkeys(STEP_FLAGS, False)

    for team in active:
        profile = catalog.get(team)
        if profile is None:
            continue
        for flag in STEP_FLAGS:
            flags[flag] = flags[flag] or getattr(profile, flag)

    needed = get_covenant_level(active, catalog)
    attained = get_covenant_level(completed_teams, catalog)

    if needed is not None and attained is not None and attained >= needed:
        needed = None

    return RequiredSteps(covenant=needed, **flags)


def is_valid_team(name: str, catalog: RequirementsCatalog | None = None) -> bool:
    """True iff the normalized team key exists in the catalog."""
    if catalog is None:
        catalog = requirements_catalog
    return name in catalog
