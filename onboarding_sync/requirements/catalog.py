"""
Requirements Catalog — team key → requirement profile lookup.

The catalog starts from the built-in team matrix and may be overridden per
team by an admin-maintained document. Overrides are merged into a fresh map
which is then published with a single reference swap, so readers always see
either the old catalog or the new one, never a partial merge.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Iterator, Mapping

from onboarding_sync.config import settings
from onboarding_sync.requirements.schema import (
    DEFAULT_TEAM_REQUIREMENTS,
    TeamRequirementProfile,
)

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-{2,}")

# Display names that don't follow the Title Case rule
_DISPLAY_NAME_EXCEPTIONS = {
    "rpk": "RPK",
    "staff": "Staff",
    "e3-(thursday-night-kids)": "E3 (Thursday Night Kids)",
}


def normalize_team_key(name: str) -> str:
    """
    Normalize a team display name to its catalog key.

    "Kids Check In" → "kids-check-in", "  Food and  Friends " → "food-and-friends".
    """
    key = _WHITESPACE.sub("-", name.strip().lower())
    return _HYPHENS.sub("-", key).strip("-")


def get_team_display_name(team_key: str) -> str:
    """Convert a kebab-case team key to a Title Case display name."""
    special = _DISPLAY_NAME_EXCEPTIONS.get(team_key.lower())
    if special:
        return special
    return " ".join(word[:1].upper() + word[1:] for word in team_key.split("-"))


class RequirementsCatalog:
    """
    In-memory table of team requirement profiles.

    Usage:
        catalog = RequirementsCatalog()
        catalog.apply_overrides({"parking": {"backgroundCheck": True}})
        profile = catalog.get("Parking")
    """

    def __init__(
        self, defaults: Mapping[str, TeamRequirementProfile] | None = None
    ) -> None:
        self._defaults: dict[str, TeamRequirementProfile] = {
            normalize_team_key(key): profile
            for key, profile in (
                DEFAULT_TEAM_REQUIREMENTS if defaults is None else defaults
            ).items()
        }
        self._profiles: Mapping[str, TeamRequirementProfile] = dict(self._defaults)

    def get(self, team: str) -> TeamRequirementProfile | None:
        """Look up a team's profile by display name or key."""
        if not isinstance(team, str):
            return None
        return self._profiles.get(normalize_team_key(team))

    def __contains__(self, team: object) -> bool:
        return isinstance(team, str) and normalize_team_key(team) in self._profiles

    def __iter__(self) -> Iterator[str]:
        return iter(self.teams())

    def __len__(self) -> int:
        return len(self._profiles)

    def teams(self) -> list[str]:
        """Return all known team keys, sorted."""
        return sorted(self._profiles)

    def snapshot(self) -> dict[str, TeamRequirementProfile]:
        """Return a copy of the currently published catalog."""
        return dict(self._profiles)

    def apply_overrides(self, overrides: Mapping[str, Any]) -> None:
        """
        Merge per-team overrides over the defaults and publish the result.

        Each override replaces the default profile for its team wholesale.
        Every entry is validated before the new map is published; an invalid
        entry raises ValidationError and leaves the catalog unchanged.
        """
        merged = dict(self._defaults)
        for team, profile in overrides.items():
            if not isinstance(profile, TeamRequirementProfile):
                profile = TeamRequirementProfile.model_validate(profile)
            merged[normalize_team_key(team)] = profile

        self._profiles = merged
        logger.info(
            "Team requirements published: %d teams (%d overrides)",
            len(merged),
            len(overrides),
        )

    def load_overrides(self, path: str | Path) -> bool:
        """
        Load overrides from a JSON document of the form {"teams": {...}}.

        Returns True if the overrides were applied. Any failure is logged and
        the catalog keeps serving its current profiles.
        """
        try:
            document = json.loads(Path(path).read_text(encoding="utf-8"))
            overrides = document.get("teams") or {}
            self.apply_overrides(overrides)
        except (OSError, ValueError, AttributeError) as e:
            # ValidationError and JSONDecodeError are both ValueErrors
            logger.warning(
                "Failed to load team requirements from %s, using current catalog: %s",
                path,
                e,
            )
            return False
        return True

    def reset(self) -> None:
        """Republish the built-in defaults."""
        self._profiles = dict(self._defaults)


def _build_default_catalog() -> RequirementsCatalog:
    catalog = RequirementsCatalog()
    if settings.team_requirements_path:
        catalog.load_overrides(settings.team_requirements_path)
    return catalog


# Global catalog instance (built-in matrix plus configured overrides)
requirements_catalog = _build_default_catalog()
