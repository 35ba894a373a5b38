"""
Requirements Schema — Pydantic models for team onboarding requirements.

A team requirement profile says which onboarding steps a volunteer serving
on that team has to complete. Profiles are keyed by a normalized team key
(lowercase, hyphen-joined) and are immutable: an override replaces a whole
profile, never a single flag.

The covenant ladder is stored as three independent flags. Precedence
(public presence > moral conduct > base covenant) is applied by the
resolver, not by the stored data.
"""

from __future__ import annotations

import enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class CovenantLevel(enum.IntEnum):
    """Ordinal covenant tiers. Higher tiers supersede lower ones."""

    BASE = 1
    MORAL_CONDUCT = 2
    PUBLIC_PRESENCE = 3


class OnboardingStep(str, enum.Enum):
    """Trackable onboarding steps."""

    BACKGROUND_CHECK = "background_check"
    REFERENCES = "references"
    CHILD_SAFETY = "child_safety"
    MANDATED_REPORTER = "mandated_reporter"
    WELCOME_TO_ORG = "welcome_to_org"
    MEMBERSHIP = "membership"
    LIFE_GROUP = "life_group"
    DISCIPLESHIP = "discipleship"
    LEADERSHIP = "leadership"
    COVENANT = "covenant"


STEP_FLAGS: tuple[str, ...] = (
    "background_check",
    "references",
    "child_safety",
    "mandated_reporter",
    "welcome_to_org",
    "membership",
    "life_group",
    "discipleship",
    "leadership",
)


def _flag(*aliases: str, description: str) -> bool:
    return Field(
        default=False,
        validation_alias=AliasChoices(*aliases),
        description=description,
    )


# ════════════════════════════════════════════════════════════════
# Models
# ════════════════════════════════════════════════════════════════


class TeamRequirementProfile(BaseModel):
    """
    Requirement profile for a single team.

    Accepts both snake_case and the camelCase keys used by the admin
    override document (``backgroundCheck``, ``welcomeToRCC``, ``covenant``).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    background_check: bool = _flag(
        "background_check", "backgroundCheck", description="Background check required"
    )
    references: bool = _flag("references", description="References required")
    child_safety: bool = _flag(
        "child_safety", "childSafety", description="Child safety training required"
    )
    mandated_reporter: bool = _flag(
        "mandated_reporter",
        "mandatedReporter",
        description="Mandated reporter training required",
    )
    welcome_to_org: bool = _flag(
        "welcome_to_org",
        "welcomeToOrg",
        "welcomeToRCC",
        description="Welcome class attendance required",
    )
    membership: bool = _flag("membership", description="Church membership required")
    life_group: bool = _flag(
        "life_group", "lifeGroup", description="Life group participation required"
    )
    discipleship: bool = _flag("discipleship", description="Discipleship track required")
    leadership: bool = _flag("leadership", description="Leadership track required")

    # Covenant ladder (tier 1 / 2 / 3)
    covenant_base: bool = _flag(
        "covenant_base", "covenantBase", "covenant", description="Tier 1: base covenant"
    )
    moral_conduct: bool = _flag(
        "moral_conduct", "moralConduct", description="Tier 2: moral conduct policy"
    )
    public_presence: bool = _flag(
        "public_presence", "publicPresence", description="Tier 3: public presence policy"
    )


class RequiredSteps(BaseModel):
    """
    Consolidated onboarding steps for one volunteer.

    Computed per request from the volunteer's active and completed teams.
    ``covenant`` is the highest covenant tier still owed, or None.
    """

    background_check: bool = False
    references: bool = False
    child_safety: bool = False
    mandated_reporter: bool = False
    covenant: CovenantLevel | None = None

    # Secondary requirements (not part of the main onboarding checklist)
    welcome_to_org: bool = False
    membership: bool = False
    life_group: bool = False
    discipleship: bool = False
    leadership: bool = False

    def required_steps(self) -> list[OnboardingStep]:
        """Return the steps that are required, in checklist order."""
        steps = [OnboardingStep(flag) for flag in STEP_FLAGS if getattr(self, flag)]
        if self.covenant is not None:
            steps.append(OnboardingStep.COVENANT)
        return steps


# ════════════════════════════════════════════════════════════════
# Default team matrix
# ════════════════════════════════════════════════════════════════

_P = TeamRequirementProfile

# Leadership teams carry the full checklist and the top covenant tier.
_LEADERSHIP = _P(
    background_check=True,
    references=True,
    child_safety=True,
    mandated_reporter=True,
    welcome_to_org=True,
    membership=True,
    life_group=True,
    discipleship=True,
    leadership=True,
    moral_conduct=True,
    public_presence=True,
)

_NONE = _P()

DEFAULT_TEAM_REQUIREMENTS: dict[str, TeamRequirementProfile] = {
    # Leadership
    "staff": _LEADERSHIP,
    "preschool-staff": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        moral_conduct=True,
        public_presence=True,
    ),
    "preschool-leadership": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        membership=True,
        life_group=True,
        discipleship=True,
        moral_conduct=True,
        public_presence=True,
    ),
    "ministry-leader": _LEADERSHIP,
    "elder": _LEADERSHIP,
    "board": _LEADERSHIP,
    "life-group": _LEADERSHIP,
    "core": _LEADERSHIP,
    # Volunteers
    "usher": _P(welcome_to_org=True),
    "connect": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        membership=True,
        moral_conduct=True,
    ),
    "parking": _NONE,
    "security": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        membership=True,
        moral_conduct=True,
    ),
    "production": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        moral_conduct=True,
        public_presence=True,
    ),
    "worship": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        moral_conduct=True,
    ),
    "students": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        moral_conduct=True,
        public_presence=True,
    ),
    "kids": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        membership=True,
        moral_conduct=True,
        public_presence=True,
    ),
    "kids-check-in": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        membership=True,
        moral_conduct=True,
    ),
    "e3-(thursday-night-kids)": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        membership=True,
        moral_conduct=True,
    ),
    "cafe": _P(background_check=True, welcome_to_org=True),
    "baptism": _P(
        background_check=True,
        references=True,
        child_safety=True,
        mandated_reporter=True,
        welcome_to_org=True,
        membership=True,
        moral_conduct=True,
        public_presence=True,
    ),
    "maintenance": _NONE,
    "divorce-care": _NONE,
    "grief-share": _NONE,
    "celebrate-recovery": _NONE,
    "special-events": _NONE,
    "care": _NONE,
    "communion-team": _P(life_group=True),
    "finance": _P(
        background_check=True,
        references=True,
        welcome_to_org=True,
        membership=True,
        moral_conduct=True,
    ),
    "counting": _P(
        background_check=True,
        references=True,
        welcome_to_org=True,
        membership=True,
        moral_conduct=True,
    ),
    "food-and-friends": _NONE,
    "moms": _P(
        background_check=True,
        references=True,
        welcome_to_org=True,
        membership=True,
        moral_conduct=True,
        public_presence=True,
    ),
    "prayer": _P(
        background_check=True,
        welcome_to_org=True,
        membership=True,
        moral_conduct=True,
        public_presence=True,
    ),
    "men": _P(
        background_check=True,
        welcome_to_org=True,
        membership=True,
        life_group=True,
        moral_conduct=True,
        public_presence=True,
    ),
    "women": _P(
        background_check=True,
        welcome_to_org=True,
        membership=True,
        life_group=True,
        moral_conduct=True,
        public_presence=True,
    ),
}
