"""Crisis resource allowlist.

Visits to these domains must never be recorded by any monitoring channel
(zero-data-path). The table is static, immutable data; services receive
it through an ``AllowlistProvider`` so tests can substitute fixtures.

Review cadence: quarterly, or immediately when a hotline changes domain.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Tuple


class CrisisCategory(Enum):
    """Kind of help a crisis resource provides."""
    SUICIDE = "suicide"
    MENTAL_HEALTH = "mental_health"
    DOMESTIC_ABUSE = "domestic_abuse"
    SEXUAL_ASSAULT = "sexual_assault"
    CHILD_ABUSE = "child_abuse"
    LGBTQ_SUPPORT = "lgbtq_support"
    EATING_DISORDER = "eating_disorder"
    SUBSTANCE_ABUSE = "substance_abuse"
    CRISIS_GENERAL = "crisis_general"


class Region(Enum):
    """Primary service region of a resource."""
    US = "us"
    UK = "uk"
    CANADA = "canada"
    AUSTRALIA = "australia"
    INTERNATIONAL = "international"


class ContactMethod(Enum):
    PHONE = "phone"
    TEXT = "text"
    CHAT = "chat"
    EMAIL = "email"
    WEB = "web"


@dataclass(frozen=True)
class AllowlistEntry:
    """A protected crisis resource.

    ``domain`` and every alias match exactly and on any subdomain.
    """
    domain: str
    category: CrisisCategory
    region: Region
    name: str
    aliases: FrozenSet[str] = field(default_factory=frozenset)
    description: str = ""
    contact_methods: Tuple[ContactMethod, ...] = ()
    phone_number: Optional[str] = None

    @property
    def all_domains(self) -> FrozenSet[str]:
        return frozenset({self.domain}) | self.aliases


@dataclass(frozen=True)
class CrisisAllowlist:
    """Versioned snapshot of the allowlist."""
    version: str
    last_updated: str
    entries: Tuple[AllowlistEntry, ...]


def _entry(domain, category, region, name, aliases=(), description="",
           contact=(ContactMethod.PHONE,), phone=None) -> AllowlistEntry:
    return AllowlistEntry(
        domain=domain,
        category=category,
        region=region,
        name=name,
        aliases=frozenset(aliases),
        description=description,
        contact_methods=tuple(contact),
        phone_number=phone,
    )


_PHONE_TEXT_CHAT = (ContactMethod.PHONE, ContactMethod.TEXT, ContactMethod.CHAT)

CRISIS_ALLOWLIST = CrisisAllowlist(
    version="1.3.0",
    last_updated="2026-09-30",
    entries=(
        # ======================================================================
        # UNITED STATES
        # ======================================================================
        _entry("988lifeline.org", CrisisCategory.SUICIDE, Region.US,
               "988 Suicide & Crisis Lifeline",
               aliases=("suicidepreventionlifeline.org", "988.org"),
               description="National suicide prevention and crisis line",
               contact=_PHONE_TEXT_CHAT, phone="988"),
        _entry("crisistextline.org", CrisisCategory.CRISIS_GENERAL, Region.US,
               "Crisis Text Line", description="Text-based crisis support",
               contact=(ContactMethod.TEXT,)),
        _entry("rainn.org", CrisisCategory.SEXUAL_ASSAULT, Region.US, "RAINN",
               description="Sexual assault hotline",
               contact=(ContactMethod.PHONE, ContactMethod.CHAT),
               phone="1-800-656-4673"),
        _entry("thetrevorproject.org", CrisisCategory.LGBTQ_SUPPORT, Region.US,
               "The Trevor Project", aliases=("thetrevoproject.org",),
               description="Crisis support for LGBTQ+ young people",
               contact=_PHONE_TEXT_CHAT, phone="1-866-488-7386"),
        _entry("translifeline.org", CrisisCategory.LGBTQ_SUPPORT, Region.US,
               "Trans Lifeline", phone="1-877-565-8860"),
        _entry("childhelp.org", CrisisCategory.CHILD_ABUSE, Region.US,
               "Childhelp National Child Abuse Hotline",
               aliases=("childhelphotline.org",),
               contact=(ContactMethod.PHONE, ContactMethod.TEXT),
               phone="1-800-422-4453"),
        _entry("thehotline.org", CrisisCategory.DOMESTIC_ABUSE, Region.US,
               "National Domestic Violence Hotline", aliases=("ndvh.org",),
               contact=_PHONE_TEXT_CHAT, phone="1-800-799-7233"),
        _entry("loveisrespect.org", CrisisCategory.DOMESTIC_ABUSE, Region.US,
               "love is respect", description="Dating abuse support for teens",
               contact=_PHONE_TEXT_CHAT, phone="1-866-331-9474"),
        _entry("missingkids.org", CrisisCategory.CHILD_ABUSE, Region.US,
               "National Center for Missing & Exploited Children",
               phone="1-800-843-5678"),
        _entry("nami.org", CrisisCategory.MENTAL_HEALTH, Region.US,
               "NAMI HelpLine", contact=_PHONE_TEXT_CHAT, phone="1-800-950-6264"),
        _entry("nationaleatingdisorders.org", CrisisCategory.EATING_DISORDER,
               Region.US, "National Eating Disorders Association",
               contact=(ContactMethod.WEB,)),
        _entry("samhsa.gov", CrisisCategory.SUBSTANCE_ABUSE, Region.US,
               "SAMHSA National Helpline", aliases=("findtreatment.gov",),
               phone="1-800-662-4357"),
        # ======================================================================
        # UNITED KINGDOM
        # ======================================================================
        _entry("samaritans.org", CrisisCategory.SUICIDE, Region.UK, "Samaritans",
               contact=(ContactMethod.PHONE, ContactMethod.EMAIL), phone="116 123"),
        _entry("childline.org.uk", CrisisCategory.CHILD_ABUSE, Region.UK,
               "Childline", contact=(ContactMethod.PHONE, ContactMethod.CHAT),
               phone="0800 1111"),
        _entry("nspcc.org.uk", CrisisCategory.CHILD_ABUSE, Region.UK, "NSPCC",
               phone="0808 800 5000"),
        _entry("papyrus-uk.org", CrisisCategory.SUICIDE, Region.UK,
               "PAPYRUS HOPELINE247", contact=_PHONE_TEXT_CHAT,
               phone="0800 068 4141"),
        _entry("refuge.org.uk", CrisisCategory.DOMESTIC_ABUSE, Region.UK,
               "Refuge National Domestic Abuse Helpline",
               aliases=("nationaldahelpline.org.uk",), phone="0808 2000 247"),
        _entry("mind.org.uk", CrisisCategory.MENTAL_HEALTH, Region.UK, "Mind"),
        _entry("switchboard.lgbt", CrisisCategory.LGBTQ_SUPPORT, Region.UK,
               "Switchboard LGBT+ Helpline"),
        # ======================================================================
        # CANADA
        # ======================================================================
        _entry("kidshelpphone.ca", CrisisCategory.CRISIS_GENERAL, Region.CANADA,
               "Kids Help Phone", contact=_PHONE_TEXT_CHAT, phone="1-800-668-6868"),
        _entry("talksuicide.ca", CrisisCategory.SUICIDE, Region.CANADA,
               "Talk Suicide Canada", aliases=("988.ca",), phone="988"),
        _entry("sheltersafe.ca", CrisisCategory.DOMESTIC_ABUSE, Region.CANADA,
               "ShelterSafe", contact=(ContactMethod.WEB,)),
        # ======================================================================
        # AUSTRALIA
        # ======================================================================
        _entry("lifeline.org.au", CrisisCategory.SUICIDE, Region.AUSTRALIA,
               "Lifeline Australia", contact=_PHONE_TEXT_CHAT, phone="13 11 14"),
        _entry("kidshelpline.com.au", CrisisCategory.CRISIS_GENERAL,
               Region.AUSTRALIA, "Kids Helpline", phone="1800 55 1800"),
        _entry("1800respect.org.au", CrisisCategory.DOMESTIC_ABUSE,
               Region.AUSTRALIA, "1800RESPECT", phone="1800 737 732"),
        _entry("beyondblue.org.au", CrisisCategory.MENTAL_HEALTH,
               Region.AUSTRALIA, "Beyond Blue", phone="1300 22 4636"),
        # ======================================================================
        # INTERNATIONAL
        # ======================================================================
        _entry("befrienders.org", CrisisCategory.SUICIDE, Region.INTERNATIONAL,
               "Befrienders Worldwide", contact=(ContactMethod.WEB,)),
        _entry("findahelpline.com", CrisisCategory.CRISIS_GENERAL,
               Region.INTERNATIONAL, "Find A Helpline",
               contact=(ContactMethod.WEB,)),
    ),
)


class AllowlistProvider(ABC):
    """Source of the crisis allowlist."""

    @abstractmethod
    def get_allowlist(self) -> CrisisAllowlist:
        pass


class StaticAllowlistProvider(AllowlistProvider):
    """Serves an in-process allowlist (the bundled table by default)."""

    def __init__(self, allowlist: CrisisAllowlist = CRISIS_ALLOWLIST):
        self._allowlist = allowlist

    def get_allowlist(self) -> CrisisAllowlist:
        return self._allowlist
