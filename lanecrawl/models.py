"""Domain models for lanecrawl.

Pydantic models for cities, lane requests, scored candidates, and the
assembled pickup/delivery pairs returned to callers.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# --- Enums ---


class EquipmentFamily(str, Enum):
    """Trailer families used for equipment-aware scoring."""

    VAN = "van"
    REEFER = "reefer"
    FLATBED = "flatbed"


class Side(str, Enum):
    """Which end of the lane a candidate belongs to."""

    PICKUP = "pickup"
    DELIVERY = "delivery"


class DiscoverySource(str, Enum):
    """Where a candidate city came from."""

    CATALOG = "catalog"
    GEOCODER = "geocoder"


class ShortfallPolicy(str, Enum):
    """What the selector does when strict market diversity runs out."""

    REPORT = "report"  # Strict uniqueness, report the shortfall
    RELAX = "relax"  # Relaxation pass, then report
    NEVER_PAD = "never_pad"  # Strict, and synthesized markets are not admitted


class ShortfallReason(str, Enum):
    """Structured reason attached to a result that fell short."""

    INSUFFICIENT_UNIQUE_MARKETS = "insufficient_unique_markets"
    INSUFFICIENT_AFTER_RELAXATION = "insufficient_unique_markets_after_relaxation"


# --- Geography ---


class City(BaseModel):
    """A catalog city, or a transient one synthesized from the geocoder."""

    name: str = Field(alias="city", min_length=1)
    region: str = Field(min_length=2, max_length=3, description="State or province code")
    postal_code: Optional[str] = None
    latitude: float
    longitude: float
    market_code: Optional[str] = None
    market_name: Optional[str] = None
    population: int = Field(default=0, ge=0)

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("region", mode="before")
    @classmethod
    def uppercase_region(cls, v: str) -> str:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @field_validator("market_code", mode="before")
    @classmethod
    def normalize_market(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str):
            v = v.strip().upper()
            return v or None
        return v

    @property
    def key(self) -> str:
        """Case-insensitive name+region dedup key."""
        return city_key(self.name, self.region)

    @property
    def label(self) -> str:
        return f"{self.name}, {self.region}"


def city_key(name: str, region: str) -> str:
    """Build the name+region key used for deduplication."""
    return f"{name.strip().lower()}|{region.strip().lower()}"


class LocationRef(BaseModel):
    """A caller-supplied city+region pair, before resolution."""

    city: str = Field(min_length=1)
    region: str = Field(min_length=2, max_length=3)

    model_config = {"frozen": True}

    @field_validator("region", mode="before")
    @classmethod
    def uppercase_region(cls, v: str) -> str:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("city", mode="before")
    @classmethod
    def strip_city(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @property
    def label(self) -> str:
        return f"{self.city}, {self.region}"


class DistanceBand(BaseModel):
    """A half-open distance range (min_miles, max_miles]."""

    min_miles: float = Field(ge=0)
    max_miles: float = Field(gt=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def ordered(self) -> "DistanceBand":
        if self.max_miles <= self.min_miles:
            raise ValueError("max_miles must be greater than min_miles")
        return self

    @property
    def label(self) -> str:
        return f"{self.min_miles:g}-{self.max_miles:g}"

    def contains(self, miles: float) -> bool:
        """True if miles lies in (min_miles, max_miles]; 0 is in the first band."""
        if self.min_miles == 0:
            return 0 <= miles <= self.max_miles
        return self.min_miles < miles <= self.max_miles


DEFAULT_BANDS: tuple[DistanceBand, ...] = (
    DistanceBand(min_miles=0, max_miles=25),
    DistanceBand(min_miles=25, max_miles=35),
    DistanceBand(min_miles=35, max_miles=50),
    DistanceBand(min_miles=50, max_miles=75),
    DistanceBand(min_miles=75, max_miles=100),
)

# Primary, maximum, emergency
DEFAULT_CEILINGS: tuple[float, ...] = (50.0, 75.0, 100.0)


# --- Request / candidates ---


class LaneRequest(BaseModel):
    """One pairing request. Immutable for the duration of a computation."""

    origin: LocationRef
    destination: LocationRef
    equipment: str = Field(default="V", min_length=1, max_length=4)
    required_pairs: int = Field(default=6, ge=1, le=50)
    max_radius: float = Field(default=100.0, gt=0, le=250)
    shortfall_policy: ShortfallPolicy = ShortfallPolicy.RELAX

    model_config = {"frozen": True}

    @field_validator("equipment", mode="before")
    @classmethod
    def uppercase_equipment(cls, v: str) -> str:
        return v.strip().upper() if isinstance(v, str) else v


class Candidate(BaseModel):
    """A city considered for one side of the lane."""

    city: City
    distance: float
    band: DistanceBand
    score: float = 0.0
    source: DiscoverySource = DiscoverySource.CATALOG
    market_synthesized: bool = False

    @property
    def market_code(self) -> str:
        return self.city.market_code or ""

    @property
    def key(self) -> str:
        return self.city.key


class SideSelection(BaseModel):
    """Ranked, market-diverse candidates for one side of the lane."""

    side: Side
    candidates: list[Candidate] = Field(default_factory=list)
    relaxed: bool = False
    shortfall_reason: Optional[ShortfallReason] = None


# --- Output ---


class Pair(BaseModel):
    """One pickup/delivery alternative. Never mutated after assembly."""

    pickup: City
    delivery: City
    score: float
    pickup_distance: float
    delivery_distance: float
    pickup_market: str
    delivery_market: str
    pickup_tier: str
    delivery_tier: str
    pickup_market_synthesized: bool = False
    delivery_market_synthesized: bool = False

    model_config = {"frozen": True}

    @property
    def tier(self) -> str:
        """The outermost of the two discovery tiers."""
        def upper(label: str) -> float:
            return float(label.split("-")[-1])

        return max((self.pickup_tier, self.delivery_tier), key=upper)

    @property
    def market_synthesized(self) -> bool:
        return self.pickup_market_synthesized or self.delivery_market_synthesized


class LaneResult(BaseModel):
    """Complete pairing result for one lane."""

    base_origin: City
    base_destination: City
    pairs: list[Pair] = Field(default_factory=list)
    required_count: int
    shortfall_reason: Optional[ShortfallReason] = None
    relaxed: bool = False
    policy: ShortfallPolicy = ShortfallPolicy.RELAX
    equipment: str = "V"

    @property
    def achieved_count(self) -> int:
        return len(self.pairs)

    @property
    def is_complete(self) -> bool:
        return self.achieved_count >= self.required_count
