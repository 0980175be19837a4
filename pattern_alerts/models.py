"""
Data models for Pattern Alerts.

Defines the dataclasses shared by the validator, matcher, ledger and the
three orchestration runs. Models that map to storage rows carry
to_dict/from_dict helpers using the column names of the Supabase tables.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from enum import Enum

from .normalization import is_shorthand, expand_shorthand, split_domain, normalize_tld


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a Postgres/ISO timestamp into an aware datetime (UTC if naive)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).replace("Z", "+00:00")
        # Postgres may emit more than 6 fractional digits
        if "." in text:
            head, _, rest = text.partition(".")
            digits = ""
            while rest and rest[0].isdigit():
                digits += rest[0]
                rest = rest[1:]
            text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _positive_or_none(value) -> Optional[float]:
    """Bounds stored as 0 or null both mean "no bound"."""
    if value is None:
        return None
    number = float(value)
    return number if number > 0 else None


class PatternType(str, Enum):
    """How the user authored the pattern text."""
    REGEX = "regex"
    STRUCTURE = "structure"          # Shorthand like LLL / LLNN, or a regex
    PRONOUNCEABLE = "pronounceable"  # Shorthand like CVCV, or a regex
    LENGTH = "length"
    WORDS = "words"


class CheckStatus(str, Enum):
    """Terminal states of an on-demand check."""
    MATCHES_FOUND = "matches-found"
    NO_MATCHES = "no-matches"
    DEBOUNCED = "debounced"
    ERROR = "error"


# Editing any of these invalidates the pattern's existing alerts
FILTER_FIELDS = (
    "pattern",
    "pattern_type",
    "min_price",
    "max_price",
    "tld_filter",
    "min_length",
    "max_length",
    "min_age",
    "max_age",
)


@dataclass
class Pattern:
    """
    A user-authored matching rule plus its structured filters.

    Price bounds are inclusive. Length bounds apply to the domain name with
    the TLD stripped. Age bounds are in years; rows with unknown age never
    satisfy an age-bounded pattern.
    """
    id: str
    owner: str
    pattern: str
    pattern_type: PatternType = PatternType.REGEX
    description: str = ""

    # Structured filters
    min_price: float = 0.0
    max_price: Optional[float] = None
    tld_filter: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_age: Optional[float] = None
    max_age: Optional[float] = None

    enabled: bool = True
    last_matched_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def regex_source(self) -> str:
        """The regex actually validated and evaluated (shorthand expanded)."""
        if self.pattern_type in (PatternType.STRUCTURE, PatternType.PRONOUNCEABLE) and is_shorthand(self.pattern):
            return expand_shorthand(self.pattern)
        return self.pattern

    @property
    def display_name(self) -> str:
        return self.description or self.pattern

    @property
    def tld(self) -> str:
        return normalize_tld(self.tld_filter)

    @property
    def is_age_bounded(self) -> bool:
        return self.min_age is not None or self.max_age is not None

    def filter_values(self) -> dict:
        """Current values of every alert-invalidating field."""
        data = self.to_dict()
        data["tld_filter"] = self.tld or None
        return {name: data[name] for name in FILTER_FIELDS}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.owner,
            "pattern": self.pattern,
            "pattern_type": self.pattern_type.value,
            "description": self.description or None,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "tld_filter": self.tld_filter,
            "min_length": self.min_length,
            "max_length": self.max_length,
            "min_age": self.min_age,
            "max_age": self.max_age,
            "enabled": self.enabled,
            "last_matched_at": _format_timestamp(self.last_matched_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Pattern":
        min_length = _positive_or_none(data.get("min_length"))
        max_length = _positive_or_none(data.get("max_length"))
        max_price = data.get("max_price")
        return cls(
            id=str(data["id"]),
            owner=str(data["user_id"]),
            pattern=data["pattern"],
            pattern_type=PatternType(data.get("pattern_type") or "regex"),
            description=data.get("description") or "",
            min_price=float(data.get("min_price") or 0),
            max_price=float(max_price) if max_price is not None else None,
            tld_filter=data.get("tld_filter") or None,
            min_length=int(min_length) if min_length else None,
            max_length=int(max_length) if max_length else None,
            min_age=_positive_or_none(data.get("min_age")),
            max_age=_positive_or_none(data.get("max_age")),
            enabled=data.get("enabled", True),
            last_matched_at=parse_timestamp(data.get("last_matched_at")),
            created_at=parse_timestamp(data.get("created_at")),
        )


@dataclass
class InventoryRow:
    """One auction from the (read-only, externally populated) inventory."""
    id: str
    domain_name: str
    price: float = 0.0
    tld: Optional[str] = None
    end_time: Optional[datetime] = None
    domain_age: Optional[float] = None
    updated_at: Optional[datetime] = None

    @property
    def name_only(self) -> str:
        """Domain name with the row's TLD removed, so "shop.co.uk" with tld "co.uk" is "shop"."""
        name = self.domain_name.strip().lower()
        tld = normalize_tld(self.tld)
        if tld and name.endswith(f".{tld}"):
            return name[:-len(tld) - 1]
        return split_domain(name)[0]

    @property
    def effective_tld(self) -> str:
        """The tld column, normalized; the last label of the name only when the column is empty."""
        return normalize_tld(self.tld) or split_domain(self.domain_name)[1]

    @property
    def has_known_age(self) -> bool:
        return bool(self.domain_age) and self.domain_age > 0

    @classmethod
    def from_dict(cls, data: dict) -> "InventoryRow":
        age = data.get("domain_age")
        return cls(
            id=str(data["id"]),
            domain_name=data["domain_name"],
            price=float(data.get("price") or 0),
            tld=data.get("tld"),
            end_time=parse_timestamp(data.get("end_time")),
            domain_age=float(age) if age is not None else None,
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass
class MatchResult:
    """A pattern hit produced during one run (not persisted on its own)."""
    auction_id: str
    domain_name: str
    price: float
    end_time: Optional[datetime]
    pattern_id: str
    pattern_description: str
    owner: str = ""

    def to_dict(self) -> dict:
        return {
            "auction_id": self.auction_id,
            "domain_name": self.domain_name,
            "price": self.price,
            "end_time": _format_timestamp(self.end_time),
            "pattern_id": self.pattern_id,
            "pattern_description": self.pattern_description,
        }

    def to_alert(self, alerted_at: Optional[datetime] = None) -> "AlertRecord":
        return AlertRecord(
            owner=self.owner,
            pattern_id=self.pattern_id,
            auction_id=self.auction_id,
            domain_name=self.domain_name,
            alerted_at=alerted_at or utcnow(),
        )


@dataclass
class AlertRecord:
    """
    Ledger entry: this owner's pattern already surfaced this auction.

    (owner, pattern_id, auction_id) is unique at the storage layer.
    """
    owner: str
    pattern_id: str
    auction_id: str
    domain_name: str
    alerted_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.owner, self.pattern_id, self.auction_id)

    def to_dict(self) -> dict:
        return {
            "user_id": self.owner,
            "pattern_id": self.pattern_id,
            "auction_id": self.auction_id,
            "domain_name": self.domain_name,
            "alerted_at": self.alerted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AlertRecord":
        return cls(
            owner=str(data["user_id"]),
            pattern_id=str(data["pattern_id"]),
            auction_id=str(data["auction_id"]),
            domain_name=data.get("domain_name", ""),
            alerted_at=parse_timestamp(data.get("alerted_at")) or utcnow(),
        )


@dataclass
class AuctionQuery:
    """
    Predicates pushed down to the inventory source.

    Every predicate here must admit a superset of the rows the evaluator
    accepts: the source may return extra rows, never fewer.
    """
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    tld: Optional[str] = None  # normalized, matched against the tld column
    min_age: Optional[float] = None
    max_age: Optional[float] = None
    known_age_only: bool = False
    ending_after: Optional[datetime] = None
    ending_before: Optional[datetime] = None
    contains_any: tuple[str, ...] = ()  # case-insensitive substring OR
    order_by: str = "end_time"
    descending: bool = False


# =============================================================================
# RUN RESULTS
# =============================================================================

@dataclass
class CheckResult:
    """Outcome of an on-demand check for one owner."""
    status: CheckStatus
    matches: list[MatchResult] = field(default_factory=list)
    total_patterns: int = 0
    error: Optional[str] = None

    @property
    def new_matches(self) -> int:
        return len(self.matches)

    def to_dict(self) -> dict:
        data = {
            "status": self.status.value,
            "matches": [m.to_dict() for m in self.matches],
            "newMatches": self.new_matches,
            "totalPatterns": self.total_patterns,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class SweepResult:
    """Outcome of a global sweep across all owners."""
    new_matches: int = 0
    users_notified: int = 0
    notifications_sent: int = 0
    patterns_checked: int = 0
    rows_scanned: int = 0
    failed_patterns: list[str] = field(default_factory=list)
    timed_out_patterns: list[str] = field(default_factory=list)
    cancelled: bool = False
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "newMatches": self.new_matches,
            "usersNotified": self.users_notified,
            "notificationsSent": self.notifications_sent,
            "patternsChecked": self.patterns_checked,
            "rowsScanned": self.rows_scanned,
            "failedPatterns": self.failed_patterns,
            "timedOutPatterns": self.timed_out_patterns,
            "cancelled": self.cancelled,
            "durationMs": self.duration_ms,
        }


@dataclass
class BackfillResult:
    """Outcome of a one-off full-inventory scan for one pattern."""
    matches_found: int = 0
    duration_ms: int = 0
    rows_scanned: int = 0
    prefiltered: bool = False
    truncated: bool = False
    timed_out: bool = False
    cancelled: bool = False

    def to_dict(self) -> dict:
        return {
            "matchesFound": self.matches_found,
            "durationMs": self.duration_ms,
            "rowsScanned": self.rows_scanned,
            "prefiltered": self.prefiltered,
            "truncated": self.truncated,
            "timedOut": self.timed_out,
            "cancelled": self.cancelled,
        }
