"""
Supabase database integration module.

Handles all database operations:
- Reading the auction inventory (read-only, populated by the ingestion job)
- Storing and editing user patterns
- The pattern alert ledger (dedup of surfaced matches)
- On-demand check debounce log

Tables required:
- auctions: Auction inventory (id, domain_name, price, tld, end_time, domain_age, updated_at)
- user_patterns: User pattern definitions and structured filters
- pattern_alerts: Ledger, UNIQUE (user_id, pattern_id, auction_id)
- pattern_check_log: user_id PRIMARY KEY, last_checked_at
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional, Type
from supabase import create_client, Client

from .config import get_supabase_config
from .errors import AuthError, InventoryReadError, PatternNotFound, StorageError
from .models import AlertRecord, AuctionQuery, InventoryRow, Pattern, parse_timestamp

logger = logging.getLogger(__name__)

AUCTION_COLUMNS = "id, domain_name, price, tld, end_time, domain_age, updated_at"
ALERT_CONFLICT_KEY = "user_id,pattern_id,auction_id"

# PostgREST caps unranged selects at this many rows
PAGE_SIZE = 1000


def _execute(query, error_cls: Type[Exception] = StorageError, action: str = "query"):
    """Run a query builder, re-raising any client/transport failure as error_cls."""
    try:
        return query.execute()
    except Exception as e:
        logger.error(f"Supabase {action} failed: {e}")
        raise error_cls(f"{action} failed: {e}") from e


class Database:
    """
    Supabase database client wrapper.

    Implements every storage port the pipeline needs: InventorySource,
    PatternRepository, AlertLedgerStore and CheckLog.
    """

    def __init__(self, client: Optional[Client] = None):
        """Initialize Supabase client."""
        if client is None:
            config = get_supabase_config()
            if not config.url or not config.key:
                raise ValueError("Supabase URL and key must be set in environment variables")
            client = create_client(config.url, config.key)
        self._client: Client = client

    @property
    def client(self) -> Client:
        """Get the Supabase client."""
        return self._client

    # =========================================================================
    # AUTH
    # =========================================================================

    def resolve_owner(self, access_token: str) -> str:
        """
        Resolve a bearer token to the owner's user id.

        Raises:
            AuthError: If the token is missing or rejected
        """
        if not access_token:
            raise AuthError("No authorization token")
        try:
            response = self._client.auth.get_user(access_token)
        except Exception as e:
            raise AuthError(f"Invalid token: {e}") from e
        if response is None or response.user is None:
            raise AuthError("Invalid token")
        return response.user.id

    # =========================================================================
    # INVENTORY OPERATIONS (read-only)
    # =========================================================================

    def list_auctions(self, query: AuctionQuery, offset: int, limit: int) -> list[InventoryRow]:
        """
        Fetch one page of auctions with the query's predicates pushed down.

        Raises:
            InventoryReadError: If the page could not be fetched
        """
        builder = self._client.table("auctions").select(AUCTION_COLUMNS)

        if query.ending_after:
            builder = builder.gte("end_time", query.ending_after.isoformat())
        if query.ending_before:
            builder = builder.lte("end_time", query.ending_before.isoformat())
        if query.min_price is not None:
            builder = builder.gte("price", query.min_price)
        if query.max_price is not None:
            builder = builder.lte("price", query.max_price)
        if query.tld:
            # Stored as "com" or ".com"; rows without a tld are resolved from the name in process
            builder = builder.or_(f"tld.ilike.%{query.tld},tld.is.null,tld.eq.")
        if query.known_age_only:
            builder = builder.gt("domain_age", 0)
        if query.min_age is not None:
            builder = builder.gte("domain_age", query.min_age)
        if query.max_age is not None:
            builder = builder.lte("domain_age", query.max_age)
        if query.contains_any:
            # OR across tokens: a superset of rows the regex can accept
            builder = builder.or_(",".join(f"domain_name.ilike.%{t}%" for t in query.contains_any))

        builder = builder.order(query.order_by, desc=query.descending).range(offset, offset + limit - 1)

        result = _execute(builder, InventoryReadError, f"auctions page @{offset}")
        return [InventoryRow.from_dict(row) for row in result.data or []]

    # =========================================================================
    # PATTERN OPERATIONS
    # =========================================================================

    def get_pattern(self, owner: str, pattern_id: str) -> Optional[Pattern]:
        """Get a pattern by ID, scoped to its owner."""
        result = _execute(
            self._client.table("user_patterns").select("*").eq("id", pattern_id).eq("user_id", owner),
            action="get pattern",
        )
        return Pattern.from_dict(result.data[0]) if result.data else None

    def list_patterns(self, owner: str) -> list[Pattern]:
        """All of an owner's patterns, newest first."""
        result = _execute(
            self._client.table("user_patterns").select("*").eq("user_id", owner).order("created_at", desc=True),
            action="list patterns",
        )
        return [Pattern.from_dict(row) for row in result.data or []]

    def list_enabled_patterns(self, owner: Optional[str] = None) -> list[Pattern]:
        """Enabled patterns for one owner, or for everyone when owner is None."""
        patterns = []
        offset = 0
        while True:
            builder = self._client.table("user_patterns").select("*").eq("enabled", True)
            if owner is not None:
                builder = builder.eq("user_id", owner)
            builder = builder.order("id").range(offset, offset + PAGE_SIZE - 1)
            result = _execute(builder, action="list enabled patterns")
            rows = result.data or []
            patterns.extend(Pattern.from_dict(row) for row in rows)
            if len(rows) < PAGE_SIZE:
                return patterns
            offset += PAGE_SIZE

    def count_patterns(self, owner: str) -> int:
        result = _execute(
            self._client.table("user_patterns").select("id", count="exact").eq("user_id", owner),
            action="count patterns",
        )
        return result.count if result.count is not None else len(result.data or [])

    def insert_pattern(self, data: dict) -> Pattern:
        """Insert a new pattern row and return it as stored."""
        result = _execute(self._client.table("user_patterns").insert(data), action="insert pattern")
        pattern = Pattern.from_dict(result.data[0])
        logger.info(f"Created pattern {pattern.id} for {pattern.owner}")
        return pattern

    def update_pattern(self, owner: str, pattern_id: str, changes: dict) -> Pattern:
        """
        Update a pattern's columns.

        Raises:
            PatternNotFound: If no pattern with this id belongs to the owner
        """
        result = _execute(
            self._client.table("user_patterns").update(changes).eq("id", pattern_id).eq("user_id", owner),
            action="update pattern",
        )
        if not result.data:
            raise PatternNotFound(pattern_id)
        logger.debug(f"Updated pattern {pattern_id}: {sorted(changes)}")
        return Pattern.from_dict(result.data[0])

    def delete_pattern(self, owner: str, pattern_id: str) -> None:
        _execute(
            self._client.table("user_patterns").delete().eq("id", pattern_id).eq("user_id", owner),
            action="delete pattern",
        )
        logger.info(f"Deleted pattern {pattern_id}")

    def delete_all_patterns(self, owner: str) -> int:
        result = _execute(
            self._client.table("user_patterns").delete().eq("user_id", owner),
            action="delete all patterns",
        )
        deleted = len(result.data or [])
        logger.info(f"Deleted {deleted} patterns for {owner}")
        return deleted

    def mark_matched(self, pattern_ids: Iterable[str], matched_at: datetime) -> None:
        """Set last_matched_at on every given pattern."""
        ids = list(pattern_ids)
        if not ids:
            return
        _execute(
            self._client.table("user_patterns").update({"last_matched_at": matched_at.isoformat()}).in_("id", ids),
            action="mark patterns matched",
        )

    # =========================================================================
    # ALERT LEDGER OPERATIONS
    # =========================================================================

    def insert_alerts_ignore_duplicates(self, records: list[AlertRecord]) -> list[AlertRecord]:
        """
        Insert ledger rows with ON CONFLICT DO NOTHING.

        Only rows that were actually inserted come back, so concurrent runs
        racing the same triple each see it as new at most once between them.
        """
        if not records:
            return []
        result = _execute(
            self._client.table("pattern_alerts").upsert(
                [record.to_dict() for record in records],
                on_conflict=ALERT_CONFLICT_KEY,
                ignore_duplicates=True,
            ),
            action="insert alerts",
        )
        return [AlertRecord.from_dict(row) for row in result.data or []]

    def alerted_auction_ids(self, owner: str, pattern_id: str) -> set[str]:
        """Auction ids this owner's pattern has already surfaced."""
        alerted: set[str] = set()
        offset = 0
        while True:
            result = _execute(
                self._client.table("pattern_alerts")
                .select("auction_id")
                .eq("user_id", owner)
                .eq("pattern_id", pattern_id)
                .order("auction_id")
                .range(offset, offset + PAGE_SIZE - 1),
                action="load alerted ids",
            )
            rows = result.data or []
            alerted.update(str(row["auction_id"]) for row in rows)
            if len(rows) < PAGE_SIZE:
                return alerted
            offset += PAGE_SIZE

    def delete_alerts(self, owner: str, pattern_id: Optional[str] = None) -> int:
        """Delete an owner's ledger rows, optionally only for one pattern."""
        builder = self._client.table("pattern_alerts").delete().eq("user_id", owner)
        if pattern_id is not None:
            builder = builder.eq("pattern_id", pattern_id)
        result = _execute(builder, action="delete alerts")
        return len(result.data or [])

    def delete_alerts_before(self, cutoff: datetime) -> int:
        """Retention: delete ledger rows alerted before the cutoff."""
        result = _execute(
            self._client.table("pattern_alerts").delete().lt("alerted_at", cutoff.isoformat()),
            action="purge alerts",
        )
        return len(result.data or [])

    # =========================================================================
    # CHECK LOG
    # =========================================================================

    def claim_check(self, owner: str, now: datetime, min_interval_seconds: int) -> bool:
        """Record an on-demand check unless the owner ran one too recently."""
        result = _execute(
            self._client.table("pattern_check_log").select("last_checked_at").eq("user_id", owner),
            action="read check log",
        )
        if result.data:
            last = parse_timestamp(result.data[0].get("last_checked_at"))
            if last and now - last < timedelta(seconds=min_interval_seconds):
                return False

        _execute(
            self._client.table("pattern_check_log").upsert(
                {"user_id": owner, "last_checked_at": now.isoformat()},
                on_conflict="user_id",
            ),
            action="write check log",
        )
        return True


# Global database instance (lazy loaded)
_db: Optional[Database] = None


def get_db() -> Database:
    """Get database instance (singleton)."""
    global _db
    if _db is None:
        _db = Database()
    return _db
