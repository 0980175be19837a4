"""
Main Pipeline module for Pattern Alerts.

One parametrised pipeline serves all three runs:
1. Scope  → Which patterns (one owner's, everyone's, or a single pattern)
2. Policy → Which inventory window, how it is ordered and batched, and
            whether each pattern gets its own pushed-down query
3. Scan   → Page through the inventory and evaluate every batch
4. Sink   → Record new matches in the ledger, stamp last_matched_at,
            and optionally fan out notifications

The entry points differ only in the scope and policy they pass in:
check_owner_patterns, sweep_all_patterns and backfill_pattern.
"""

import time
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from .config import MatchingConfig, get_matching_config
from .db import get_db
from .errors import (
    AuthError,
    EvaluationTimeout,
    InventoryReadError,
    PatternNotFound,
    StorageError,
    ValidationError,
)
from .ledger import AlertLedger
from .matching import CompiledPattern, PatternMatcher, build_query, prepare
from .models import (
    AuctionQuery,
    BackfillResult,
    CheckResult,
    CheckStatus,
    MatchResult,
    Pattern,
    SweepResult,
    utcnow,
)
from .notifications import FanoutReport, HttpNotificationTransport, NotificationFanout
from .ports import CheckLog, InventorySource, NotificationTransport, PatternRepository

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Pattern check failed. Please try again in a moment."


# =============================================================================
# RUN BUDGET
# =============================================================================

class RunBudget:
    """
    Deadline plus explicit cancellation for one run.

    Checked between batches only; records already inserted when the budget
    runs out stay valid.
    """

    def __init__(self, timeout_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.deadline = clock() + timeout_seconds if timeout_seconds else None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def expired(self) -> bool:
        if self._cancelled:
            return True
        return self.deadline is not None and self._clock() >= self.deadline


# =============================================================================
# SCAN POLICY
# =============================================================================

@dataclass(frozen=True)
class ScanPolicy:
    """
    How a run reads the inventory.

    shared_window: read the base window once and evaluate every pattern on
        each batch. Otherwise each pattern gets its own query with its
        filters (and literal hint, when use_hint) pushed down.
    max_batches_per_token: when set and a pattern has a usable hint, the
        batch cap becomes this many batches per hint token.
    """
    base_query: AuctionQuery
    batch_size: int
    max_batches: int
    shared_window: bool = False
    use_hint: bool = True
    max_batches_per_token: Optional[int] = None

    def batch_cap(self, compiled: CompiledPattern) -> int:
        if self.max_batches_per_token and self.use_hint and compiled.hint.usable:
            return self.max_batches_per_token * len(compiled.hint.tokens)
        return self.max_batches


@dataclass
class PipelineReport:
    """Counters gathered while a run scans and evaluates."""
    patterns_checked: int = 0
    rows_scanned: int = 0
    failed_patterns: list[str] = field(default_factory=list)
    timed_out_patterns: list[str] = field(default_factory=list)
    failed_batches: int = 0
    truncated: bool = False
    prefiltered: bool = False
    cancelled: bool = False


# =============================================================================
# RESULT SINK
# =============================================================================

class AlertSink:
    """
    Where a run's matches go: the ledger first, then notifications.

    Only matches the ledger reports as newly inserted are kept, so
    concurrent runs on the same inventory never notify a triple twice.
    """

    def __init__(
        self,
        ledger: AlertLedger,
        repository: PatternRepository,
        fanout: Optional[NotificationFanout] = None,
        run_at: Optional[datetime] = None,
    ):
        self.ledger = ledger
        self.repository = repository
        self.fanout = fanout
        self.run_at = run_at or utcnow()
        self.new_matches: list[MatchResult] = []

    def record(self, matches: list[MatchResult]) -> list[MatchResult]:
        new = self.ledger.record(matches, alerted_at=self.run_at)
        self.new_matches.extend(new)
        return new

    @property
    def matches_by_owner(self) -> dict[str, list[MatchResult]]:
        grouped: dict[str, list[MatchResult]] = defaultdict(list)
        for match in self.new_matches:
            grouped[match.owner].append(match)
        return dict(grouped)

    def finish(self) -> Optional[FanoutReport]:
        """Stamp matched patterns and send notifications (if configured)."""
        matched_ids = {m.pattern_id for m in self.new_matches}
        if matched_ids:
            try:
                self.repository.mark_matched(matched_ids, self.run_at)
            except StorageError as e:
                logger.warning(f"Could not update last_matched_at: {e}")

        if self.fanout is None or not self.new_matches:
            return None
        return self.fanout.dispatch(self.matches_by_owner)


# =============================================================================
# PIPELINE
# =============================================================================

class MatchPipeline:
    """
    Scans inventory for a set of compiled patterns under a ScanPolicy.

    Failures local to one pattern or one batch are logged and recorded in
    the report; they never stop the other patterns.

    Usage:
        pipeline = MatchPipeline(get_db(), AlertLedger(get_db()))
        report = pipeline.run(compiled, policy, sink)
    """

    def __init__(self, inventory: InventorySource, ledger: AlertLedger, matcher: Optional[PatternMatcher] = None):
        self.inventory = inventory
        self.ledger = ledger
        self.matcher = matcher or PatternMatcher()

    def compile_all(self, patterns: list[Pattern], report: PipelineReport) -> list[CompiledPattern]:
        """Compile stored patterns, skipping (and reporting) any that fail validation."""
        compiled = []
        for pattern in patterns:
            try:
                compiled.append(prepare(pattern))
            except ValidationError as e:
                logger.error(f"Skipping invalid pattern {pattern.id}: {e.reason}")
                report.failed_patterns.append(pattern.id)
        return compiled

    def run(
        self,
        compiled: list[CompiledPattern],
        policy: ScanPolicy,
        sink: AlertSink,
        budget: Optional[RunBudget] = None,
        report: Optional[PipelineReport] = None,
    ) -> PipelineReport:
        budget = budget or RunBudget()
        report = report or PipelineReport()
        report.patterns_checked += len(compiled)
        alerted: dict[str, set[str]] = {}

        if policy.shared_window:
            self._scan_shared(compiled, policy, sink, budget, report, alerted)
        else:
            for pattern in compiled:
                if budget.expired:
                    report.cancelled = True
                    break
                self._scan_pattern(pattern, policy, sink, budget, report, alerted)

        if report.cancelled:
            logger.warning("Run budget exhausted; stopping early with inserted alerts kept")
        return report

    def _scan_shared(self, compiled, policy, sink, budget, report, alerted) -> None:
        active = list(compiled)
        batch = 0
        while active and batch < policy.max_batches:
            if budget.expired:
                report.cancelled = True
                return
            offset = batch * policy.batch_size
            batch += 1
            try:
                rows = self.inventory.list_auctions(policy.base_query, offset, policy.batch_size)
            except InventoryReadError as e:
                logger.error(f"Inventory batch @{offset} failed, skipping it: {e}")
                report.failed_batches += 1
                continue

            report.rows_scanned += len(rows)
            active = [p for p in active if self._evaluate_batch(p, rows, sink, report, alerted)]

            if len(rows) < policy.batch_size:
                return

        if active and self._rows_remain(policy.base_query, batch * policy.batch_size):
            report.truncated = True
            logger.info(f"Shared window capped at {policy.max_batches} batches with rows remaining")

    def _scan_pattern(self, compiled, policy, sink, budget, report, alerted) -> None:
        query = build_query(compiled, policy.base_query, use_hint=policy.use_hint)
        cap = policy.batch_cap(compiled)
        if policy.use_hint and compiled.hint.usable:
            report.prefiltered = True

        for batch in range(cap):
            if budget.expired:
                report.cancelled = True
                return
            offset = batch * policy.batch_size
            try:
                rows = self.inventory.list_auctions(query, offset, policy.batch_size)
            except InventoryReadError as e:
                logger.error(f"Inventory read failed for pattern {compiled.id}: {e}")
                report.failed_patterns.append(compiled.id)
                return

            report.rows_scanned += len(rows)
            if not self._evaluate_batch(compiled, rows, sink, report, alerted):
                return
            if len(rows) < policy.batch_size:
                return

        if not self._rows_remain(query, cap * policy.batch_size):
            return

        report.truncated = True
        logger.warning(
            f"Pattern {compiled.id} hit the {cap}-batch cap with rows remaining; "
            f"results may be incomplete"
        )

    def _evaluate_batch(self, compiled, rows, sink, report, alerted) -> bool:
        """Evaluate and record one batch. Returns False if the pattern is out for this run."""
        try:
            seen = alerted.get(compiled.id)
            if seen is None:
                seen = alerted[compiled.id] = self.ledger.already_alerted(compiled.pattern.owner, compiled.id)

            try:
                found = self.matcher.evaluate(compiled, rows)
            except EvaluationTimeout as e:
                logger.warning(f"{e}; keeping {len(e.matches)} matches, skipping pattern for the rest of this run")
                report.timed_out_patterns.append(compiled.id)
                self._record_new(e.matches, seen, sink)
                return False
            self._record_new(found, seen, sink)
            return True
        except StorageError as e:
            logger.error(f"Ledger unavailable for pattern {compiled.id}: {e}")
            report.failed_patterns.append(compiled.id)
        return False

    def _record_new(self, matches, seen, sink) -> None:
        fresh = [m for m in matches if m.auction_id not in seen]
        if fresh:
            sink.record(fresh)
            seen.update(m.auction_id for m in fresh)

    def _rows_remain(self, query: AuctionQuery, offset: int) -> bool:
        """Look one row past the cap; an unreadable page counts as more rows."""
        try:
            return bool(self.inventory.list_auctions(query, offset, 1))
        except InventoryReadError as e:
            logger.warning(f"Could not look past the batch cap @{offset}: {e}")
            return True


# =============================================================================
# ENTRY POINTS
# =============================================================================

def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _build_fanout(transport: Optional[NotificationTransport]) -> NotificationFanout:
    return NotificationFanout(transport or HttpNotificationTransport())


def check_owner_patterns(
    owner: str,
    inventory: Optional[InventorySource] = None,
    store=None,
    transport: Optional[NotificationTransport] = None,
    config: Optional[MatchingConfig] = None,
    budget: Optional[RunBudget] = None,
    now: Optional[datetime] = None,
) -> CheckResult:
    """
    On-demand check of one owner's enabled patterns.

    Args:
        owner: Owner user id (already authenticated by the caller)
        inventory: Inventory source (defaults to the Supabase database)
        store: Pattern repository, ledger store and check log in one
        transport: Notification transport
        config: Matching configuration
        budget: Run deadline / cancellation
        now: Run time

    Returns:
        CheckResult; run-level storage or auth failures come back as
        CheckStatus.ERROR with a generic retry message.
    """
    config = config or get_matching_config()
    now = now or utcnow()
    store = store or get_db()
    inventory = inventory or store
    check_log: CheckLog = store

    try:
        if not check_log.claim_check(owner, now, config.check_min_interval_seconds):
            logger.info(f"Check for {owner} debounced")
            return CheckResult(status=CheckStatus.DEBOUNCED)

        patterns = store.list_enabled_patterns(owner)
        if not patterns:
            return CheckResult(status=CheckStatus.NO_MATCHES)

        ledger = AlertLedger(store, config.ledger_insert_batch)
        pipeline = MatchPipeline(inventory, ledger, PatternMatcher(config.pattern_batch_budget_ms))
        sink = AlertSink(ledger, store, _build_fanout(transport), run_at=now)
        policy = ScanPolicy(
            base_query=AuctionQuery(ending_after=now, order_by="end_time"),
            batch_size=config.scan_batch_size,
            max_batches=config.check_max_batches,
        )

        report = PipelineReport()
        compiled = pipeline.compile_all(patterns, report)
        pipeline.run(compiled, policy, sink, budget or RunBudget(config.run_timeout_seconds), report)
        sink.finish()

    except (StorageError, AuthError) as e:
        logger.error(f"Check for {owner} failed: {e}")
        return CheckResult(status=CheckStatus.ERROR, error=RETRY_MESSAGE)

    status = CheckStatus.MATCHES_FOUND if sink.new_matches else CheckStatus.NO_MATCHES
    logger.info(f"Check for {owner}: {len(sink.new_matches)} new matches across {len(patterns)} patterns")
    return CheckResult(status=status, matches=sink.new_matches, total_patterns=len(patterns))


def sweep_all_patterns(
    inventory: Optional[InventorySource] = None,
    store=None,
    transport: Optional[NotificationTransport] = None,
    config: Optional[MatchingConfig] = None,
    budget: Optional[RunBudget] = None,
    now: Optional[datetime] = None,
) -> SweepResult:
    """
    Scheduled sweep: every enabled pattern against the upcoming-auction window.

    Raises:
        StorageError: If the pattern list itself cannot be read
    """
    started = time.monotonic()
    config = config or get_matching_config()
    now = now or utcnow()
    store = store or get_db()
    inventory = inventory or store

    patterns = store.list_enabled_patterns()
    logger.info(f"Sweeping {len(patterns)} enabled patterns")
    if not patterns:
        return SweepResult(duration_ms=_elapsed_ms(started))

    ledger = AlertLedger(store, config.ledger_insert_batch)
    pipeline = MatchPipeline(inventory, ledger, PatternMatcher(config.pattern_batch_budget_ms))
    sink = AlertSink(ledger, store, _build_fanout(transport), run_at=now)
    policy = ScanPolicy(
        base_query=AuctionQuery(
            ending_after=now,
            ending_before=now + timedelta(days=config.sweep_window_days),
            order_by="end_time",
        ),
        batch_size=config.scan_batch_size,
        max_batches=config.sweep_max_batches,
        shared_window=True,
    )

    report = PipelineReport()
    compiled = pipeline.compile_all(patterns, report)
    pipeline.run(compiled, policy, sink, budget or RunBudget(config.run_timeout_seconds), report)
    fanout = sink.finish()

    result = SweepResult(
        new_matches=len(sink.new_matches),
        users_notified=fanout.users_notified if fanout else 0,
        notifications_sent=(fanout.pushes_sent + fanout.emails_sent) if fanout else 0,
        patterns_checked=report.patterns_checked,
        rows_scanned=report.rows_scanned,
        failed_patterns=report.failed_patterns,
        timed_out_patterns=report.timed_out_patterns,
        cancelled=report.cancelled,
        duration_ms=_elapsed_ms(started),
    )
    logger.info(f"Sweep complete: {result.to_dict()}")
    return result


def backfill_pattern(
    owner: str,
    pattern_id: str,
    inventory: Optional[InventorySource] = None,
    store=None,
    config: Optional[MatchingConfig] = None,
    budget: Optional[RunBudget] = None,
    now: Optional[datetime] = None,
) -> BackfillResult:
    """
    One-off scan of the whole inventory for a newly created or edited pattern.

    No notifications are sent; matches land in the ledger so later runs
    do not report them again.

    Raises:
        PatternNotFound: If the pattern is not the owner's
        ValidationError: If the pattern fails the validator
    """
    started = time.monotonic()
    config = config or get_matching_config()
    store = store or get_db()
    inventory = inventory or store

    pattern = store.get_pattern(owner, pattern_id)
    if pattern is None:
        raise PatternNotFound(pattern_id)
    compiled = prepare(pattern)

    ledger = AlertLedger(store, config.ledger_insert_batch)
    pipeline = MatchPipeline(inventory, ledger, PatternMatcher(config.pattern_batch_budget_ms))
    sink = AlertSink(ledger, store, run_at=now)
    policy = ScanPolicy(
        base_query=AuctionQuery(order_by="updated_at", descending=True),
        batch_size=config.scan_batch_size,
        max_batches=config.backfill_fallback_max_batches,
        max_batches_per_token=config.backfill_max_batches_per_token,
    )

    if not compiled.hint.usable:
        logger.info(f"Pattern {pattern_id} has no literal hint; using bounded full scan")

    report = pipeline.run([compiled], policy, sink, budget or RunBudget(config.run_timeout_seconds))
    sink.finish()

    result = BackfillResult(
        matches_found=len(sink.new_matches),
        duration_ms=_elapsed_ms(started),
        rows_scanned=report.rows_scanned,
        prefiltered=report.prefiltered,
        truncated=report.truncated,
        timed_out=bool(report.timed_out_patterns),
        cancelled=report.cancelled,
    )
    logger.info(f"Backfill for pattern {pattern_id}: {result.to_dict()}")
    return result


def purge_expired_alerts(store=None, config: Optional[MatchingConfig] = None) -> dict:
    """
    Retention cleanup of the alert ledger.

    Returns:
        Summary dict with counts
    """
    config = config or get_matching_config()
    try:
        ledger = AlertLedger(store or get_db())
        deleted = ledger.purge_expired(config.alert_retention_days)
        return {"purged": deleted, "status": "success"}
    except StorageError as e:
        logger.error(f"Alert retention cleanup failed: {e}")
        return {"purged": 0, "status": "error", "error": str(e)}


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """CLI entry point for running the pipeline."""
    import argparse

    parser = argparse.ArgumentParser(description="Pattern Alerts Pipeline")
    parser.add_argument(
        "--sweep",
        action="store_true",
        help="Sweep every enabled pattern once"
    )
    parser.add_argument(
        "--check",
        metavar="OWNER",
        help="Run an on-demand check for this owner"
    )
    parser.add_argument(
        "--backfill",
        nargs=2,
        metavar=("OWNER", "PATTERN_ID"),
        help="Backfill one pattern against the whole inventory"
    )
    parser.add_argument(
        "--purge",
        action="store_true",
        help="Delete ledger entries past the retention window"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if args.sweep:
        result = sweep_all_patterns()
        print(f"Sweep complete: {result.to_dict()}")
    elif args.check:
        result = check_owner_patterns(args.check)
        print(f"Check complete: {result.to_dict()}")
    elif args.backfill:
        result = backfill_pattern(*args.backfill)
        print(f"Backfill complete: {result.to_dict()}")
    elif args.purge:
        result = purge_expired_alerts()
        print(f"Retention cleanup: {result}")
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
