"""Scan orchestrator wiring together fetching, extraction, dedup, persistence and notification."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Iterable

import structlog

from .config import TrackedTarget
from .engine import Extractor, Fetcher, ThreadPoolManager, compute_stats, partition
from .errors import ScanError
from .infra import ListingStore
from .logging_conf import target_logger
from .notify import Notifier
from .records import ScanOutcome, ScanState


class ScanOrchestrator:
    """Run the per-target scan pipeline and fan a cycle out over the worker pool."""

    def __init__(
        self,
        fetcher: Fetcher,
        extractor: Extractor,
        store: ListingStore,
        notifier: Notifier,
        thread_pool: ThreadPoolManager | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.extractor = extractor
        self.store = store
        self.notifier = notifier
        self.thread_pool = thread_pool or ThreadPoolManager()
        self.logger = logger or structlog.get_logger("listing_watch").bind(component="orchestrator")
        self._target_locks: defaultdict[int, Lock] = defaultdict(Lock)
        self._locks_guard = Lock()

    # ------------------------------------------------------------------
    def run_scan_cycle(self, targets: Iterable[TrackedTarget]) -> list[ScanOutcome]:
        """Scan every target; outcomes come back in input order and never raise."""

        targets = list(targets)
        if not targets:
            self.logger.info("scan_cycle_empty")
            return []
        self.logger.info("scan_cycle_started", targets=len(targets))
        executor = self.thread_pool.get()
        futures = [executor.submit(self.run_scan_for_one, target) for target in targets]
        outcomes = [future.result() for future in futures]
        failed = sum(1 for outcome in outcomes if not outcome.ok)
        self.logger.info(
            "scan_cycle_finished",
            targets=len(outcomes),
            failed=failed,
            new_found=sum(outcome.new_found for outcome in outcomes),
        )
        return outcomes

    def run_scan_for_one(self, target: TrackedTarget) -> ScanOutcome:
        with self._lock_for(target.id):
            return self._scan(target)

    def close(self) -> None:
        self.thread_pool.shutdown(wait=True)
        self.fetcher.close()

    # ------------------------------------------------------------------
    def _lock_for(self, target_id: int) -> Lock:
        with self._locks_guard:
            return self._target_locks[target_id]

    def _target_log(self, target: TrackedTarget) -> structlog.BoundLogger:
        try:
            return target_logger(target.name)
        except OSError as exc:
            self.logger.warning("target_log_unavailable", target=target.name, error=str(exc))
            return self.logger.bind(target=target.name)

    def _scan(self, target: TrackedTarget) -> ScanOutcome:
        log = self._target_log(target)
        outcome = ScanOutcome(target_id=target.id, target_name=target.name)
        log.info("scan_started", url=target.url)
        try:
            outcome.state = ScanState.FETCHING
            response = self.fetcher.fetch(target.url)

            outcome.state = ScanState.EXTRACTING
            records = self.extractor.extract(response.text)
            outcome.total_scraped = len(records)

            outcome.state = ScanState.DEDUPLICATING
            seen = self.store.get_seen_tokens(target.id)
            first_scan = not seen
            split = partition(records, seen)
            outcome.new_found = len(split.new)
            if split.repeated:
                log.debug("repeated_tokens_dropped", repeated=split.repeated)

            outcome.state = ScanState.PERSISTING
            for record in split.new:
                self.store.append_seen_listing(target.id, record)
            outcome.stats = compute_stats(self.store.get_all_listings(target.id))

            outcome.state = ScanState.FILTERING
            if target.max_price_per_sqm is not None:
                outcome.below_threshold = self.store.get_listings_below_threshold(
                    target.id, target.max_price_per_sqm
                )

            outcome.state = ScanState.NOTIFYING
            result = self.notifier.notify(target, split.new, first_scan=first_scan)
            outcome.notification_status = result.status
            outcome.notified_listings = list(result.notified)
            outcome.notified = len(result.notified)
            outcome.state = ScanState.DONE
        except ScanError as exc:
            self._fail(target, outcome, exc, exc.kind, log)
        except Exception as exc:  # noqa: BLE001
            self._fail(target, outcome, exc, "unexpected", log)
        else:
            log.info(
                "scan_finished",
                total_scraped=outcome.total_scraped,
                new_found=outcome.new_found,
                notified=outcome.notified,
                notification_status=outcome.notification_status,
                first_scan=first_scan,
            )
        return outcome

    def _fail(
        self,
        target: TrackedTarget,
        outcome: ScanOutcome,
        exc: BaseException,
        kind: str,
        log: structlog.BoundLogger,
    ) -> None:
        outcome.failed_at = outcome.state
        outcome.state = ScanState.FAILED
        outcome.error = str(exc) or exc.__class__.__name__
        outcome.failure_kind = kind
        log_method = log.exception if kind == "unexpected" else log.error
        log_method(
            "scan_failed",
            failure_kind=kind,
            failed_at=outcome.failed_at.value,
            error=outcome.error,
        )
        self.notifier.alert_failure(target, outcome.error)


__all__ = ["ScanOrchestrator"]
