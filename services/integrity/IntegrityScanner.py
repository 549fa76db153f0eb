"""Background reconciliation of the indexes against the document store.

After the host signals readiness and a settle delay has passed, the scanner
diffs the store's authoritative id list against both indexes, re-indexes the
documents that are missing (plus those whose last indexing run failed) in
small batches and purges index entries of documents the store no longer lists.
Individual failures are logged and counted, never raised. An index that
cannot answer the reconciliation queries ends the pass with an error, so
nothing is purged or skipped on the word of one index alone.
"""

import asyncio
from datetime import datetime, timezone

from services.indexing.IndexingService import IndexingService
from services.query.QueryService import QueryService
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.exceptions import RetrievalError
from shared.helper.HelperConfig import HelperConfig
from shared.models.indexing import IndexStatus, ScanReport, ScanState


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class IntegrityScanner:
    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        indexing_service: IndexingService,
        query_service: QueryService,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._indexing = indexing_service
        self._query = query_service

        self.enabled = helper_config.get_bool_val("SCAN_ENABLED", default=True)
        self.settle_delay = float(helper_config.get_number_val("SCAN_SETTLE_DELAY", default=5))
        self.interval = float(helper_config.get_number_val("SCAN_INTERVAL", default=0))
        self.batch_size = max(1, int(helper_config.get_number_val("SCAN_BATCH_SIZE", default=5)))
        self.yield_seconds = float(helper_config.get_number_val("SCAN_YIELD_SECONDS", default=0.1))

        self.state = ScanState.IDLE
        self.last_report: ScanReport | None = None

    ##########################################
    ############### SCHEDULING ###############
    ##########################################

    async def run_after_settle(self, ready: asyncio.Event | None = None) -> None:
        """Wait for readiness and the settle delay, then scan once or every SCAN_INTERVAL seconds.

        Args:
            ready (asyncio.Event | None): Set by the host once startup I/O is done.
        """
        if not self.enabled:
            self.logging.info("Integrity scanner disabled.")
            return
        try:
            if ready is not None:
                await ready.wait()
            await asyncio.sleep(self.settle_delay)
            while self.state != ScanState.STOPPED:
                await self.do_scan()
                if self.interval <= 0:
                    break
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            self.stop()
            raise

    def stop(self) -> None:
        """Mark the scanner as terminated. Indexing is atomic per document, so interruption is safe."""
        self.state = ScanState.STOPPED

    ##########################################
    ################# SCAN ###################
    ##########################################

    async def do_scan(self) -> ScanReport:
        """Run one integrity scan.

        Returns:
            ScanReport: Counters of the pass. If a scan is already running, or the
                scanner is stopped, nothing is done and a report with an error is returned.
        """
        if self.state != ScanState.IDLE:
            self.logging.info("Integrity scan skipped, scanner is %s.", self.state.value)
            return ScanReport(state=self.state, error=f"scanner is {self.state.value}")

        self.state = ScanState.SCANNING
        report = ScanReport(state=ScanState.SCANNING, started_at=_now())
        self.logging.info("Starting integrity scan...")
        try:
            store_ids = await self._store.list_all_ids()
            report.total_ids = len(store_ids)

            await self._purge_orphans(set(store_ids), report)

            missing = await self._query.check_missing(store_ids, require_all=True)
            known = set(store_ids)
            failed = [doc_id for doc_id in self._indexing.get_failed_doc_ids() if doc_id in known]
            to_index = list(dict.fromkeys([*missing, *failed]))
            report.missing = len(to_index)

            if to_index:
                self._set_state(ScanState.REINDEXING_MISSING, report)
                self.logging.info("Integrity scan: re-indexing %d of %d document(s).", len(to_index), len(store_ids))
                await self._reindex(to_index, report)
        except RetrievalError as e:
            report.error = e.message
            self.logging.error("Integrity scan aborted: %s", e.message)
        finally:
            if self.state != ScanState.STOPPED:
                self.state = ScanState.IDLE
            report.state = self.state
            report.finished_at = _now()
            self.last_report = report

        self.logging.info(
            "Integrity scan complete: %d ids, %d missing, %d attempted, %d succeeded, %d skipped, %d failed, %d orphan(s) removed.",
            report.total_ids, report.missing, report.attempted, report.succeeded,
            report.skipped, report.failed, report.orphans_removed,
            color="green" if report.error is None and report.failed == 0 else "yellow",
        )
        return report

    async def _reindex(self, doc_ids: list[str], report: ScanReport) -> None:
        for start in range(0, len(doc_ids), self.batch_size):
            if self.state == ScanState.STOPPED:
                return
            batch = doc_ids[start:start + self.batch_size]
            result = await self._indexing.index_batch(batch)
            report.attempted += len(batch)
            for item in result.results:
                if item.status == IndexStatus.INDEXED:
                    report.succeeded += 1
                elif item.status in (IndexStatus.NO_CONTENT, IndexStatus.NOT_FOUND):
                    report.skipped += 1
                else:
                    report.failed += 1
                    self.logging.warning("Integrity scan: document id=%s failed (%s): %s", item.doc_id, item.status.value, item.error)
            # yield so queries and other tasks keep running between batches
            await asyncio.sleep(self.yield_seconds)

    async def _purge_orphans(self, store_ids: set[str], report: ScanReport) -> None:
        """Delete index entries of documents the store no longer lists (e.g. soft-deleted)."""
        indexed_ids = await self._query.list_indexed_doc_ids(require_all=True)
        if not store_ids and indexed_ids:
            self.logging.warning(
                "Integrity scan: the store listed no documents but the indexes hold %d. Not purging.", len(indexed_ids)
            )
            return
        orphan_ids = sorted(indexed_ids - store_ids)
        if not orphan_ids:
            return
        self.logging.info("Integrity scan: removing %d orphaned document(s) from the indexes.", len(orphan_ids))
        for doc_id in orphan_ids:
            result = await self._indexing.delete_document(doc_id)
            if result.success:
                report.orphans_removed += 1
            else:
                self.logging.warning("Integrity scan: could not remove orphan id=%s: %s", doc_id, "; ".join(result.errors))

    def _set_state(self, state: ScanState, report: ScanReport) -> None:
        if self.state != ScanState.STOPPED:
            self.state = state
            report.state = state
