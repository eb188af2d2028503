"""Receipt sync orchestration.

One run walks ``idle -> listing -> fetching (i of N) -> importing -> idle``:

1. Ask the retailer page for the receipts in the date range.
2. Fetch each receipt's details one at a time, pausing between fetches so
   the retailer's own rate limits are respected (the page script has no
   queue of its own). A receipt that fails is recorded and skipped.
3. Strip every receipt down to the documented fields and submit the batch
   to the inventory service in a single request.

Only one run may be in flight. A second ``start`` is rejected, not queued.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from receiptsync.auth_client import AuthenticatedClient, HttpResponse, Sleep
from receiptsync.channel import FetchRecordDetail, FetchRecords, RemoteChannel
from receiptsync.config import SyncConfig
from receiptsync.errors import (
    AllFetchesFailedError,
    AlreadyInProgressError,
    PerRecordFetchFailure,
    ServerError,
    SyncError,
    ValidationError,
)
from receiptsync.logging_config import get_logger
from receiptsync.models import (
    ImportResult,
    Phase,
    ProgressSnapshot,
    RecordSummary,
    SyncResult,
    filter_record_detail,
)
from receiptsync.progress import ProgressPublisher

logger = get_logger("orchestrator")

# status the inventory service uses for request validation failures
VALIDATION_STATUS = 422


@dataclass
class SyncState:
    """Process-wide sync state. Mutated only by SyncOrchestrator."""

    in_progress: bool = False
    progress: ProgressSnapshot | None = None


def classify_import_failure(resp: HttpResponse) -> SyncError:
    """Map a non-2xx import response onto ValidationError or ServerError."""
    body: Any = None
    if resp.is_json:
        try:
            body = resp.json()
        except ValueError:
            body = None

    message = body.get("message") if isinstance(body, dict) else None
    if message and resp.status == VALIDATION_STATUS:
        return ValidationError(str(message), status=resp.status)
    if message:
        return ServerError(resp.status, str(message))
    return ServerError(resp.status)


class SyncOrchestrator:
    """Drives one receipt sync at a time.

    Usage:
        orchestrator = SyncOrchestrator(config, channel, client, publisher)
        result = await orchestrator.start("2024-01-01", "2024-03-31")
    """

    def __init__(
        self,
        config: SyncConfig,
        channel: RemoteChannel,
        client: AuthenticatedClient,
        publisher: ProgressPublisher,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self.channel = channel
        self.client = client
        self.publisher = publisher
        self._sleep = sleep
        self._state = SyncState()

    @property
    def in_progress(self) -> bool:
        return self._state.in_progress

    @property
    def progress(self) -> ProgressSnapshot | None:
        return self._state.progress

    def _publish(self, snapshot: ProgressSnapshot | None) -> None:
        self._state.progress = snapshot
        self.publisher.publish(snapshot)

    async def start(self, start_date: str, end_date: str) -> SyncResult:
        """Run a full sync for ``[start_date, end_date]`` (ISO dates).

        Raises:
            AlreadyInProgressError: Another run is active (state untouched)
            AllFetchesFailedError: Every detail fetch failed
            SyncError: Channel, auth or import failures
        """
        # check and set with no await in between: this is the lock
        if self._state.in_progress:
            raise AlreadyInProgressError()
        self._state.in_progress = True
        self._state.progress = None

        logger.info("sync started: %s to %s", start_date, end_date)
        try:
            return await self._run(start_date, end_date)
        finally:
            self._state.in_progress = False
            self._state.progress = None
            self.publisher.publish(None)

    async def _run(self, start_date: str, end_date: str) -> SyncResult:
        self._publish(
            ProgressSnapshot(
                phase=Phase.LISTING,
                message="Fetching receipt list from the retailer...",
            )
        )
        summaries = await self.channel.call(FetchRecords(start_date, end_date))

        if not summaries:
            logger.info("no receipts found for %s to %s", start_date, end_date)
            return SyncResult(
                success=True,
                count=0,
                message="No receipts found for this date range.",
            )

        details, failures = await self._fetch_details(summaries)

        if not details and failures:
            raise AllFetchesFailedError([f.record_id for f in failures])

        self._publish(
            ProgressSnapshot(
                phase=Phase.IMPORTING,
                message="Sending receipts to the inventory service...",
            )
        )
        filtered = [filter_record_detail(d) for d in details]
        result = await self._submit(filtered)

        logger.info(
            "sync complete: imported=%s duplicates=%d skipped=%d "
            "errors=%d fetch_failed=%d",
            result.imported,
            result.duplicates,
            result.skipped,
            result.errors,
            len(failures),
        )
        return SyncResult(
            success=True,
            imported=(
                result.imported
                if result.imported is not None
                else len(details)
            ),
            duplicates=result.duplicates,
            skipped=result.skipped,
            errors=result.errors,
            fetch_failed=len(failures),
        )

    async def _fetch_details(
        self, summaries: list[RecordSummary]
    ) -> tuple[list[dict[str, Any]], list[PerRecordFetchFailure]]:
        """Fetch receipt details strictly in order, one at a time."""
        details: list[dict[str, Any]] = []
        failures: list[PerRecordFetchFailure] = []
        total = len(summaries)

        for i, summary in enumerate(summaries):
            barcode = summary.transaction_barcode
            self._publish(
                ProgressSnapshot(
                    phase=Phase.FETCHING,
                    current=i + 1,
                    total=total,
                    message=f"Fetching receipt {i + 1} of {total}...",
                )
            )

            if not barcode:
                logger.warning("listing entry %d has no barcode", i + 1)
                failures.append(
                    PerRecordFetchFailure(f"#{i + 1}", "missing barcode")
                )
            else:
                await self._fetch_one(barcode, details, failures)

            if i < total - 1:
                await self._sleep(self.config.rate_limit_delay)

        return details, failures

    async def _fetch_one(
        self,
        barcode: str,
        details: list[dict[str, Any]],
        failures: list[PerRecordFetchFailure],
    ) -> None:
        try:
            detail = await self.channel.call(FetchRecordDetail(barcode))
        except SyncError as e:
            logger.warning("failed to fetch receipt %s: %s", barcode, e)
            failures.append(PerRecordFetchFailure(barcode, e.message))
            return

        if detail:
            details.append(detail)
        else:
            logger.warning("receipt %s came back empty", barcode)
            failures.append(PerRecordFetchFailure(barcode, "empty"))

    async def _submit(self, receipts: list[dict[str, Any]]) -> ImportResult:
        resp = await self.client.request(
            self.config.import_url,
            method="POST",
            json={"receipts": receipts},
        )
        if not resp.ok:
            error = classify_import_failure(resp)
            logger.warning(
                "import rejected: status=%d kind=%s",
                resp.status,
                error.kind.value,
            )
            raise error

        try:
            body = resp.json()
        except ValueError as e:
            raise ServerError(
                resp.status, "Inventory service returned invalid JSON"
            ) from e
        return ImportResult.model_validate(
            body if isinstance(body, dict) else {}
        )
