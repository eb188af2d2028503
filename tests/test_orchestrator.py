import asyncio

import pytest

from fakes import FakeBackend, FakeResponse, json_response, make_rig, receipt
from receiptsync.auth_client import HttpResponse
from receiptsync.errors import (
    AllFetchesFailedError,
    AlreadyInProgressError,
    ChannelUnavailableError,
    ServerError,
    SessionExpiredError,
    ValidationError,
)
from receiptsync.orchestrator import classify_import_failure

START, END = "2024-01-01", "2024-03-31"


def backend_with(barcodes, fail=(), **extra):
    return FakeBackend(
        receipts=[{"transactionBarcode": b} for b in barcodes],
        details={b: receipt(b, **extra) for b in barcodes},
        fail=set(fail),
    )


def progress_of(rig):
    return [m["progress"] for m in rig.messages]


class TestClassifyImportFailure:
    def test_validation_message(self):
        resp = HttpResponse(
            422,
            {"content-type": "application/json"},
            b'{"message": "receipts.0.total is required"}',
        )
        error = classify_import_failure(resp)
        assert isinstance(error, ValidationError)
        assert error.message == (
            "Validation failed: receipts.0.total is required"
        )

    def test_server_message(self):
        resp = HttpResponse(
            500, {"content-type": "application/json"}, b'{"message": "boom"}'
        )
        error = classify_import_failure(resp)
        assert isinstance(error, ServerError)
        assert error.message == "boom"

    def test_html_body(self):
        resp = HttpResponse(502, {"content-type": "text/html"}, b"<html>")
        error = classify_import_failure(resp)
        assert isinstance(error, ServerError)
        assert error.message == "Server error: 502"

    def test_422_without_message_is_server_error(self):
        resp = HttpResponse(422, {"content-type": "application/json"}, b"{}")
        assert isinstance(classify_import_failure(resp), ServerError)

    def test_invalid_json_body(self):
        resp = HttpResponse(500, {"content-type": "application/json"}, b"{")
        assert classify_import_failure(resp).message == "Server error: 500"


@pytest.mark.asyncio
class TestSyncRun:
    async def test_happy_path(self):
        rig = make_rig(
            backend_with(["111", "222"]),
            [json_response(200, {"imported": 2, "duplicates": 0})],
        )
        result = await rig.orchestrator.start(START, END)

        assert result.success is True
        assert result.imported == 2
        assert result.fetch_failed == 0
        assert rig.backend.calls[0] == ("list", "01/01/2024", "03/31/2024")

        (call,) = rig.session.calls
        assert call.method == "POST"
        assert call.url == "https://inventory.test/api/receipts/import"
        assert [r["transactionBarcode"] for r in call.json["receipts"]] == [
            "111",
            "222",
        ]

    async def test_import_body_is_filtered(self):
        rig = make_rig(
            backend_with(["111"], internalNotes="secret", membershipId="9"),
            [json_response(200, {"imported": 1})],
        )
        await rig.orchestrator.start(START, END)

        sent = rig.session.calls[0].json["receipts"][0]
        assert "internalNotes" not in sent
        assert "membershipId" not in sent
        assert sent["total"] == 42.5
        assert sent["itemArray"][0]["itemDescription01"] == "ORGANIC EGGS"

    async def test_empty_listing_skips_fetch_and_import(self):
        rig = make_rig(FakeBackend(receipts=[]))
        result = await rig.orchestrator.start(START, END)

        assert result.success is True
        assert result.count == 0
        assert result.message == "No receipts found for this date range."
        assert [c[0] for c in rig.backend.calls] == ["list"]
        assert rig.session.calls == []

    async def test_all_fetches_failed(self):
        rig = make_rig(backend_with(["1", "2", "3"], fail={"1", "2", "3"}))

        with pytest.raises(AllFetchesFailedError) as exc_info:
            await rig.orchestrator.start(START, END)

        assert exc_info.value.failed_ids == ["1", "2", "3"]
        assert "all 3 receipt(s)" in exc_info.value.message
        assert rig.session.calls == []
        assert rig.orchestrator.in_progress is False

    async def test_partial_failure_imports_the_rest(self):
        rig = make_rig(
            backend_with(["1", "2", "3"], fail={"2"}),
            [json_response(200, {"imported": 2})],
        )
        result = await rig.orchestrator.start(START, END)

        assert len(rig.session.calls) == 1
        receipts = rig.session.calls[0].json["receipts"]
        assert [r["transactionBarcode"] for r in receipts] == ["1", "3"]
        assert result.imported == 2
        assert result.fetch_failed == 1

    async def test_listing_entry_without_barcode_is_a_fetch_failure(self):
        backend = FakeBackend(
            receipts=[{"transactionBarcode": "1"}, {"barcode": "2"}],
            details={"1": receipt("1")},
        )
        rig = make_rig(backend, [json_response(200, {"imported": 1})])

        result = await rig.orchestrator.start(START, END)

        assert result.imported == 1
        assert result.fetch_failed == 1
        assert [c for c in backend.calls if c[0] == "detail"] == [
            ("detail", "1")
        ]
        receipts = rig.session.calls[0].json["receipts"]
        assert [r["transactionBarcode"] for r in receipts] == ["1"]

    async def test_listing_without_any_barcode(self):
        backend = FakeBackend(receipts=[{"barcode": "1"}, "junk"])
        rig = make_rig(backend)

        with pytest.raises(AllFetchesFailedError) as exc_info:
            await rig.orchestrator.start(START, END)
        assert exc_info.value.failed_ids == ["#1", "#2"]
        assert rig.session.calls == []

    async def test_empty_detail_counts_as_failure(self):
        backend = backend_with(["1", "2"])
        backend.details["2"] = {}
        rig = make_rig(backend, [json_response(200, {"imported": 1})])

        result = await rig.orchestrator.start(START, END)
        assert result.fetch_failed == 1

    async def test_imported_defaults_to_submitted_count(self):
        rig = make_rig(
            backend_with(["1", "2"]),
            [json_response(200, {"errors": [{"line": 1}]})],
        )
        result = await rig.orchestrator.start(START, END)

        assert result.imported == 2
        assert result.errors == 1
        assert result.duplicates == 0

    async def test_fetches_are_sequential_and_rate_limited(self):
        rig = make_rig(
            backend_with(["1", "2", "3", "4"]),
            [json_response(200, {"imported": 4})],
        )
        await rig.orchestrator.start(START, END)

        details = [c[1] for c in rig.backend.calls if c[0] == "detail"]
        assert details == ["1", "2", "3", "4"]
        assert rig.sleep.calls == [1.0, 1.0, 1.0]

    async def test_single_record_never_sleeps(self):
        rig = make_rig(
            backend_with(["1"]), [json_response(200, {"imported": 1})]
        )
        await rig.orchestrator.start(START, END)
        assert rig.sleep.calls == []

    async def test_progress_sequence(self):
        rig = make_rig(
            backend_with(["1", "2", "3"]),
            [json_response(200, {"imported": 3})],
        )
        await rig.orchestrator.start(START, END)

        progress = progress_of(rig)
        assert progress[0]["phase"] == "listing"
        fetching = [p for p in progress if p and p["phase"] == "fetching"]
        assert [p["current"] for p in fetching] == [1, 2, 3]
        assert {p["total"] for p in fetching} == {3}
        assert fetching[0]["message"] == "Fetching receipt 1 of 3..."
        assert progress[-2]["phase"] == "importing"
        assert progress[-1] is None

    async def test_cleanup_after_failure(self):
        rig = make_rig(FakeBackend(), tab=None)

        with pytest.raises(ChannelUnavailableError):
            await rig.orchestrator.start(START, END)

        assert rig.orchestrator.in_progress is False
        assert rig.orchestrator.progress is None
        assert rig.messages[-1] == {"type": "progress", "progress": None}

    async def test_import_validation_error(self):
        rig = make_rig(
            backend_with(["1"]),
            [json_response(422, {"message": "total must be a number"})],
        )
        with pytest.raises(ValidationError, match="total must be a number"):
            await rig.orchestrator.start(START, END)
        assert rig.orchestrator.in_progress is False

    async def test_import_session_expired(self):
        rig = make_rig(
            backend_with(["1"]), [FakeResponse(401), FakeResponse(401)]
        )
        with pytest.raises(SessionExpiredError):
            await rig.orchestrator.start(START, END)
        assert await rig.store.get() is None

    async def test_import_invalid_json(self):
        rig = make_rig(
            backend_with(["1"]),
            [FakeResponse(200, b"not json", {"content-type": "text/plain"})],
        )
        with pytest.raises(ServerError):
            await rig.orchestrator.start(START, END)


@pytest.mark.asyncio
class TestSingleFlight:
    async def test_second_start_rejected_without_touching_state(self):
        backend = backend_with(["1", "2"])
        backend.gate = asyncio.Event()
        rig = make_rig(backend, [json_response(200, {"imported": 2})])

        first = asyncio.create_task(rig.orchestrator.start(START, END))
        for _ in range(100):
            if rig.orchestrator.progress and (
                rig.orchestrator.progress.phase.value == "fetching"
            ):
                break
            await asyncio.sleep(0)

        before = rig.orchestrator.progress
        published = len(rig.messages)

        with pytest.raises(AlreadyInProgressError):
            await rig.orchestrator.start(START, END)

        assert rig.orchestrator.in_progress is True
        assert rig.orchestrator.progress is before
        assert len(rig.messages) == published

        backend.gate.set()
        result = await first
        assert result.imported == 2
        assert rig.orchestrator.in_progress is False

    async def test_can_run_again_after_finish(self):
        rig = make_rig(
            backend_with(["1"]),
            [
                json_response(200, {"imported": 1}),
                json_response(200, {"imported": 0, "duplicates": 1}),
            ],
        )
        await rig.orchestrator.start(START, END)
        result = await rig.orchestrator.start(START, END)
        assert result.duplicates == 1
