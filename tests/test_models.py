from fakes import receipt
from receiptsync.models import (
    ImportResult,
    RecordSummary,
    SyncResult,
    filter_record_detail,
)


class TestFilterRecordDetail:
    def test_drops_unknown_fields(self):
        raw = receipt("111", internalNotes="x", membershipNumber="42")
        raw["itemArray"][0]["couponCode"] = "SAVE"

        filtered = filter_record_detail(raw)

        assert "internalNotes" not in filtered
        assert "membershipNumber" not in filtered
        assert "couponCode" not in filtered["itemArray"][0]
        assert filtered["transactionBarcode"] == "111"
        assert filtered["itemArray"][0]["itemNumber"] == "1234"

    def test_missing_fields_are_omitted(self):
        filtered = filter_record_detail({"transactionBarcode": "111"})
        assert filtered == {"transactionBarcode": "111", "itemArray": []}

    def test_keeps_item_order(self):
        raw = {
            "itemArray": [
                {"itemNumber": "a"},
                {"itemNumber": "b"},
                {"itemNumber": "c"},
            ]
        }
        items = filter_record_detail(raw)["itemArray"]
        assert [i["itemNumber"] for i in items] == ["a", "b", "c"]

    def test_null_item_array(self):
        assert filter_record_detail({"itemArray": None})["itemArray"] == []


class TestImportResult:
    def test_full_body(self):
        result = ImportResult.model_validate(
            {"imported": 3, "duplicates": 1, "skipped": 2, "errors": 0}
        )
        assert (result.imported, result.duplicates, result.skipped) == (3, 1, 2)

    def test_missing_keys(self):
        result = ImportResult.model_validate({})
        assert result.imported is None
        assert result.duplicates == 0
        assert result.errors == 0

    def test_error_list_counts(self):
        result = ImportResult.model_validate(
            {"errors": [{"index": 0}, {"index": 4}], "skipped": None}
        )
        assert result.errors == 2
        assert result.skipped == 0


class TestWire:
    def test_record_summary_accepts_camel_case(self):
        summary = RecordSummary.model_validate({"transactionBarcode": "9"})
        assert summary.transaction_barcode == "9"

    def test_sync_result_camel_case(self):
        result = SyncResult(imported=2, fetch_failed=1)
        assert result.to_wire(exclude_none=True) == {
            "success": True,
            "imported": 2,
            "fetchFailed": 1,
        }
