from receiptsync.errors import (
    AllFetchesFailedError,
    ChannelTimeoutError,
    ChannelUnavailableError,
    ErrorKind,
    NetworkError,
    PerRecordFetchFailure,
    ServerError,
    SyncError,
    UnknownActionError,
    ValidationError,
)


class TestSyncError:
    def test_to_dict(self):
        assert ChannelUnavailableError().to_dict() == {
            "kind": "channel_unavailable",
            "message": "Please open the retailer site in a browser tab.",
        }

    def test_custom_message(self):
        error = NetworkError("DNS lookup failed")
        assert error.message == "DNS lookup failed"
        assert str(error) == "DNS lookup failed"
        assert error.kind is ErrorKind.NETWORK_ERROR

    def test_base_is_internal(self):
        assert SyncError().to_dict()["kind"] == "internal_error"

    def test_kinds_are_unique(self):
        values = [kind.value for kind in ErrorKind]
        assert len(values) == len(set(values))


class TestErrorData:
    def test_all_fetches_failed(self):
        error = AllFetchesFailedError(["1", "2", "3"])
        assert error.failed_ids == ["1", "2", "3"]
        assert error.message.startswith(
            "Failed to fetch details for all 3 receipt(s)."
        )

    def test_per_record(self):
        error = PerRecordFetchFailure("111", "timeout")
        assert error.record_id == "111"
        assert error.message == "Failed to fetch record 111: timeout"

    def test_validation(self):
        error = ValidationError("bad total")
        assert error.status == 422
        assert error.message == "Validation failed: bad total"

    def test_server(self):
        assert ServerError(500).message == "Server error: 500"
        assert ServerError(503, "maintenance").message == "maintenance"

    def test_timeout(self):
        error = ChannelTimeoutError("fetchRecords", 30.0)
        assert error.action == "fetchRecords"
        assert "30s" in error.message

    def test_unknown_action(self):
        assert UnknownActionError("dance").message == "Unknown action: dance"
