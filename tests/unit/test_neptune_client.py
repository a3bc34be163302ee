"""Unit tests for the Neptune Streams HTTP client."""

from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from graphstream.config.settings import NeptuneSettings
from graphstream.converter import RecordConversionError
from graphstream.errors import ResumeTokenError, StreamSourceError
from graphstream.source import NeptuneStreamClient, StreamCursor, StreamPosition


def response(status_code=200, body=None, text=""):
    mock = Mock(spec=requests.Response)
    mock.status_code = status_code
    mock.text = text
    if body is None:
        mock.json.side_effect = ValueError("no json")
    else:
        mock.json.return_value = body
    if status_code >= 400:
        mock.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return mock


def page(*positions):
    return {
        "records": [
            {"eventId": {"commitNum": c, "opNum": o}, "op": "ADD", "data": {}}
            for c, o in positions
        ],
        "totalRecords": len(positions),
    }


class TestStreamPosition:
    """Test resume token encoding."""

    def test_token_round_trip(self):
        """Test positions encode as commit:op."""
        assert StreamPosition(12, 3).to_token() == "12:3"
        assert StreamPosition.from_token("12:3") == StreamPosition(12, 3)

    @pytest.mark.parametrize("token", ["12", "a:b", "1:2:3"])
    def test_invalid_token(self, token):
        """Test malformed tokens raise ResumeTokenError."""
        with pytest.raises(ResumeTokenError, match="Invalid resume token"):
            StreamPosition.from_token(token)


class TestNeptuneStreamClient:
    """Test NeptuneStreamClient."""

    @pytest.fixture
    def session(self):
        return MagicMock(spec=requests.Session)

    @pytest.fixture
    def client(self, session):
        return NeptuneStreamClient("https://neptune:8182/", fetch_limit=50, session=session)

    def test_from_settings(self):
        """Test the client is configured from Neptune settings."""
        settings = NeptuneSettings(host="db.example", port=8182, stream_type="sparql", fetch_limit=10)
        client = NeptuneStreamClient.from_settings(settings)
        assert client.stream_url == "https://db.example:8182/sparql/stream"
        assert client.fetch_limit == 10
        client.close()

    def test_fetch_from_start(self, client, session):
        """Test fetching without a position uses TRIM_HORIZON."""
        session.get.return_value = response(body=page((1, 1)))
        client.fetch(None)
        session.get.assert_called_once_with(
            "https://neptune:8182/propertygraph/stream",
            params={"limit": 50, "iteratorType": "TRIM_HORIZON"},
            timeout=30
        )

    def test_fetch_after_position(self, client, session):
        """Test fetching after a position uses AFTER_SEQUENCE_NUMBER."""
        session.get.return_value = response(body=page())
        client.fetch(StreamPosition(12, 3))
        params = session.get.call_args.kwargs["params"]
        assert params["iteratorType"] == "AFTER_SEQUENCE_NUMBER"
        assert (params["commitNum"], params["opNum"]) == (12, 3)

    def test_expired_position(self, client, session):
        """Test an expired position raises ResumeTokenError."""
        session.get.return_value = response(
            400, {"code": "ExpiredStreamException", "detailedMessage": "too old"}
        )
        with pytest.raises(ResumeTokenError, match="too old"):
            client.fetch(StreamPosition(1, 1))

    def test_records_not_found_is_empty_page(self, client, session):
        """Test no records after the position yields an empty page."""
        session.get.return_value = response(404, {"code": "StreamRecordsNotFoundException"})
        assert client.fetch(StreamPosition(1, 1))["records"] == []

    def test_client_error(self, client, session):
        """Test other 4xx responses raise StreamSourceError."""
        session.get.return_value = response(
            400, {"code": "InvalidParameterException", "message": "bad limit"}
        )
        with pytest.raises(StreamSourceError) as exc_info:
            client.fetch(None)
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "InvalidParameterException"

    def test_server_error_propagates(self, client, session):
        """Test 5xx responses surface as transport errors."""
        session.get.return_value = response(503, text="unavailable")
        with pytest.raises(requests.HTTPError):
            client.fetch(None)

    def test_connection_error_retried(self, client, session):
        """Test dropped connections are retried before the response is used."""
        session.get.side_effect = [requests.ConnectionError("reset"), response(body=page((1, 1)))]
        with patch.object(NeptuneStreamClient._get.retry, "sleep"):
            result = client.fetch(None)
        assert len(result["records"]) == 1
        assert session.get.call_count == 2

    def test_connection_error_reraised_after_retries(self, client, session):
        """Test persistent transport failures surface unwrapped."""
        session.get.side_effect = requests.ConnectionError("reset")
        with patch.object(NeptuneStreamClient._get.retry, "sleep"):
            with pytest.raises(requests.ConnectionError):
                client.fetch(None)
        assert session.get.call_count == 3

    def test_context_manager_closes_session(self, client, session):
        """Test leaving the context closes the session."""
        with client:
            pass
        session.close.assert_called_once()


class TestStreamCursor:
    """Test StreamCursor."""

    def test_open_cursor_with_token(self):
        """Test the cursor starts after the resume token position."""
        client = NeptuneStreamClient("http://neptune:8182", session=MagicMock(spec=requests.Session))
        assert client.open_cursor("5:2").position == StreamPosition(5, 2)
        assert client.open_cursor(None).position is None

    def test_open_cursor_invalid_token(self):
        """Test a malformed resume token is rejected when opening."""
        client = NeptuneStreamClient("http://neptune:8182", session=MagicMock(spec=requests.Session))
        with pytest.raises(ResumeTokenError):
            client.open_cursor("garbage")

    def test_try_next_pages_and_advances(self):
        """Test records are handed out one at a time with advancing tokens."""
        client = Mock(spec=NeptuneStreamClient)
        client.fetch.side_effect = [page((1, 1), (1, 2)), page(), page((2, 1))]
        cursor = StreamCursor(client, None)

        assert cursor.try_next().resume_token == "1:1"
        assert cursor.try_next().resume_token == "1:2"
        assert cursor.try_next() is None
        record = cursor.try_next()
        assert record.resume_token == "2:1"
        assert record.data["eventId"] == {"commitNum": 2, "opNum": 1}

        positions = [c.args[0] for c in client.fetch.call_args_list]
        assert positions == [None, StreamPosition(1, 2), StreamPosition(1, 2)]

    def test_record_without_event_id_dropped(self):
        """Test a record without eventId is dropped and the position is kept."""
        client = Mock(spec=NeptuneStreamClient)
        body = page((1, 1), (1, 2))
        body["records"].insert(1, {"op": "ADD", "data": {}})
        client.fetch.return_value = body
        cursor = StreamCursor(client, None)

        assert cursor.try_next().resume_token == "1:1"
        with pytest.raises(RecordConversionError, match="no valid eventId"):
            cursor.try_next()
        assert cursor.position == StreamPosition(1, 1)
        assert cursor.try_next().resume_token == "1:2"
        client.fetch.assert_called_once()
