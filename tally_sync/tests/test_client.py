"""
Tests for the Tally HTTP client (mocked transport).
"""
import pytest
import requests
from unittest.mock import Mock
from tally_sync.client import ENCODING, TallyClient
from tally_sync.exceptions import ConfigurationError, ConnectivityError, TallyResponseError


def _response(text: str = "", status: int = 200) -> Mock:
    r = Mock()
    r.content = text.encode(ENCODING)
    r.status_code = status
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(response=r)
    return r


@pytest.fixture
def client():
    c = TallyClient("http://tally:9000", timeout=5)
    c.session.post = Mock()
    return c


class TestTallyClient:
    """Tests for TallyClient.post_xml."""

    def test_request_is_utf16le(self, client):
        client.session.post.return_value = _response("<ENVELOPE></ENVELOPE>")
        xml = "<ENVELOPE>Café</ENVELOPE>"

        result = client.post_xml(xml)

        assert result == "<ENVELOPE></ENVELOPE>"
        args, kwargs = client.session.post.call_args
        assert args[0] == "http://tally:9000"
        assert kwargs["data"] == xml.encode("utf-16-le")
        assert kwargs["headers"]["Content-Length"] == str(len(xml.encode("utf-16-le")))
        assert kwargs["timeout"] == 5

    def test_session_headers(self, client):
        assert client.session.headers["Content-Type"] == "text/xml;charset=utf-16"

    def test_empty_body_means_no_company(self, client):
        client.session.post.return_value = _response("")
        assert client.post_xml("<ENVELOPE/>") == ""

    def test_byte_order_mark_stripped(self, client):
        client.session.post.return_value = _response("\ufeff<ENVELOPE/>")
        assert client.post_xml("<ENVELOPE/>") == "<ENVELOPE/>"

    def test_connection_refused(self, client):
        client.session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(ConnectivityError) as exc:
            client.post_xml("<ENVELOPE/>")
        assert "Unable to connect with Tally" in str(exc.value)
        assert "XML port" in str(exc.value)

    def test_timeout(self, client):
        client.session.post.side_effect = requests.Timeout("slow")
        with pytest.raises(ConnectivityError):
            client.post_xml("<ENVELOPE/>")

    def test_http_error(self, client):
        client.session.post.return_value = _response("oops", status=500)
        with pytest.raises(TallyResponseError) as exc:
            client.post_xml("<ENVELOPE/>")
        assert "500" in str(exc.value)

    def test_line_error(self, client):
        client.session.post.return_value = _response(
            "<ENVELOPE><LINEERROR>Could not find Report &apos;X&apos;</LINEERROR></ENVELOPE>"
        )
        with pytest.raises(TallyResponseError) as exc:
            client.post_xml("<ENVELOPE/>")
        assert "Could not find Report 'X'" in str(exc.value)

    def test_rejects_non_http_url(self):
        with pytest.raises(ConfigurationError):
            TallyClient("tally:9000")

    def test_https(self):
        assert TallyClient("https://tally.example.com").is_secure
        assert not TallyClient("http://tally:9000").is_secure
