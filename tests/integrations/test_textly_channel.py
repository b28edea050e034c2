"""Tests for the Textly channel."""

from unittest.mock import Mock, patch

import httpx
import pytest

from arrears.integrations.textly_client import TextlyChannel, format_local_number
from arrears.reminders.errors import ChannelError


def _response(status_code, json_data=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_data
    return response


class TestFormatLocalNumber:
    """Test number normalization."""

    @pytest.mark.parametrize(
        "phone,expected",
        [
            ("+218 91-234-5678", "0912345678"),
            ("00218912345678", "0912345678"),
            ("218912345678", "0912345678"),
            ("0912345678", "0912345678"),
            ("912345678", "0912345678"),
            ("n/a", ""),
            ("", ""),
        ],
    )
    def test_formats(self, phone, expected):
        assert format_local_number(phone) == expected


class TestTextlyChannel:
    """Test Textly sends."""

    @patch("arrears.integrations.textly_client.httpx.Client")
    def test_send_success(self, mock_client_class):
        mock_client = Mock()
        mock_client.post.return_value = _response(200, {"message_id": "tx-1"})
        mock_client_class.return_value = mock_client

        channel = TextlyChannel(api_key="secret")
        result = channel.send("+218 91 234 5678", "Hello", timeout=3.0)

        assert result.success is True
        assert result.message_id == "tx-1"
        args, kwargs = mock_client.post.call_args
        assert args[0] == "/whatsapp/send_plain"
        assert kwargs["json"] == {
            "target_numbers": ["0912345678"],
            "content": "Hello",
            "wait_for_send": False,
        }
        assert kwargs["timeout"] == 3.0
        headers = mock_client_class.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer secret"

    @patch("arrears.integrations.textly_client.httpx.Client")
    def test_default_timeout_uses_client_setting(self, mock_client_class):
        mock_client = Mock()
        mock_client.post.return_value = _response(201, {"id": 5})
        mock_client_class.return_value = mock_client

        result = TextlyChannel(api_key="k", timeout_ms=2000).send("0912345678", "Hi")

        assert result.message_id == "5"
        assert mock_client.post.call_args.kwargs["timeout"] is httpx.USE_CLIENT_DEFAULT
        assert mock_client_class.call_args.kwargs["timeout"] == 2.0

    @patch("arrears.integrations.textly_client.httpx.Client")
    def test_missing_api_key(self, mock_client_class):
        mock_client = Mock()
        mock_client_class.return_value = mock_client

        result = TextlyChannel(api_key="").send("0912345678", "Hi")

        assert result.success is False
        assert result.error == "TEXTLY_API_KEY not set"
        mock_client.post.assert_not_called()

    @patch("arrears.integrations.textly_client.httpx.Client")
    def test_invalid_number(self, mock_client_class):
        mock_client_class.return_value = Mock()

        result = TextlyChannel(api_key="k").send("unknown", "Hi")

        assert result.success is False
        assert result.error == "invalid_number"

    @patch("arrears.integrations.textly_client.httpx.Client")
    def test_api_error(self, mock_client_class):
        mock_client = Mock()
        mock_client.post.return_value = _response(422, text="bad number")
        mock_client_class.return_value = mock_client

        result = TextlyChannel(api_key="k").send("0912345678", "Hi")

        assert result.success is False
        assert result.status_code == 422
        assert result.error == "Textly API error: 422 - bad number"

    @patch("arrears.integrations.textly_client.httpx.Client")
    def test_timeout(self, mock_client_class):
        mock_client = Mock()
        mock_client.post.side_effect = httpx.ReadTimeout("slow")
        mock_client_class.return_value = mock_client

        result = TextlyChannel(api_key="k").send("0912345678", "Hi")

        assert result.success is False
        assert result.error == "timeout"

    @patch("arrears.integrations.textly_client.httpx.Client")
    def test_network_error(self, mock_client_class):
        mock_client = Mock()
        mock_client.post.side_effect = httpx.ConnectError("refused")
        mock_client_class.return_value = mock_client

        result = TextlyChannel(api_key="k").send("0912345678", "Hi")

        assert result.success is False
        assert "Network error" in result.error

    @patch("arrears.integrations.textly_client.httpx.Client")
    def test_raise_on_error(self, mock_client_class):
        mock_client = Mock()
        mock_client.post.return_value = _response(503, text="down")
        mock_client_class.return_value = mock_client

        channel = TextlyChannel(api_key="k", raise_on_error=True)

        with pytest.raises(ChannelError) as exc_info:
            channel.send("0912345678", "Hi")
        assert exc_info.value.status_code == 503
        assert exc_info.value.retriable is True

    @patch("arrears.integrations.textly_client.httpx.Client")
    def test_context_manager_closes_client(self, mock_client_class):
        mock_client = Mock()
        mock_client_class.return_value = mock_client

        with TextlyChannel(api_key="k"):
            pass

        mock_client.close.assert_called_once()
