"""Unit tests for the device RPC client."""

from unittest.mock import Mock, patch

import pytest
import requests

from devdash.devices.rpc_client import DeviceRpcClient, DeviceRpcError


def response(status_code=200, body=None, json_error=None):
    mock = Mock(status_code=status_code)
    if json_error is not None:
        mock.json.side_effect = json_error
    else:
        mock.json.return_value = body
    return mock


class TestAddressing:
    def test_alias_resolution(self):
        client = DeviceRpcClient(aliases={"kitchen": "192.168.1.40"})
        assert client.url_for("kitchen") == "http://192.168.1.40/rpc"

    def test_unknown_name_is_host(self):
        assert DeviceRpcClient().url_for("10.0.0.7") == "http://10.0.0.7/rpc"

    def test_full_url_respected(self):
        client = DeviceRpcClient(aliases={"lab": "https://lab.local:8443/"})
        assert client.url_for("lab") == "https://lab.local:8443/rpc"

    def test_default_timeout(self):
        assert DeviceRpcClient().timeout == DeviceRpcClient.DEFAULT_TIMEOUT


class TestCall:
    """Test JSON-RPC calls."""

    @patch("requests.post")
    def test_returns_result(self, mock_post):
        mock_post.return_value = response(body={"id": 1, "result": {"name": "kitchen"}})
        client = DeviceRpcClient(aliases={"kitchen": "192.168.1.40"}, timeout=3)

        result = client.call("kitchen", "Sys.GetConfig")

        assert result == {"name": "kitchen"}
        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        assert args[0] == "http://192.168.1.40/rpc"
        assert kwargs["json"] == {"id": 1, "method": "Sys.GetConfig"}
        assert kwargs["timeout"] == 3

    @patch("requests.post")
    def test_params_and_increasing_ids(self, mock_post):
        mock_post.return_value = response(body={"id": 1, "result": {}})
        client = DeviceRpcClient()

        client.call("d", "KVS.Get", {"key": "mode"})
        client.call("d", "KVS.Get", {"key": "mode"})

        first, second = (call.kwargs["json"] for call in mock_post.call_args_list)
        assert first["params"] == {"key": "mode"}
        assert second["id"] == first["id"] + 1

    @patch("requests.post")
    def test_timeout(self, mock_post):
        mock_post.side_effect = requests.Timeout("slow")

        with pytest.raises(DeviceRpcError, match="timed out"):
            DeviceRpcClient(timeout=2).call("d", "Sys.GetConfig")

    @patch("requests.post")
    def test_connection_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(DeviceRpcError, match="failed"):
            DeviceRpcClient().call("d", "Sys.GetConfig")

    @patch("requests.post")
    def test_http_error(self, mock_post):
        mock_post.return_value = response(status_code=401)

        with pytest.raises(DeviceRpcError) as exc_info:
            DeviceRpcClient().call("d", "Sys.GetConfig")
        assert exc_info.value.code == 401

    @patch("requests.post")
    def test_rpc_error(self, mock_post):
        mock_post.return_value = response(
            body={"id": 1, "error": {"code": -105, "message": "Argument 'id' not found"}}
        )

        with pytest.raises(DeviceRpcError, match="not found") as exc_info:
            DeviceRpcClient().call("d", "Webhook.Delete", {"id": 9})
        assert exc_info.value.code == -105

    @patch("requests.post")
    def test_invalid_json(self, mock_post):
        mock_post.return_value = response(json_error=ValueError("bad json"))

        with pytest.raises(DeviceRpcError, match="invalid JSON"):
            DeviceRpcClient().call("d", "Sys.GetConfig")

    @patch("requests.post")
    def test_missing_result(self, mock_post):
        mock_post.return_value = response(body={"id": 1})

        with pytest.raises(DeviceRpcError, match="no result"):
            DeviceRpcClient().call("d", "Sys.GetConfig")

    def test_uses_session_when_given(self):
        session = Mock()
        session.post.return_value = response(body={"id": 1, "result": 7})

        assert DeviceRpcClient(session=session).call("d", "Sys.GetStatus") == 7
        session.post.assert_called_once()
