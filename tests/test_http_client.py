import unittest
from unittest.mock import MagicMock, patch

import requests

from marketsync.http_client import get_json


def _response(status: int, payload=None, json_error: bool = False) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    if json_error:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = payload
    return resp


@patch("marketsync.http_client.time.sleep")
class GetJsonTests(unittest.TestCase):
    @patch("marketsync.http_client.requests.get")
    def test_returns_payload_and_status(self, mock_get, _sleep) -> None:
        mock_get.return_value = _response(200, {"ok": True})
        self.assertEqual(get_json("https://x/markets", params={"limit": 1}), ({"ok": True}, 200))
        mock_get.assert_called_once_with(
            "https://x/markets", params={"limit": 1}, headers=None, timeout=10.0
        )

    @patch("marketsync.http_client.requests.get")
    def test_retries_server_errors(self, mock_get, sleep) -> None:
        mock_get.side_effect = [_response(503), _response(200, [1, 2])]
        self.assertEqual(get_json("https://x", backoff=0.5), ([1, 2], 200))
        sleep.assert_called_once_with(0.5)

    @patch("marketsync.http_client.requests.get")
    def test_client_errors_are_not_retried(self, mock_get, _sleep) -> None:
        mock_get.return_value = _response(404, {"error": "missing"})
        self.assertEqual(get_json("https://x"), ({"error": "missing"}, 404))
        self.assertEqual(mock_get.call_count, 1)

    @patch("marketsync.http_client.requests.get")
    def test_transport_failure_exhausts_retries(self, mock_get, sleep) -> None:
        mock_get.side_effect = requests.ConnectionError("refused")
        self.assertEqual(get_json("https://x", retries=3, backoff=1.0), (None, None))
        self.assertEqual(mock_get.call_count, 3)
        self.assertEqual([call.args[0] for call in sleep.call_args_list], [1.0, 2.0])

    @patch("marketsync.http_client.requests.get")
    def test_last_server_error_is_returned(self, mock_get, _sleep) -> None:
        mock_get.return_value = _response(502, json_error=True)
        self.assertEqual(get_json("https://x", retries=2), (None, 502))
        self.assertEqual(mock_get.call_count, 2)


if __name__ == "__main__":
    unittest.main()
