import json
from unittest.mock import MagicMock
import pytest
import requests


def _make_response(status_code=200, json_data=None, text=None):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if text is None:
        text = json.dumps(json_data) if json_data is not None else ""
    response.text = text

    def _json():
        return json.loads(text)

    response.json.side_effect = _json

    def _raise_for_status():
        if not response.ok:
            raise requests.HTTPError(f"{status_code} Error")

    response.raise_for_status.side_effect = _raise_for_status
    return response


@pytest.fixture
def fake_response():
    return _make_response
