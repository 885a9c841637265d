"""
Greeting API client tests

URL building, status classification and JSON decoding.
"""

import json
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests
from pydantic import ValidationError

from greeting_api import (
    Character,
    DEFAULT_PREFIX,
    Place,
    ScheduleClient,
    ScheduleFound,
    ScheduleInternal,
    ScheduleNotFound,
    ScheduleTemporary,
    decode_greetings,
)

GREETINGS = [
    {
        "start_at": "2023-01-01T10:00:00.000+09:00",
        "end_at": "2023-01-01T10:15:00.000+09:00",
        "deleted": False,
        "place": {"id": 1, "name": "Fantasy Land"},
        "characters": [{"id": 10, "name": "Mickey"}, {"id": 11, "name": "Minnie"}],
    },
    {
        "start_at": "2023-01-01T11:00:00.000+09:00",
        "end_at": "2023-01-01T11:15:00.000+09:00",
        "deleted": True,
        "place": {"id": 2, "name": "Sanrio Town"},
        "characters": [],
    },
]


def fake_response(status_code, content=b""):
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    response.__enter__.return_value = response
    return response


class TestScheduleUrl:
    def test_default_prefix(self):
        client = ScheduleClient()
        assert client.schedule_url(date(2023, 1, 2)) == f"{DEFAULT_PREFIX}/schedule/2023/01/02/"

    def test_custom_prefix_trailing_slash(self):
        client = ScheduleClient("http://localhost:8000/api/")
        assert client.schedule_url(date(2024, 12, 31)) == "http://localhost:8000/api/schedule/2024/12/31/"


class TestGetSchedule:
    def test_ok_decodes_greetings(self):
        client = ScheduleClient("http://api")
        with patch("greeting_api.requests.get", return_value=fake_response(200, json.dumps(GREETINGS).encode())) as get:
            result = client.get_schedule(date(2023, 1, 1))

        get.assert_called_once_with("http://api/schedule/2023/01/01/", timeout=client.timeout)
        assert isinstance(result, ScheduleFound)
        assert len(result.greetings) == 2
        assert result.greetings[0].place.name == "Fantasy Land"
        assert [c.name for c in result.greetings[0].characters] == ["Mickey", "Minnie"]
        assert result.greetings[1].deleted is True

    def test_ok_empty_list(self):
        with patch("greeting_api.requests.get", return_value=fake_response(200, b"[]")):
            result = ScheduleClient().get_schedule(date(2023, 1, 1))
        assert result == ScheduleFound([])

    def test_not_found(self):
        with patch("greeting_api.requests.get", return_value=fake_response(404)):
            assert isinstance(ScheduleClient().get_schedule(date(2023, 1, 1)), ScheduleNotFound)

    @pytest.mark.parametrize("status", [500, 502, 503, 599])
    def test_server_errors_are_temporary(self, status):
        with patch("greeting_api.requests.get", return_value=fake_response(status)):
            result = ScheduleClient().get_schedule(date(2023, 1, 1))
        assert result == ScheduleTemporary(status)

    @pytest.mark.parametrize("status", [201, 204, 301, 400, 403, 418, 600])
    def test_other_statuses_are_internal(self, status):
        with patch("greeting_api.requests.get", return_value=fake_response(status)):
            result = ScheduleClient().get_schedule(date(2023, 1, 1))
        assert result == ScheduleInternal(status)

    def test_malformed_json_raises(self):
        with patch("greeting_api.requests.get", return_value=fake_response(200, b"{not json")):
            with pytest.raises(ValueError):
                ScheduleClient().get_schedule(date(2023, 1, 1))

    def test_transport_error_propagates(self):
        with patch("greeting_api.requests.get", side_effect=requests.ConnectionError("boom")):
            with pytest.raises(requests.RequestException):
                ScheduleClient().get_schedule(date(2023, 1, 1))

    @pytest.mark.parametrize("status", [200, 404, 503, 403])
    def test_response_is_always_released(self, status):
        response = fake_response(status, b"[]")
        with patch("greeting_api.requests.get", return_value=response):
            ScheduleClient().get_schedule(date(2023, 1, 1))
        response.__exit__.assert_called_once()

    def test_response_released_on_decode_error(self):
        response = fake_response(200, b"nope")
        with patch("greeting_api.requests.get", return_value=response):
            with pytest.raises(ValueError):
                ScheduleClient().get_schedule(date(2023, 1, 1))
        response.__exit__.assert_called_once()


class TestDecodeGreetings:
    def test_records_without_ids_decode_with_zero_values(self):
        raw = (
            '[{"start_at":"2023-01-01T10:00:00+09:00", "end_at":"2023-01-01T10:15:00+09:00", '
            '"deleted":false, "place":{"name":"Fantasy Land"}, "characters":[{"name":"Mickey"}]}]'
        )
        greeting = decode_greetings(raw)[0]
        assert greeting.place == Place(id=0, name="Fantasy Land")
        assert greeting.characters == [Character(id=0, name="Mickey")]

    def test_missing_place_decodes_as_empty(self):
        raw = json.dumps([{"start_at": "2023-01-01T10:00:00+09:00", "end_at": "2023-01-01T10:15:00+09:00"}])
        greeting = decode_greetings(raw)[0]
        assert greeting.place == Place(id=0, name="")
        assert greeting.deleted is False
        assert greeting.characters == []

    def test_null_characters_become_empty(self):
        raw = json.dumps([{**GREETINGS[0], "characters": None}])
        assert decode_greetings(raw)[0].characters == []

    def test_object_instead_of_array_is_rejected(self):
        with pytest.raises(ValidationError):
            decode_greetings(json.dumps(GREETINGS[0]))

    def test_records_are_immutable(self):
        greeting = decode_greetings(json.dumps(GREETINGS))[0]
        with pytest.raises(ValidationError):
            greeting.deleted = True
