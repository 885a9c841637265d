# greeting_api.py
"""
Client for the Puroland greeting schedule API.

Provides:
- Place / Character / Greeting models
- ScheduleFound / ScheduleNotFound / ScheduleTemporary / ScheduleInternal results
- ScheduleClient.get_schedule

Endpoint:
{prefix}/schedule/{YYYY}/{MM}/{DD}/
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Union

import requests
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

logger = logging.getLogger("greeting_api")

DEFAULT_PREFIX = "https://greeting.sucretown.net/api"
DEFAULT_TIMEOUT = 10.0


class Place(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = 0
    name: str = ""


class Character(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = 0
    name: str = ""


class Greeting(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_at: str
    end_at: str
    deleted: bool = False
    place: Place = Field(default_factory=Place)
    characters: List[Character] = Field(default_factory=list)

    @field_validator("characters", mode="before")
    @classmethod
    def null_characters(cls, v):
        return [] if v is None else v


_greetings_adapter = TypeAdapter(List[Greeting])

# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScheduleFound:
    greetings: List[Greeting] = field(default_factory=list)


@dataclass(frozen=True)
class ScheduleNotFound:
    """The schedule for that date is not published yet (404)."""


@dataclass(frozen=True)
class ScheduleTemporary:
    """Upstream is degraded (5xx). Retrying later is reasonable."""
    status_code: int


@dataclass(frozen=True)
class ScheduleInternal:
    """Any other unexpected status."""
    status_code: int


ScheduleResult = Union[ScheduleFound, ScheduleNotFound, ScheduleTemporary, ScheduleInternal]


def decode_greetings(raw: Union[str, bytes]) -> List[Greeting]:
    # raises pydantic.ValidationError (a ValueError) on malformed JSON or records
    return _greetings_adapter.validate_json(raw)


class ScheduleClient:
    def __init__(self, prefix: str = DEFAULT_PREFIX, timeout: Optional[float] = DEFAULT_TIMEOUT):
        self.prefix = prefix.rstrip("/")
        self.timeout = timeout

    def schedule_url(self, day: date) -> str:
        return f"{self.prefix}/schedule/{day.year:04d}/{day.month:02d}/{day.day:02d}/"

    def get_schedule(self, day: date) -> ScheduleResult:
        """
        Fetch the greetings for one calendar date.

        Transport errors (requests.RequestException) and decode errors
        (ValueError) are raised; every HTTP status is mapped to a result.
        """
        url = self.schedule_url(day)
        logger.debug("GET %s", url)
        with requests.get(url, timeout=self.timeout) as response:
            status = response.status_code
            if status == 404:
                return ScheduleNotFound()
            if 500 <= status <= 599:
                logger.warning("Greeting API unavailable - status=%s url=%s", status, url)
                return ScheduleTemporary(status)
            if status != 200:
                logger.warning("Greeting API unexpected status - status=%s url=%s", status, url)
                return ScheduleInternal(status)
            return ScheduleFound(decode_greetings(response.content))
