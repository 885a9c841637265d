# chatbot.py
"""
Puroland greeting LINE bot.

- Single webhook route for the LINE Messaging API.
- Commands are matched exactly against a fixed table:
    今日の予定         -> today's greeting schedule
    翌日のキャラクター -> not implemented yet
  anything else gets the "not supported" reply.
- Integrates with:
    - greeting_api.ScheduleClient
    - schedule_format.render_schedule
    - line_messaging.LineMessagingClient
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from greeting_api import (
    DEFAULT_PREFIX,
    ScheduleClient,
    ScheduleFound,
    ScheduleInternal,
    ScheduleNotFound,
    ScheduleTemporary,
)
from line_messaging import (
    SIGNATURE_HEADER,
    InvalidSignatureError,
    LineMessagingClient,
    TextMessage,
    WebhookEvent,
)
from schedule_format import render_schedule

# --- Configuration & logging ---
load_dotenv()
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger("puroland.greeting.chatbot")

CHANNEL_SECRET = os.getenv("CHANNEL_SECRET")
CHANNEL_ACCESS_TOKEN = os.getenv("CHANNEL_ACCESS_TOKEN")
GREETING_API_PREFIX = os.getenv("GREETING_API_PREFIX", DEFAULT_PREFIX)
GREETING_API_TIMEOUT = float(os.getenv("GREETING_API_TIMEOUT", "10"))
BOT_TIMEZONE = os.getenv("BOT_TIMEZONE", "Asia/Tokyo")

app = FastAPI(title="Puroland Greeting Bot", version="1.0.0")

# --- Reply texts ---
REPLIES: Dict[str, str] = {
    "not_published": "まだ公開されていないよ",
    "server_trouble": "サーバーの調子が悪いみたい",
    "unsupported": "未対応だよ",
}

COMMAND_TODAY_SCHEDULE = "今日の予定"
COMMAND_NEXT_DAY_CHARACTERS = "翌日のキャラクター"

schedule_client = ScheduleClient(GREETING_API_PREFIX, timeout=GREETING_API_TIMEOUT)
messenger = LineMessagingClient(CHANNEL_SECRET, CHANNEL_ACCESS_TOKEN)


def today_in_park() -> date:
    return datetime.now(ZoneInfo(BOT_TIMEZONE)).date()

# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class UnexpectedStatusError(Exception):
    """Greeting API answered with a status we have no reply for."""

    def __init__(self, status_code: int):
        super().__init__(f"unexpected greeting API status {status_code}")
        self.status_code = status_code


@dataclass
class TodayScheduleAction:
    client: ScheduleClient
    today: date

    def execute(self) -> List[TextMessage]:
        result = self.client.get_schedule(self.today)
        if isinstance(result, ScheduleNotFound):
            return [TextMessage(REPLIES["not_published"])]
        if isinstance(result, ScheduleTemporary):
            return [TextMessage(REPLIES["server_trouble"])]
        if isinstance(result, ScheduleInternal):
            raise UnexpectedStatusError(result.status_code)
        if isinstance(result, ScheduleFound):
            return [TextMessage(render_schedule(self.today, result.greetings))]
        raise TypeError(f"unknown schedule result: {result!r}")


class UnimplementedAction:
    def execute(self) -> List[TextMessage]:
        return [TextMessage(REPLIES["unsupported"])]


class NoOpAction:
    def execute(self) -> List[TextMessage]:
        return []


Action = Union[TodayScheduleAction, UnimplementedAction, NoOpAction]

# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def dispatch(event: WebhookEvent, client: Optional[ScheduleClient] = None, today: Optional[date] = None) -> Action:
    """
    Pick the action for one webhook event.

    Only message events get a reply. Texts are matched exactly; unknown
    texts and non-text messages get the "not supported" reply.
    """
    if event.type != "message":
        return NoOpAction()
    text = event.text
    if text == COMMAND_TODAY_SCHEDULE:
        return TodayScheduleAction(client or schedule_client, today or today_in_park())
    if text == COMMAND_NEXT_DAY_CHARACTERS:
        return UnimplementedAction()
    return UnimplementedAction()


def handle_event(event: WebhookEvent) -> None:
    messages = dispatch(event).execute()
    if not messages or not event.reply_token:
        return
    try:
        messenger.reply_message(event.reply_token, messages)
    except Exception:
        logger.exception("Failed to deliver reply for %s event", event.type)


def handle_events(events: Sequence[WebhookEvent]) -> None:
    # one failing event must not drop the rest of the batch
    for event in events:
        try:
            handle_event(event)
        except Exception:
            logger.exception("Failed to handle %s event", event.type)

# ---------------------------------------------------------------------------
# Webhook endpoints
# ---------------------------------------------------------------------------

@app.post("/line/webhook")
async def receive_webhook(request: Request):
    body = await request.body()
    try:
        events = messenger.parse_events(body, request.headers.get(SIGNATURE_HEADER))
    except InvalidSignatureError:
        logger.info("Rejected webhook with invalid signature")
        raise HTTPException(status_code=400, detail="Invalid signature")
    except Exception:
        logger.exception("Failed to parse webhook body")
        raise HTTPException(status_code=500, detail="Invalid webhook body")
    await run_in_threadpool(handle_events, events)
    return JSONResponse({"status": "processed"})


@app.get("/healthz")
def healthcheck():
    return {"status": "ok", "messenger_enabled": messenger.enabled, "greeting_api": schedule_client.prefix}
