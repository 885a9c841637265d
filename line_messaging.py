# line_messaging.py
"""
LINE Messaging API helper class.

Provides:
- verify_signature (X-Line-Signature check)
- parse_events (webhook body -> WebhookEvent list)
- reply_message

This class uses the reply endpoint:
https://api.line.me/v2/bot/message/reply
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("line_messaging")

REPLY_URL = "https://api.line.me/v2/bot/message/reply"
SIGNATURE_HEADER = "X-Line-Signature"


class InvalidSignatureError(Exception):
    """The request body does not carry a valid channel signature."""


class EventMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    id: Optional[str] = None
    text: Optional[str] = None


class WebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str
    reply_token: Optional[str] = Field(default=None, alias="replyToken")
    message: Optional[EventMessage] = None

    @property
    def text(self) -> Optional[str]:
        if self.type == "message" and self.message and self.message.type == "text":
            return self.message.text
        return None


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    destination: Optional[str] = None
    events: List[WebhookEvent] = Field(default_factory=list)


@dataclass(frozen=True)
class TextMessage:
    text: str

    def to_payload(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


class LineMessagingClient:
    def __init__(self, channel_secret: Optional[str], channel_access_token: Optional[str], timeout: float = 10):
        self.channel_secret = channel_secret
        self.channel_access_token = channel_access_token
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.channel_access_token)

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not self.channel_secret or not signature:
            return False
        digest = hmac.new(self.channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
        expected = base64.b64encode(digest).decode("ascii")
        return hmac.compare_digest(signature.encode("utf-8"), expected.encode("ascii"))

    def parse_events(self, body: bytes, signature: Optional[str]) -> List[WebhookEvent]:
        if not self.verify_signature(body, signature):
            raise InvalidSignatureError("invalid signature")
        return WebhookPayload.model_validate_json(body).events

    def _post(self, url: str, payload: Dict[str, Any]) -> None:
        if not self.enabled:
            logger.info("[dry-run] %s", json.dumps(payload, indent=2, ensure_ascii=False))
            return
        headers = {"Authorization": f"Bearer {self.channel_access_token}", "Content-Type": "application/json"}
        response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        if not response.ok:
            logger.error("LINE send failed - status=%s body=%s", response.status_code, response.text)
            response.raise_for_status()

    def reply_message(self, reply_token: str, messages: Sequence[TextMessage]) -> None:
        payload = {"replyToken": reply_token, "messages": [m.to_payload() for m in messages]}
        self._post(REPLY_URL, payload)
