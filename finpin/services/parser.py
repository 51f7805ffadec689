import datetime as dt
import json
import logging
import re
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from finpin.core.config import Settings
from finpin.core.errors import ParseFailed
from finpin.schemas.expense import ExpenseContext, ExpenseExtensions, ExpenseParseResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a financial transaction parser for mobile payment receipts and bank \
transaction records. Extract structured information from payment text in any language.

Respond with a single JSON object only, using these fields:
- amount: numeric value as a string, without currency symbols, commas or spaces
- currency: ISO 4217 code (GBP for £, USD for $, EUR for €, ISK for kr)
- merchant: primary business name, without addresses or transaction ids
- payment_method: e.g. Apple Pay, Google Pay, Alipay, WeChat Pay, Credit Card, Debit Card
- payment_card: bank or card provider, e.g. Monzo, HSBC, Visa
- location: city, country or address
- timestamp: ISO 8601 (YYYY-MM-DDTHH:mm:ssZ) or null
- confidence: 0.0 to 1.0
- extensions: {"category": str, "tags": [str], "description": str}
"""

_AMOUNT_CHARS = re.compile(r"[^0-9.]")
_ISO_CURRENCY = re.compile(r"^[A-Z]{3}$")

CURRENCY_ALIASES = {
    "¥": "CNY",
    "￥": "CNY",
    "元": "CNY",
    "$": "USD",
    "美元": "USD",
    "€": "EUR",
    "欧元": "EUR",
    "£": "GBP",
    "英镑": "GBP",
    "港币": "HKD",
    "港元": "HKD",
    "台币": "TWD",
    "新台币": "TWD",
    "日元": "JPY",
    "韩元": "KRW",
}

RESULT_SOURCE = "openai_gpt"


def build_user_prompt(text: str, context: Optional[ExpenseContext]) -> str:
    lines = [f"Payment text:\n{text}"]
    if context:
        if context.location:
            lines.append(f"Device location: {context.location}")
        if context.timestamp:
            lines.append(f"Capture time: {context.timestamp}")
        if context.timezone_offset is not None:
            lines.append(f"Timezone offset (minutes): {context.timezone_offset}")
    return "\n".join(lines)


def normalize_currency(currency: str) -> str:
    """Map symbols and CJK names to ISO 4217; anything unrecognised becomes USD."""
    currency = currency.strip()
    if currency in CURRENCY_ALIASES:
        return CURRENCY_ALIASES[currency]
    if _ISO_CURRENCY.match(currency.upper()):
        return currency.upper()
    return "USD"


def _confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
        return 0.5
    return float(value)


def normalize_result(raw: Any, text: str, context: Optional[ExpenseContext] = None) -> ExpenseParseResult:
    if not isinstance(raw, dict):
        raise ParseFailed("Invalid response: expected a JSON object")
    amount = _AMOUNT_CHARS.sub("", str(raw.get("amount") or ""))
    currency = str(raw.get("currency") or "").strip()
    if not currency or not any(ch.isdigit() for ch in amount):
        raise ParseFailed("Invalid response: missing amount or currency")

    extensions = raw.get("extensions")
    try:
        extensions = ExpenseExtensions.model_validate(
            {
                **(extensions if isinstance(extensions, dict) else {}),
                "parsed_at": dt.datetime.now(dt.timezone.utc).isoformat(),
                "source": RESULT_SOURCE,
                "original_text": text,
            }
        )
    except ValidationError as exc:
        raise ParseFailed("Invalid response: malformed extensions") from exc

    return ExpenseParseResult(
        amount=amount,
        currency=normalize_currency(currency),
        merchant=raw.get("merchant") or None,
        payment_method=raw.get("payment_method") or None,
        payment_card=raw.get("payment_card") or None,
        location=raw.get("location") or (context.location if context else None),
        timestamp=raw.get("timestamp") or (context.timestamp if context else None),
        confidence=_confidence(raw.get("confidence")),
        extensions=extensions,
    )


class ExpenseParser:
    """OpenAI-compatible chat completions client for expense text."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.provider = settings.ai_provider()
        self.timeout = settings.request_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if self.provider is None:
            raise ParseFailed("No AI provider configured")
        base_url, api_key, _ = self.provider
        return httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def parse(self, text: str, context: Optional[ExpenseContext] = None) -> ExpenseParseResult:
        async with self._client() as client:
            request = {
                "model": self.provider[2],
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(text, context)},
                ],
                "temperature": 0.1,
                "max_tokens": 1000,
                "response_format": {"type": "json_object"},
            }
            try:
                resp = await client.post("/chat/completions", json=request)
                resp.raise_for_status()
                content = resp.json()["choices"][0]["message"]["content"]
                if not content:
                    raise ValueError("Empty response from AI API")
                return normalize_result(json.loads(content), text, context)
            except ParseFailed:
                logger.warning("AI API returned an unusable expense result")
                raise
            except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as exc:
                logger.exception("AI API error")
                raise ParseFailed("Failed to parse expense text") from exc

    async def health_check(self) -> bool:
        if self.provider is None:
            return False
        try:
            async with self._client() as client:
                resp = await client.get("/models")
            return resp.status_code == 200
        except httpx.HTTPError:
            logger.warning("AI API health check failed")
            return False
