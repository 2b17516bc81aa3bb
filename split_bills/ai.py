"""
Receipt extraction for split_bills
Asks an OpenAI chat model to turn receipt text or photos into expense data
"""

import base64
import json
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

import openai

logger = logging.getLogger(__name__)

RECEIPT_TEXT_PROMPT = (
    "You extract receipt data. The text may be in English or Vietnamese. "
    "Reply with JSON containing: description, amount (the total), tip (optional), "
    "date (YYYY-MM-DD, optional) and items (a list of name/amount/quantity, quantity defaults to 1)."
)

RECEIPT_IMAGE_PROMPT = (
    "You extract receipt data from photos. The receipt may be in English or Vietnamese. "
    "Reply with JSON containing: description, amount (the total), tip (optional), "
    "date (YYYY-MM-DD, optional) and items (a list of name/amount/quantity, quantity defaults to 1)."
)

SPLIT_TEXT_PROMPT = (
    "You parse free-form descriptions of group expenses, in English, Vietnamese or a mix of both. "
    "For each expense find the person's name, what they paid for, the amount spent, the quantity "
    "(default 1) and any tip. Mark an expense as sponsored when the person pays for everyone without "
    "expecting repayment ('sponsor', 'tài trợ', 'bao', 'mời'); a sponsor may spend 0 and sponsor a "
    "separate amount. Amounts may use 'k' or 'ngàn' for thousands and 'đ', 'vnd' or '$' as units. "
    "Detect a shared fund or deposit ('fund', 'deposit', 'quỹ', 'đóng quỹ'). "
    'Reply with JSON: {"expenses": [{"name": string, "description": string, "amount_spent": number, '
    '"quantity": number, "tip": number, "is_sponsor": boolean, "sponsor_amount": number}], '
    '"fund_amount": number (optional)}. Use tip 0 when none is given and "Expense" when the description '
    "is unclear. When is_sponsor is true and no separate amount is given, sponsor_amount equals amount_spent."
)


class ExtractionError(Exception):
    """The provider could not be reached or returned unusable data"""


@dataclass
class ReceiptItem:
    name: str
    amount: float
    quantity: int = 1


@dataclass
class ReceiptData:
    description: str
    amount: float
    tip: Optional[float] = None
    date: Optional[str] = None
    items: List[ReceiptItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ReceiptData":
        try:
            items = [
                ReceiptItem(
                    name=str(item["name"]),
                    amount=float(item["amount"]),
                    quantity=int(item.get("quantity") or 1),
                )
                for item in payload.get("items") or []
            ]
            tip = payload.get("tip")
            return cls(
                description=str(payload["description"]),
                amount=float(payload["amount"]),
                tip=float(tip) if tip is not None else None,
                date=payload.get("date"),
                items=items,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ExtractionError(f"Malformed receipt data: {exc}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AiExpense:
    name: str
    description: str
    amount_spent: float
    quantity: int = 1
    tip: float = 0.0
    is_sponsor: bool = False
    sponsor_amount: float = 0.0


@dataclass
class SplitData:
    expenses: List[AiExpense] = field(default_factory=list)
    fund_amount: Optional[float] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SplitData":
        try:
            expenses = [
                AiExpense(
                    name=str(item["name"]),
                    description=str(item.get("description") or "Expense"),
                    amount_spent=float(item["amount_spent"]),
                    quantity=int(item.get("quantity") or 1),
                    tip=float(item.get("tip") or 0),
                    is_sponsor=bool(item.get("is_sponsor", False)),
                    sponsor_amount=float(item.get("sponsor_amount") or 0),
                )
                for item in payload["expenses"]
            ]
            fund_amount = payload.get("fund_amount")
            return cls(expenses=expenses, fund_amount=float(fund_amount) if fund_amount is not None else None)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ExtractionError(f"Malformed split data: {exc}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class OpenAIProvider:
    """Receipt and expense extraction through the chat completions API"""

    def __init__(self, api_key: str, model: str, temperature: float = 0.5, client=None) -> None:
        if not model:
            raise ValueError("OPENAI_API_MODEL is not set")
        self.model = model
        self.temperature = temperature
        self.client = client or openai.OpenAI(api_key=api_key)

    def _complete_json(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=self.temperature,
            )
        except openai.OpenAIError as exc:
            logger.exception("OpenAI request failed")
            raise ExtractionError(f"OpenAI API error: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ExtractionError("No content in response")

        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ExtractionError(f"Failed to parse JSON: {exc} - Content: {content}") from exc
        if not isinstance(data, dict):
            raise ExtractionError(f"Expected a JSON object - Content: {content}")
        return data

    def extract_from_text(self, text: str) -> ReceiptData:
        messages = [
            {"role": "system", "content": RECEIPT_TEXT_PROMPT},
            {"role": "user", "content": text},
        ]
        return ReceiptData.from_dict(self._complete_json(messages))

    def extract_split_from_text(self, text: str) -> SplitData:
        messages = [
            {"role": "system", "content": SPLIT_TEXT_PROMPT},
            {"role": "user", "content": text},
        ]
        return SplitData.from_dict(self._complete_json(messages))

    def extract_from_image(self, image_data: bytes, mime_type: str) -> ReceiptData:
        encoded = base64.b64encode(image_data).decode("ascii")
        messages = [
            {"role": "system", "content": RECEIPT_IMAGE_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Extract data from this receipt."},
                    {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                ],
            },
        ]
        return ReceiptData.from_dict(self._complete_json(messages))
