import json
from types import SimpleNamespace

import openai
import pytest

from split_bills.ai import ExtractionError, OpenAIProvider, ReceiptData, SplitData


class StubCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_provider(content=None, error=None):
    completions = StubCompletions(content, error)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIProvider("sk-test", "gpt-test", temperature=0.2, client=client), completions


def test_extract_from_text():
    content = json.dumps(
        {
            "description": "Lunch",
            "amount": 150000,
            "tip": 10000,
            "date": "2024-03-02",
            "items": [{"name": "Bun cha", "amount": 70000}, {"name": "Tra da", "amount": 5000, "quantity": 2}],
        }
    )
    provider, completions = make_provider(content)

    receipt = provider.extract_from_text("Lunch 150k")

    assert receipt.amount == 150000.0
    assert receipt.tip == 10000.0
    assert [item.quantity for item in receipt.items] == [1, 2]

    request = completions.requests[0]
    assert request["model"] == "gpt-test"
    assert request["temperature"] == 0.2
    assert request["response_format"] == {"type": "json_object"}
    assert request["messages"][1] == {"role": "user", "content": "Lunch 150k"}


def test_extract_split_from_text_applies_defaults():
    content = json.dumps({"expenses": [{"name": "Anh", "amount_spent": 0, "is_sponsor": True, "sponsor_amount": 500000}]})
    provider, _ = make_provider(content)

    split = provider.extract_split_from_text("Anh bao 500k")

    expense = split.expenses[0]
    assert expense.description == "Expense"
    assert expense.quantity == 1
    assert expense.tip == 0.0
    assert expense.sponsor_amount == 500000.0
    assert split.fund_amount is None


def test_extract_from_image_sends_data_url():
    provider, completions = make_provider(json.dumps({"description": "Cafe", "amount": 45}))

    receipt = provider.extract_from_image(b"\x89PNG", "image/png")

    assert receipt.description == "Cafe"
    parts = completions.requests[0]["messages"][1]["content"]
    assert parts[1]["image_url"]["url"] == "data:image/png;base64,iVBORw=="


def test_api_error_becomes_extraction_error():
    provider, _ = make_provider(error=openai.OpenAIError("quota exceeded"))

    with pytest.raises(ExtractionError, match="quota exceeded"):
        provider.extract_from_text("anything")


@pytest.mark.parametrize("content", [None, "not json", "[1, 2]", json.dumps({"amount": 3})])
def test_unusable_content_becomes_extraction_error(content):
    provider, _ = make_provider(content)

    with pytest.raises(ExtractionError):
        provider.extract_from_text("anything")


def test_model_is_required():
    with pytest.raises(ValueError):
        OpenAIProvider("sk-test", "", client=object())


def test_split_data_rejects_missing_expenses():
    with pytest.raises(ExtractionError):
        SplitData.from_dict({"fund_amount": 10})


def test_receipt_data_to_dict():
    receipt = ReceiptData.from_dict({"description": "x", "amount": 1})

    assert receipt.to_dict() == {"description": "x", "amount": 1.0, "tip": None, "date": None, "items": []}
