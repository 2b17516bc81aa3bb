import copy

import pytest

from split_bills.ai import AiExpense, ExtractionError, ReceiptData, ReceiptItem, SplitData
from split_bills.app import create_app
from split_bills.config import Config
from split_bills.idempotency import RequestDeduplicator
from split_bills.mailer import MailerError
from split_bills.sessions import (
    CREATE_SESSIONS_TABLE,
    INSERT_SESSION,
    SELECT_EDIT_SECRET,
    SELECT_SESSION,
    TOUCH_SESSION,
    UPDATE_SESSION,
    SessionStore,
)


class FakeDatabase:
    """Stands in for the MySQL helper, keyed on the statements the store issues."""

    def __init__(self):
        self.rows = {}
        self.schema_created = False

    def execute(self, query, params=None):
        if query == CREATE_SESSIONS_TABLE:
            self.schema_created = True
            return 0
        if query == INSERT_SESSION:
            session_id, secret, people, fund, tip, created_at, accessed_at = params
            self.rows[session_id] = {
                "id": session_id,
                "edit_secret": secret,
                "people": people,
                "fund_amount": fund,
                "tip_percentage": tip,
                "created_at": created_at,
                "last_accessed_at": accessed_at,
            }
            return 1
        if query == TOUCH_SESSION:
            accessed_at, session_id = params
            if session_id not in self.rows:
                return 0
            self.rows[session_id]["last_accessed_at"] = accessed_at
            return 1
        if query == UPDATE_SESSION:
            people, fund, tip, accessed_at, session_id = params
            self.rows[session_id].update(
                people=people, fund_amount=fund, tip_percentage=tip, last_accessed_at=accessed_at
            )
            return 1
        raise AssertionError(f"unexpected statement: {query}")

    def fetch_one(self, query, params=None):
        row = self.rows.get(params[0])
        if row is None:
            return None
        if query == SELECT_SESSION:
            return {key: row[key] for key in ("id", "people", "fund_amount", "tip_percentage")}
        if query == SELECT_EDIT_SECRET:
            return {"edit_secret": row["edit_secret"]}
        raise AssertionError(f"unexpected query: {query}")


class FakeProvider:
    def __init__(self):
        self.calls = []
        self.fail = False

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if self.fail:
            raise ExtractionError("upstream rejected the request")

    def extract_from_text(self, text):
        self._record("text", text)
        return ReceiptData(
            description="Dinner",
            amount=120.0,
            tip=10.0,
            date="2024-05-01",
            items=[ReceiptItem(name="Pho", amount=55.0, quantity=2)],
        )

    def extract_split_from_text(self, text):
        self._record("split", text)
        return SplitData(
            expenses=[AiExpense(name="Anh", description="Sponsor", amount_spent=0.0, is_sponsor=True, sponsor_amount=500000.0)],
            fund_amount=200000.0,
        )

    def extract_from_image(self, image_data, mime_type):
        self._record("image", image_data, mime_type)
        return ReceiptData(description="Coffee", amount=45.0)


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, html_body, cc=None, bcc=None):
        if self.fail:
            raise MailerError("resend is down")
        self.sent.append(copy.deepcopy({"to": to, "subject": subject, "html": html_body, "cc": cc, "bcc": bcc}))


class OfflineConfig(Config):
    OPENAI_API_KEY = ""
    OPENAI_API_MODEL = ""
    RESEND_API_KEY = ""
    LOG_LEVEL = "WARNING"


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def store(fake_db):
    return SessionStore(fake_db)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def app(store, provider, mailer):
    return create_app(
        OfflineConfig,
        session_store=store,
        ai_provider=provider,
        mailer=mailer,
        deduplicator=RequestDeduplicator(),
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def offline_client(store):
    return create_app(OfflineConfig, session_store=store).test_client()
