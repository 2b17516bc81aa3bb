import pytest
import resend

from split_bills.mailer import Mailer, MailerError


def test_send_builds_resend_params(monkeypatch):
    sent = []
    monkeypatch.setattr(resend, "api_key", None)
    monkeypatch.setattr(resend.Emails, "send", lambda params: sent.append(params))

    mailer = Mailer("re_test", "Split Bills <bills@example.com>")
    mailer.send(["a@example.com"], "Totals", "<b>hi</b>", cc=["c@example.com"])

    assert resend.api_key == "re_test"
    assert sent == [
        {
            "from": "Split Bills <bills@example.com>",
            "to": ["a@example.com"],
            "subject": "Totals",
            "html": "<b>hi</b>",
            "cc": ["c@example.com"],
        }
    ]


def test_send_failure_raises_mailer_error(monkeypatch):
    def boom(params):
        raise RuntimeError("network down")

    monkeypatch.setattr(resend, "api_key", None)
    monkeypatch.setattr(resend.Emails, "send", boom)

    with pytest.raises(MailerError, match="network down"):
        Mailer("re_test", "bills@example.com").send(["a@example.com"], "s", "x")


def test_api_key_is_required():
    with pytest.raises(ValueError):
        Mailer("", "bills@example.com")
