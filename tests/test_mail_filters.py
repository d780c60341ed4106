"""Tests for the ingestion filter chain."""

from conftest import make_message

from ticketdesk.db.enums import SkipReason
from ticketdesk.services.mail_filters import is_likely_newsletter, run_filters


def _run(message, *, known=(), blocklist=()):
    return run_filters(
        message.thread_id,
        message,
        known_threads=set(known),
        blocklist=frozenset(blocklist),
        org_domain="vendora.se",
    )


def test_customer_mail_passes_with_lowercased_sender():
    result = _run(make_message("m1", "t1", sender="Anna <Anna@Example.com>"))
    assert result.passed
    assert result.sender == "anna@example.com"


def test_known_thread_wins_over_everything():
    message = make_message("m1", "t1", sender="")
    result = _run(message, known={"t1"})
    assert result.reason == SkipReason.EXISTING_THREAD


def test_missing_sender():
    result = _run(make_message("m1", "t1", sender="Mailer Daemon"))
    assert result.reason == SkipReason.MISSING_SENDER
    assert result.sample["thread_id"] == "t1"


def test_internal_sender_checked_before_blocklist():
    message = make_message("m1", "t1", sender="colleague@VENDORA.se")
    result = _run(message, blocklist={"colleague@vendora.se"})
    assert result.reason == SkipReason.INTERNAL_SENDER


def test_internal_when_any_from_address_is_on_org_domain():
    message = make_message("m1", "t1", sender="Kund <kund@example.com>, Agent <agent@vendora.se>")
    result = _run(message)
    assert result.reason == SkipReason.INTERNAL_SENDER
    assert result.sender == "kund@example.com"


def test_blocklisted_sender():
    result = _run(make_message("m1", "t1", sender="Spam <SPAM@example.com>"), blocklist={"spam@example.com"})
    assert result.reason == SkipReason.BLACKLISTED_SENDER
    assert result.sample["sender"] == "spam@example.com"


def test_bulk_headers_mark_newsletter():
    for header in (
        ("List-Unsubscribe", "<mailto:unsub@example.com>"),
        ("List-Id", "news.example.com"),
        ("Precedence", " Bulk "),
        ("Auto-Submitted", "auto-generated"),
    ):
        message = make_message("m1", "t1", extra_headers=(header,))
        assert _run(message).reason == SkipReason.NEWSLETTER, header


def test_auto_replied_is_not_bulk():
    message = make_message("m1", "t1", extra_headers=(("Auto-Submitted", "auto-replied"),))
    assert _run(message).passed


def test_noreply_sender_needs_marketing_wording():
    plain = make_message("m1", "t1", sender="no-reply@shop.example", body="Your order has shipped.")
    promo = make_message("m2", "t2", sender="noreply@shop.example", body="Big sale! Shop now.")

    assert not is_likely_newsletter(plain)
    assert is_likely_newsletter(promo)


def test_marketing_wording_alone_is_not_newsletter():
    message = make_message("m1", "t1", sender="kund@example.com", subject="Unsubscribe me please")
    assert _run(message).passed
