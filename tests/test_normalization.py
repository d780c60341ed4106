"""Tests for address, Message-ID and subject normalization."""

from ticketdesk.utils import (
    extract_email_domain,
    extract_emails,
    normalize_message_id,
    normalize_subject,
)


def test_extract_emails_from_display_name_header():
    assert extract_emails('"Anna Kund" <Anna.Kund@Example.COM>, other@test.se') == [
        "anna.kund@example.com",
        "other@test.se",
    ]


def test_extract_emails_empty_header():
    assert extract_emails("") == []
    assert extract_emails("Undisclosed recipients") == []


def test_extract_email_domain():
    assert extract_email_domain("Agent@Vendora.SE") == "vendora.se"
    assert extract_email_domain("not-an-address") is None


def test_normalize_message_id_strips_brackets_and_lowercases():
    assert normalize_message_id("  <ABC.123@Mail.Example.com> ") == "abc.123@mail.example.com"


def test_normalize_message_id_blank_is_none():
    assert normalize_message_id("") is None
    assert normalize_message_id("   ") is None
    assert normalize_message_id("<>") is None
    assert normalize_message_id(None) is None


def test_normalize_subject_drops_one_leading_tag():
    assert normalize_subject("[VEN-ABCDEF0123]   Order   Missing") == "order missing"
    assert normalize_subject("[A] [B] Hello") == "[b] hello"


def test_normalize_subject_keeps_inner_brackets_and_edges():
    assert normalize_subject("Re: [ext] Hello ") == "re: [ext] hello "
    assert normalize_subject(None) == ""
