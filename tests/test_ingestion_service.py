"""Tests for the mailbox ingestion pipeline."""

from datetime import datetime, timezone

from conftest import (
    BASE_TIME,
    FakeClientFactory,
    FakeMailbox,
    add_account,
    make_message,
    make_thread,
    minutes_after,
    set_config,
)

from ticketdesk.db.enums import QueueLabel, SkipReason, TicketPriority, TicketStatus
from ticketdesk.db.models import Message, Ticket
from ticketdesk.services.gmail_client import GmailApiError
from ticketdesk.services.ingestion_service import (
    NO_READABLE_ACCOUNTS,
    fetch_new_emails,
    first_inbound_message,
)
from ticketdesk.services.oauth_service import GmailAuthError
from ticketdesk.services.ticket_writer import insert_messages

NOW = datetime(2026, 3, 3, 12, 0, tzinfo=timezone.utc)


def _run(db, factory, **kwargs):
    kwargs.setdefault("configured_start", "2026-02-11T20:00:00")
    kwargs.setdefault("now", NOW)
    return fetch_new_emails(db, client_factory=factory, **kwargs)


def test_creates_ticket_with_full_history(db, account):
    first = make_message(
        "g1", "t1",
        subject="Trasig skärm",
        body="My screen arrived broken, what do I do now?",
        message_id="<First-Msg@Example.com>",
        date=BASE_TIME,
    )
    last = make_message(
        "g2", "t1",
        subject="Re: Trasig skärm",
        to="rma@vendora.se",
        body="Any update?",
        message_id="<second@example.com>",
        date=minutes_after(BASE_TIME, 30),
    )
    factory = FakeClientFactory({account.email: FakeMailbox.with_threads(make_thread("t1", first, last))})

    report = _run(db, factory)

    assert report.ok
    assert report.created == 1
    assert report.messages_written == 2
    assert report.threads_listed == 1
    assert report.threads_fetched == 1
    assert not report.had_errors

    ticket = db.query(Ticket).one()
    assert ticket.ticket_id.startswith("VEN-")
    assert len(ticket.ticket_id) == 14
    assert ticket.subject == f"[{ticket.ticket_id}] Re: Trasig skärm"
    # Classified from the last message (addressed to the RMA alias)
    assert ticket.queue == QueueLabel.RMA
    assert ticket.status == TicketStatus.NEW
    assert ticket.priority == TicketPriority.NORMAL
    assert ticket.owner_email is None
    assert ticket.sender_email == "kund@example.com"
    # Source id comes from the first message of the conversation
    assert ticket.source_message_id == "first-msg@example.com"

    messages = db.query(Message).order_by(Message.date).all()
    assert [m.message_id for m in messages] == ["MSG-g1", "MSG-g2"]
    assert all(m.ticket_id == ticket.ticket_id for m in messages)
    assert factory.mailboxes[account.email].closed


def test_second_run_is_idempotent_and_skips_fetch(db, account):
    mailbox = FakeMailbox.with_threads(make_thread("t1"), make_thread("t2"))
    factory = FakeClientFactory({account.email: mailbox})

    assert _run(db, factory).created == 2
    mailbox.fetched.clear()

    report = _run(db, factory)

    assert report.created == 0
    assert report.skipped(SkipReason.EXISTING_THREAD) == 2
    assert report.threads_fetched == 0
    assert mailbox.fetched == []
    assert db.query(Ticket).count() == 2
    assert db.query(Message).count() == 2


def test_same_source_message_id_in_two_mailboxes_creates_one_ticket(db):
    add_account(db, "a@vendora.se")
    add_account(db, "b@vendora.se")
    factory = FakeClientFactory(
        {
            "a@vendora.se": FakeMailbox.with_threads(make_thread("tA", message_id="<msg-1@example.com>")),
            "b@vendora.se": FakeMailbox.with_threads(make_thread("tB", message_id="<MSG-1@example.com>")),
        }
    )

    report = _run(db, factory)

    assert report.created == 1
    assert report.skipped(SkipReason.DUPLICATE_MESSAGE_ID) == 1
    assert report.skip_samples[SkipReason.DUPLICATE_MESSAGE_ID][0]["thread_id"] == "tB"
    assert db.query(Ticket).one().thread_id == "tA"


def test_list_error_is_isolated_to_its_account(db):
    add_account(db, "a@vendora.se")
    add_account(db, "b@vendora.se")
    broken = FakeMailbox(list_error=GmailApiError(429, "Rate limit exceeded"))
    factory = FakeClientFactory(
        {"a@vendora.se": broken, "b@vendora.se": FakeMailbox.with_threads(make_thread("t1"))}
    )

    report = _run(db, factory)

    assert report.ok
    assert report.created == 1
    assert report.had_errors
    assert [(e.email, e.error) for e in report.list_errors] == [("a@vendora.se", "Rate limit exceeded")]
    stats = report.to_dict()["stats"]
    assert stats["user_list_errors"] == 1
    assert stats["user_list_error_details"] == [{"email": "a@vendora.se", "error": "Rate limit exceeded"}]
    assert broken.closed


def test_refresh_failure_counts_as_list_error(db):
    add_account(db, "a@vendora.se")

    def factory(token):
        raise GmailAuthError("Gmail token refresh failed: invalid_grant")

    report = _run(db, factory)

    assert report.ok
    assert report.list_errors[0].error == "Gmail token refresh failed: invalid_grant"


def test_unavailable_client_skips_account_silently(db, account):
    report = _run(db, lambda token: None)

    assert report.ok
    assert report.accounts_scanned == 1
    assert report.list_errors == ()
    assert report.threads_listed == 0


def test_fetch_error_skips_only_that_conversation(db, account):
    mailbox = FakeMailbox.with_threads(make_thread("t1"), make_thread("t2"), make_thread("t3"))
    mailbox.fetch_errors.add("t2")

    report = _run(db, FakeClientFactory({account.email: mailbox}))

    assert report.created == 2
    assert report.thread_fetch_errors == 1
    assert report.threads_fetched == 2
    assert report.had_errors
    assert {t.thread_id for t in db.query(Ticket)} == {"t1", "t3"}


def test_pagination_is_capped_per_account(db, account):
    threads = [make_thread(f"t{i}") for i in range(7)]
    mailbox = FakeMailbox.with_threads(*threads, page_size=2)

    report = _run(db, FakeClientFactory({account.email: mailbox}), max_threads=5)

    assert report.threads_listed == 5
    assert report.created == 5
    # Stops paging once the cap is reached
    assert len(mailbox.queries) == 3


def test_pagination_follows_all_pages_under_cap(db, account):
    mailbox = FakeMailbox.with_threads(*[make_thread(f"t{i}") for i in range(5)], page_size=2)

    report = _run(db, FakeClientFactory({account.email: mailbox}))

    assert report.threads_listed == 5
    assert len(mailbox.queries) == 3


def test_filters_and_unclassified_are_counted(db, account):
    set_config(db, "KEYWORDS_FINANCE", "faktura")
    db.commit()
    mailbox = FakeMailbox.with_threads(
        make_thread("internal", sender="colleague@vendora.se"),
        make_thread("news", extra_headers=(("List-Id", "promo.example.com"),)),
        make_thread("nogroup", to="someone@partner.example", body="Just checking in on things."),
        make_thread("finance", to="someone@partner.example", body="Where is my faktura?"),
    )

    report = _run(db, FakeClientFactory({account.email: mailbox}))

    assert report.created == 1
    assert report.skipped(SkipReason.INTERNAL_SENDER) == 1
    assert report.skipped(SkipReason.NEWSLETTER) == 1
    assert report.skipped(SkipReason.NO_GROUP) == 1
    assert report.skip_samples[SkipReason.NO_GROUP][0]["thread_id"] == "nogroup"
    assert db.query(Ticket).one().queue == QueueLabel.FINANCE


def test_blocklisted_sender_is_skipped(db, account):
    from ticketdesk.services.blocklist_service import block_sender

    block_sender(db, "Kund@Example.com")
    db.commit()
    mailbox = FakeMailbox.with_threads(make_thread("t1"))

    report = _run(db, FakeClientFactory({account.email: mailbox}))

    assert report.created == 0
    assert report.skipped(SkipReason.BLACKLISTED_SENDER) == 1


def test_query_starts_at_later_of_window_and_credential(db):
    add_account(db, "late@vendora.se", created_at=datetime(2026, 2, 25, 8, 0, tzinfo=timezone.utc))
    mailbox = FakeMailbox.with_threads()

    report = _run(db, FakeClientFactory({"late@vendora.se": mailbox}))

    assert mailbox.queries == ["after:2026/02/25 -in:chats -in:drafts -in:trash"]
    assert report.query == "after:2026/02/11 -in:chats -in:drafts -in:trash"
    assert report.start_time_reason == "configured"


def test_no_readable_accounts_fails_run(db):
    add_account(db, "sendonly@vendora.se", scope="https://www.googleapis.com/auth/gmail.send")
    add_account(db, "norefresh@vendora.se", refresh_token="")

    report = _run(db, FakeClientFactory())

    assert not report.ok
    assert report.reason == NO_READABLE_ACCOUNTS
    assert report.created == 0


def test_skip_samples_are_capped(db, account):
    mailbox = FakeMailbox.with_threads(
        *[make_thread(f"t{i}", sender=f"staff{i}@vendora.se") for i in range(8)]
    )

    report = _run(db, FakeClientFactory({account.email: mailbox}))

    assert report.skipped(SkipReason.INTERNAL_SENDER) == 8
    assert len(report.skip_samples[SkipReason.INTERNAL_SENDER]) == 5


def test_refetched_messages_are_not_duplicated(db, account):
    thread = make_thread("t1")
    _run(db, FakeClientFactory({account.email: FakeMailbox.with_threads(thread)}))
    ticket = db.query(Ticket).one()

    written = insert_messages(db, ticket_id=ticket.ticket_id, thread_id="t1", messages=thread.messages)
    db.commit()

    assert written == 0
    assert db.query(Message).count() == 1


def test_source_id_comes_from_first_inbound_message(db, account):
    outbound = make_message(
        "g1", "t1",
        sender="Support <support@vendora.se>",
        to="kund@example.com",
        subject="Your order",
        message_id="<outbound@vendora.se>",
        date=BASE_TIME,
    )
    reply = make_message(
        "g2", "t1",
        subject="Re: Your order",
        message_id="<Reply@Example.com>",
        date=minutes_after(BASE_TIME, 10),
    )
    factory = FakeClientFactory({account.email: FakeMailbox.with_threads(make_thread("t1", outbound, reply))})

    report = _run(db, factory)

    assert report.created == 1
    assert db.query(Ticket).one().source_message_id == "reply@example.com"


def test_first_inbound_falls_back_to_oldest_message():
    only_internal = make_thread(
        "t1",
        make_message("g1", "t1", sender="a@vendora.se", message_id="<a@vendora.se>"),
        make_message("g2", "t1", sender="b@vendora.se", message_id="<b@vendora.se>"),
    )
    assert first_inbound_message(only_internal, "vendora.se").id == "g1"
