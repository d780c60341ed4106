"""Baseline migration - tickets, messages and mailbox ingestion tables

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-02-11

Creates the ticket store, the OAuth credential table, config, blocklist
and the ingestion run audit log.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create ticketing and ingestion tables."""

    # ==========================================================================
    # Tickets
    # ==========================================================================
    op.execute('''
        CREATE TABLE tickets (
            ticket_id VARCHAR(32) PRIMARY KEY,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            subject TEXT,
            status VARCHAR(32) NOT NULL DEFAULT 'New',
            priority VARCHAR(32) NOT NULL DEFAULT 'Normal',
            queue VARCHAR(32) NOT NULL,
            owner_email VARCHAR(320),
            sender_email VARCHAR(320),
            thread_id VARCHAR(255) NOT NULL,
            source_message_id TEXT,
            last_message_at TIMESTAMPTZ,
            tags TEXT NOT NULL DEFAULT '',
            CONSTRAINT uq_tickets_thread_id UNIQUE (thread_id),
            CONSTRAINT uq_tickets_source_message_id UNIQUE (source_message_id),
            CONSTRAINT ck_tickets_status CHECK (status IN ('New', 'InProgress', 'Waiting', 'Resolved')),
            CONSTRAINT ck_tickets_priority CHECK (priority IN ('Low', 'Normal', 'High', 'Urgent'))
        )
    ''')
    op.execute('CREATE INDEX idx_tickets_status ON tickets(status)')
    op.execute('CREATE INDEX idx_tickets_queue_created ON tickets(queue, created_at)')

    # ==========================================================================
    # Messages (owned by their ticket)
    # ==========================================================================
    op.execute('''
        CREATE TABLE messages (
            message_id VARCHAR(64) PRIMARY KEY,
            ticket_id VARCHAR(32) NOT NULL REFERENCES tickets(ticket_id) ON DELETE CASCADE,
            date TIMESTAMPTZ NOT NULL,
            from_address TEXT,
            to_address TEXT,
            subject TEXT,
            body TEXT,
            gmail_message_id VARCHAR(64),
            thread_id VARCHAR(255),
            CONSTRAINT uq_messages_gmail_message_id UNIQUE (gmail_message_id)
        )
    ''')
    op.execute('CREATE INDEX idx_messages_ticket_date ON messages(ticket_id, date)')

    # ==========================================================================
    # Gmail OAuth credentials (written by the sign-in flow)
    # ==========================================================================
    op.execute('''
        CREATE TABLE user_oauth_tokens (
            email VARCHAR(320) PRIMARY KEY,
            refresh_token TEXT,
            access_token TEXT,
            token_type VARCHAR(32),
            scope TEXT,
            expiry_date TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    # ==========================================================================
    # Config, blocklist, run audit log
    # ==========================================================================
    op.execute('''
        CREATE TABLE config (
            key VARCHAR(100) PRIMARY KEY,
            value TEXT
        )
    ''')
    op.execute('''
        CREATE TABLE blacklist (
            email VARCHAR(320) PRIMARY KEY,
            blocked_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE TABLE sync_logs (
            id SERIAL PRIMARY KEY,
            timestamp TIMESTAMPTZ NOT NULL DEFAULT now(),
            source VARCHAR(32) NOT NULL,
            user_email VARCHAR(320),
            action VARCHAR(50) NOT NULL DEFAULT 'GMAIL_SYNC',
            outcome VARCHAR(32) NOT NULL,
            details JSON
        )
    ''')
    op.execute('CREATE INDEX idx_sync_logs_action_timestamp ON sync_logs(action, timestamp)')


def downgrade() -> None:
    """Drop all ticketing tables."""

    # Drop tables in reverse order (respecting foreign keys)
    op.execute('DROP INDEX IF EXISTS idx_sync_logs_action_timestamp')
    op.execute('DROP TABLE IF EXISTS sync_logs')
    op.execute('DROP TABLE IF EXISTS blacklist')
    op.execute('DROP TABLE IF EXISTS config')
    op.execute('DROP TABLE IF EXISTS user_oauth_tokens')
    op.execute('DROP INDEX IF EXISTS idx_messages_ticket_date')
    op.execute('DROP TABLE IF EXISTS messages')
    op.execute('DROP INDEX IF EXISTS idx_tickets_queue_created')
    op.execute('DROP INDEX IF EXISTS idx_tickets_status')
    op.execute('DROP TABLE IF EXISTS tickets')
