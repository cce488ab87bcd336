"""
Persistent store for sessions, payments, tickets, replies and runtime config.

``Storage`` is the contract the bot and API depend on; ``PostgresStorage`` is
the asyncpg implementation. Reads return None for missing rows instead of
raising.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import asyncpg

from services.models import (
    EscalationTicket,
    FunnelState,
    PaymentIntent,
    PaymentStatus,
    PaymentSubState,
    Reply,
    ReplySource,
    UserSession,
)

logger = logging.getLogger(__name__)


SCHEMA_SQL = [
    """
    DO $$ BEGIN
        CREATE TYPE user_step AS ENUM ('HOME', 'STEP_1', 'STEP_2', 'STEP_3', 'PAYMENT');
    EXCEPTION WHEN duplicate_object THEN null;
    END $$;
    """,
    """
    DO $$ BEGIN
        CREATE TYPE payment_status AS ENUM ('pending', 'paid', 'cancelled', 'processing');
    EXCEPTION WHEN duplicate_object THEN null;
    END $$;
    """,
    """
    CREATE TABLE IF NOT EXISTS bot_users (
        tg_id TEXT PRIMARY KEY,
        username TEXT,
        current_step user_step NOT NULL DEFAULT 'HOME',
        claimed_bonus BOOLEAN NOT NULL DEFAULT false,
        payment_amount INTEGER,
        payment_player_id TEXT,
        payment_sub_step TEXT,
        created_at TIMESTAMP DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        id VARCHAR PRIMARY KEY,
        tg_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        amount INTEGER NOT NULL CHECK (amount > 0),
        status payment_status NOT NULL DEFAULT 'pending',
        invoice_id TEXT,
        created_at TIMESTAMP DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS payments_invoice_idx ON payments (invoice_id);",
    """
    CREATE TABLE IF NOT EXISTS bot_config (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS manager_messages (
        id VARCHAR PRIMARY KEY,
        tg_id TEXT NOT NULL,
        username TEXT,
        user_step TEXT,
        reason TEXT,
        resolved BOOLEAN NOT NULL DEFAULT false,
        created_at TIMESTAMP DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS message_replies (
        id VARCHAR PRIMARY KEY,
        message_id VARCHAR NOT NULL REFERENCES manager_messages (id),
        text TEXT NOT NULL,
        source TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT now()
    );
    """,
]


class Storage(ABC):
    """Async persistence contract."""

    async def init_schema(self) -> None:
        """Create tables if needed. No-op for stores without a schema."""

    # Sessions
    @abstractmethod
    async def get_session(self, external_id: str) -> Optional[UserSession]: ...

    @abstractmethod
    async def create_session(self, session: UserSession) -> UserSession: ...

    @abstractmethod
    async def save_session(self, session: UserSession) -> UserSession: ...

    @abstractmethod
    async def list_sessions(self) -> List[UserSession]: ...

    # Payments
    @abstractmethod
    async def create_payment(self, payment: PaymentIntent) -> PaymentIntent: ...

    @abstractmethod
    async def get_payment(self, payment_id: str) -> Optional[PaymentIntent]: ...

    @abstractmethod
    async def get_payment_by_invoice(self, invoice_ref: str) -> Optional[PaymentIntent]: ...

    @abstractmethod
    async def update_payment(self, payment: PaymentIntent) -> Optional[PaymentIntent]: ...

    @abstractmethod
    async def list_payments(self) -> List[PaymentIntent]: ...

    # Config
    @abstractmethod
    async def get_config(self, key: str) -> Optional[str]: ...

    @abstractmethod
    async def set_config(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def all_config(self) -> Dict[str, str]: ...

    # Tickets
    @abstractmethod
    async def create_ticket(self, ticket: EscalationTicket) -> EscalationTicket: ...

    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[EscalationTicket]: ...

    @abstractmethod
    async def list_tickets(self) -> List[EscalationTicket]: ...

    @abstractmethod
    async def resolve_ticket(self, ticket_id: str) -> Optional[EscalationTicket]: ...

    @abstractmethod
    async def add_reply(self, reply: Reply) -> Reply: ...

    @abstractmethod
    async def list_replies(self, ticket_id: str) -> List[Reply]: ...

    @abstractmethod
    async def count_open_tickets(self) -> int: ...


def _session_from_row(row) -> UserSession:
    return UserSession(
        external_id=row["tg_id"],
        display_handle=row["username"],
        funnel_state=FunnelState(row["current_step"]),
        bonus_claimed=row["claimed_bonus"],
        payment_sub_state=PaymentSubState(row["payment_sub_step"]) if row["payment_sub_step"] else None,
        pending_amount=row["payment_amount"],
        pending_player_ref=row["payment_player_id"],
        created_at=row["created_at"],
    )


def _payment_from_row(row) -> PaymentIntent:
    return PaymentIntent(
        id=row["id"],
        external_id=row["tg_id"],
        player_ref=row["player_id"],
        amount=row["amount"],
        status=PaymentStatus(row["status"]),
        provider_invoice_ref=row["invoice_id"],
        created_at=row["created_at"],
    )


def _ticket_from_row(row) -> EscalationTicket:
    return EscalationTicket(
        id=row["id"],
        external_id=row["tg_id"],
        display_handle=row["username"],
        funnel_state_at_creation=FunnelState(row["user_step"]) if row["user_step"] else None,
        reason_text=row["reason"] or "",
        resolved=row["resolved"],
        created_at=row["created_at"],
    )


def _reply_from_row(row) -> Reply:
    return Reply(
        id=row["id"],
        ticket_id=row["message_id"],
        text=row["text"],
        source=ReplySource(row["source"]),
        created_at=row["created_at"],
    )


class PostgresStorage(Storage):
    """asyncpg-backed store. One pooled connection per call."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def init_schema(self) -> None:
        logger.info("Initializing database tables...")
        async with self.pool.acquire() as con:
            for statement in SCHEMA_SQL:
                await con.execute(statement)
        logger.info("✅ Database tables initialized")

    async def get_session(self, external_id: str) -> Optional[UserSession]:
        async with self.pool.acquire() as con:
            row = await con.fetchrow("SELECT * FROM bot_users WHERE tg_id = $1", external_id)
        return _session_from_row(row) if row else None

    async def create_session(self, session: UserSession) -> UserSession:
        async with self.pool.acquire() as con:
            row = await con.fetchrow("""
                INSERT INTO bot_users (tg_id, username, current_step, claimed_bonus,
                                       payment_amount, payment_player_id, payment_sub_step, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                ON CONFLICT (tg_id) DO UPDATE SET username = COALESCE(EXCLUDED.username, bot_users.username)
                RETURNING *
            """, session.external_id, session.display_handle, session.funnel_state.value,
                 session.bonus_claimed, session.pending_amount, session.pending_player_ref,
                 session.payment_sub_state.value if session.payment_sub_state else None,
                 session.created_at)
        return _session_from_row(row)

    async def save_session(self, session: UserSession) -> UserSession:
        # Full-row write: last write wins when two events race for one user
        async with self.pool.acquire() as con:
            row = await con.fetchrow("""
                UPDATE bot_users SET
                    username = $2,
                    current_step = $3,
                    claimed_bonus = $4,
                    payment_amount = $5,
                    payment_player_id = $6,
                    payment_sub_step = $7
                WHERE tg_id = $1
                RETURNING *
            """, session.external_id, session.display_handle, session.funnel_state.value,
                 session.bonus_claimed, session.pending_amount, session.pending_player_ref,
                 session.payment_sub_state.value if session.payment_sub_state else None)
        return _session_from_row(row) if row else session

    async def list_sessions(self) -> List[UserSession]:
        async with self.pool.acquire() as con:
            rows = await con.fetch("SELECT * FROM bot_users ORDER BY created_at DESC")
        return [_session_from_row(r) for r in rows]

    async def create_payment(self, payment: PaymentIntent) -> PaymentIntent:
        async with self.pool.acquire() as con:
            row = await con.fetchrow("""
                INSERT INTO payments (id, tg_id, player_id, amount, status, invoice_id, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
            """, payment.id, payment.external_id, payment.player_ref, payment.amount,
                 payment.status.value, payment.provider_invoice_ref, payment.created_at)
        return _payment_from_row(row)

    async def get_payment(self, payment_id: str) -> Optional[PaymentIntent]:
        async with self.pool.acquire() as con:
            row = await con.fetchrow("SELECT * FROM payments WHERE id = $1", payment_id)
        return _payment_from_row(row) if row else None

    async def get_payment_by_invoice(self, invoice_ref: str) -> Optional[PaymentIntent]:
        async with self.pool.acquire() as con:
            row = await con.fetchrow("SELECT * FROM payments WHERE invoice_id = $1", invoice_ref)
        return _payment_from_row(row) if row else None

    async def update_payment(self, payment: PaymentIntent) -> Optional[PaymentIntent]:
        async with self.pool.acquire() as con:
            row = await con.fetchrow("""
                UPDATE payments SET status = $2, invoice_id = $3
                WHERE id = $1
                RETURNING *
            """, payment.id, payment.status.value, payment.provider_invoice_ref)
        return _payment_from_row(row) if row else None

    async def list_payments(self) -> List[PaymentIntent]:
        async with self.pool.acquire() as con:
            rows = await con.fetch("SELECT * FROM payments ORDER BY created_at DESC")
        return [_payment_from_row(r) for r in rows]

    async def get_config(self, key: str) -> Optional[str]:
        async with self.pool.acquire() as con:
            return await con.fetchval("SELECT value FROM bot_config WHERE key = $1", key)

    async def set_config(self, key: str, value: str) -> None:
        async with self.pool.acquire() as con:
            await con.execute("""
                INSERT INTO bot_config (key, value) VALUES ($1, $2)
                ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value
            """, key, value)

    async def all_config(self) -> Dict[str, str]:
        async with self.pool.acquire() as con:
            rows = await con.fetch("SELECT key, value FROM bot_config ORDER BY key")
        return {r["key"]: r["value"] for r in rows}

    async def create_ticket(self, ticket: EscalationTicket) -> EscalationTicket:
        async with self.pool.acquire() as con:
            row = await con.fetchrow("""
                INSERT INTO manager_messages (id, tg_id, username, user_step, reason, resolved, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
            """, ticket.id, ticket.external_id, ticket.display_handle,
                 ticket.funnel_state_at_creation.value if ticket.funnel_state_at_creation else None,
                 ticket.reason_text, ticket.resolved, ticket.created_at)
        return _ticket_from_row(row)

    async def get_ticket(self, ticket_id: str) -> Optional[EscalationTicket]:
        async with self.pool.acquire() as con:
            row = await con.fetchrow("SELECT * FROM manager_messages WHERE id = $1", ticket_id)
        return _ticket_from_row(row) if row else None

    async def list_tickets(self) -> List[EscalationTicket]:
        async with self.pool.acquire() as con:
            rows = await con.fetch("SELECT * FROM manager_messages ORDER BY created_at DESC")
        return [_ticket_from_row(r) for r in rows]

    async def resolve_ticket(self, ticket_id: str) -> Optional[EscalationTicket]:
        async with self.pool.acquire() as con:
            row = await con.fetchrow(
                "UPDATE manager_messages SET resolved = true WHERE id = $1 RETURNING *",
                ticket_id
            )
        return _ticket_from_row(row) if row else None

    async def add_reply(self, reply: Reply) -> Reply:
        async with self.pool.acquire() as con:
            row = await con.fetchrow("""
                INSERT INTO message_replies (id, message_id, text, source, created_at)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING *
            """, reply.id, reply.ticket_id, reply.text, reply.source.value, reply.created_at)
        return _reply_from_row(row)

    async def list_replies(self, ticket_id: str) -> List[Reply]:
        async with self.pool.acquire() as con:
            rows = await con.fetch(
                "SELECT * FROM message_replies WHERE message_id = $1 ORDER BY created_at ASC",
                ticket_id
            )
        return [_reply_from_row(r) for r in rows]

    async def count_open_tickets(self) -> int:
        async with self.pool.acquire() as con:
            return await con.fetchval("SELECT COUNT(*) FROM manager_messages WHERE resolved = false")
