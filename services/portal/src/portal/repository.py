from __future__ import annotations

import sqlite3
import threading
import uuid
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from common.utils import display_name, format_iso, now_utc_iso, pair_key

from portal.errors import ConversationNotFound
from portal.models import (
    ChatHistory,
    Company,
    Conversation,
    HistoryMessage,
    Identity,
    Message,
    OtpType,
    Participant,
    Role,
    ScheduledDeletion,
)

IDENTITY_COLUMNS = """
    user_id,
    first_name,
    last_name,
    email,
    role,
    company_id,
    provider,
    is_confirmed,
    created_at,
    updated_at
"""


class PortalRepository:
    def __init__(self, database_path: str) -> None:
        self.database_path = Path(database_path)
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise RuntimeError("Database connection is not initialized")
        return self._connection

    def connect(self) -> None:
        with self._lock:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.database_path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'user',
                    company_id TEXT,
                    provider TEXT NOT NULL DEFAULT 'system',
                    is_confirmed INTEGER NOT NULL DEFAULT 0,
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    deleted_at TEXT,
                    change_credential_time TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS user_otps (
                    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
                    otp_type TEXT NOT NULL,
                    code_hash TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, otp_type)
                );

                CREATE TABLE IF NOT EXISTS revoked_tokens (
                    token_id TEXT PRIMARY KEY,
                    expires_at TEXT NOT NULL,
                    revoked_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS companies (
                    company_id TEXT PRIMARY KEY,
                    company_name TEXT NOT NULL UNIQUE,
                    company_email TEXT NOT NULL UNIQUE,
                    description TEXT,
                    created_by TEXT NOT NULL REFERENCES users(user_id),
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS company_hrs (
                    company_id TEXT NOT NULL REFERENCES companies(company_id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL REFERENCES users(user_id),
                    added_at TEXT NOT NULL,
                    PRIMARY KEY (company_id, user_id)
                );

                CREATE TABLE IF NOT EXISTS conversations (
                    conversation_id TEXT PRIMARY KEY,
                    pair_key TEXT NOT NULL UNIQUE,
                    participant_a TEXT NOT NULL,
                    participant_b TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL
                        REFERENCES conversations(conversation_id) ON DELETE CASCADE,
                    body TEXT NOT NULL,
                    sender_id TEXT NOT NULL,
                    sent_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_messages_conversation
                    ON messages (conversation_id, id);

                CREATE TABLE IF NOT EXISTS scheduled_deletions (
                    job_id TEXT PRIMARY KEY,
                    pair_key TEXT NOT NULL,
                    requested_by TEXT NOT NULL,
                    counterpart TEXT NOT NULL,
                    due_at TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    execution_token TEXT,
                    created_at TEXT NOT NULL,
                    executed_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_scheduled_deletions_due
                    ON scheduled_deletions (status, due_at);
                """
            )
            self._connection.commit()

    def close(self) -> None:
        with self._lock:
            if self._connection is None:
                return
            self._connection.close()
            self._connection = None

    # Identities

    def create_user(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        password_hash: str,
        role: Role = Role.USER,
        provider: str = "system",
    ) -> Identity:
        with self._lock:
            now = now_utc_iso()
            user_id = uuid.uuid4().hex
            try:
                self.connection.execute(
                    """
                    INSERT INTO users (
                        user_id,
                        first_name,
                        last_name,
                        email,
                        password_hash,
                        role,
                        provider,
                        created_at,
                        updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        first_name.strip(),
                        last_name.strip(),
                        email.strip().lower(),
                        password_hash,
                        role.value,
                        provider,
                        now,
                        now,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                self.connection.rollback()
                raise ValueError(f"User already exists: {email}") from exc
            self.connection.commit()
            return self.get_identity_or_raise(user_id)

    def get_identity_or_raise(self, user_id: str) -> Identity:
        identity = self.get_identity(user_id)
        if identity is None:
            raise KeyError(f"Unknown user_id: {user_id}")
        return identity

    def get_identity(self, user_id: str) -> Identity | None:
        with self._lock:
            row = self.connection.execute(
                f"""
                SELECT {IDENTITY_COLUMNS}
                FROM users
                WHERE user_id = ? AND is_deleted = 0
                """,
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            return self._to_identity(row)

    def get_identity_by_email(self, email: str) -> Identity | None:
        with self._lock:
            row = self.connection.execute(
                f"""
                SELECT {IDENTITY_COLUMNS}
                FROM users
                WHERE email = ? AND is_deleted = 0
                """,
                (email.strip().lower(),),
            ).fetchone()
            if row is None:
                return None
            return self._to_identity(row)

    def get_password_hash(self, user_id: str) -> str | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT password_hash FROM users WHERE user_id = ? AND is_deleted = 0",
                (user_id,),
            ).fetchone()
            return row["password_hash"] if row else None

    def existing_user_ids(self, user_ids: Iterable[str]) -> set[str]:
        wanted = sorted({user_id for user_id in user_ids if user_id})
        if not wanted:
            return set()
        placeholders = ", ".join("?" for _ in wanted)
        with self._lock:
            rows = self.connection.execute(
                f"""
                SELECT user_id
                FROM users
                WHERE is_deleted = 0 AND user_id IN ({placeholders})
                """,
                wanted,
            ).fetchall()
            return {row["user_id"] for row in rows}

    def mark_confirmed(self, user_id: str) -> None:
        with self._lock:
            now = now_utc_iso()
            self.connection.execute(
                """
                UPDATE users
                SET is_confirmed = 1, change_credential_time = ?, updated_at = ?
                WHERE user_id = ?
                """,
                (now, now, user_id),
            )
            self.connection.execute(
                "DELETE FROM user_otps WHERE user_id = ? AND otp_type = ?",
                (user_id, OtpType.CONFIRM_EMAIL.value),
            )
            self.connection.commit()

    def update_password(self, user_id: str, password_hash: str) -> None:
        with self._lock:
            now = now_utc_iso()
            self.connection.execute(
                """
                UPDATE users
                SET password_hash = ?, change_credential_time = ?, updated_at = ?
                WHERE user_id = ?
                """,
                (password_hash, now, now, user_id),
            )
            self.connection.execute(
                "DELETE FROM user_otps WHERE user_id = ? AND otp_type = ?",
                (user_id, OtpType.FORGET_PASSWORD.value),
            )
            self.connection.commit()

    def soft_delete_user(self, user_id: str) -> bool:
        with self._lock:
            now = now_utc_iso()
            cursor = self.connection.execute(
                """
                UPDATE users
                SET is_deleted = 1, deleted_at = ?, updated_at = ?
                WHERE user_id = ? AND is_deleted = 0
                """,
                (now, now, user_id),
            )
            self.connection.commit()
            return cursor.rowcount > 0

    # One-time codes

    def replace_otp(
        self,
        user_id: str,
        otp_type: OtpType,
        *,
        code_hash: str,
        expires_at: datetime,
    ) -> None:
        with self._lock:
            self.connection.execute(
                """
                INSERT INTO user_otps (user_id, otp_type, code_hash, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, otp_type) DO UPDATE SET
                    code_hash = excluded.code_hash,
                    expires_at = excluded.expires_at
                """,
                (user_id, otp_type.value, code_hash, format_iso(expires_at)),
            )
            self.connection.commit()

    def get_otp(self, user_id: str, otp_type: OtpType) -> tuple[str, str] | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT code_hash, expires_at
                FROM user_otps
                WHERE user_id = ? AND otp_type = ?
                """,
                (user_id, otp_type.value),
            ).fetchone()
            if row is None:
                return None
            return row["code_hash"], row["expires_at"]

    def purge_expired_otps(self, now: datetime) -> int:
        with self._lock:
            cursor = self.connection.execute(
                "DELETE FROM user_otps WHERE expires_at < ?",
                (format_iso(now),),
            )
            self.connection.commit()
            return cursor.rowcount

    # Revoked tokens

    def revoke_tokens(self, entries: Iterable[tuple[str, datetime]]) -> int:
        with self._lock:
            now = now_utc_iso()
            inserted = 0
            for token_id, expires_at in entries:
                cursor = self.connection.execute(
                    """
                    INSERT OR IGNORE INTO revoked_tokens (token_id, expires_at, revoked_at)
                    VALUES (?, ?, ?)
                    """,
                    (token_id, format_iso(expires_at), now),
                )
                inserted += cursor.rowcount
            self.connection.commit()
            return inserted

    def is_token_revoked(self, token_id: str) -> bool:
        with self._lock:
            row = self.connection.execute(
                "SELECT 1 FROM revoked_tokens WHERE token_id = ?",
                (token_id,),
            ).fetchone()
            return row is not None

    def purge_expired_revocations(self, now: datetime) -> int:
        with self._lock:
            cursor = self.connection.execute(
                "DELETE FROM revoked_tokens WHERE expires_at < ?",
                (format_iso(now),),
            )
            self.connection.commit()
            return cursor.rowcount

    # Companies

    def create_company(
        self,
        *,
        owner_id: str,
        company_name: str,
        company_email: str,
        description: str | None,
        hr_ids: list[str],
    ) -> Company:
        with self._lock:
            now = now_utc_iso()
            company_id = uuid.uuid4().hex
            try:
                self.connection.execute(
                    """
                    INSERT INTO companies (
                        company_id,
                        company_name,
                        company_email,
                        description,
                        created_by,
                        created_at,
                        updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        company_id,
                        company_name.strip(),
                        company_email.strip().lower(),
                        description,
                        owner_id,
                        now,
                        now,
                    ),
                )
                self._insert_company_hrs(company_id, hr_ids, now)
                self._assign_company(company_id, [owner_id, *hr_ids], now)
            except sqlite3.IntegrityError as exc:
                self.connection.rollback()
                raise ValueError("Company already exists") from exc
            self.connection.commit()
            return self.get_company_or_raise(company_id)

    def add_company_hrs(self, company_id: str, owner_id: str, hr_ids: list[str]) -> Company | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT company_id
                FROM companies
                WHERE company_id = ? AND created_by = ? AND is_deleted = 0
                """,
                (company_id, owner_id),
            ).fetchone()
            if row is None:
                return None
            now = now_utc_iso()
            self._insert_company_hrs(company_id, hr_ids, now)
            self._assign_company(company_id, hr_ids, now)
            self.connection.execute(
                "UPDATE companies SET updated_at = ? WHERE company_id = ?",
                (now, company_id),
            )
            self.connection.commit()
            return self.get_company_or_raise(company_id)

    def _insert_company_hrs(self, company_id: str, hr_ids: list[str], now: str) -> None:
        for hr_id in dict.fromkeys(hr_ids):
            self.connection.execute(
                """
                INSERT OR IGNORE INTO company_hrs (company_id, user_id, added_at)
                VALUES (?, ?, ?)
                """,
                (company_id, hr_id, now),
            )

    def _assign_company(self, company_id: str, user_ids: list[str], now: str) -> None:
        for user_id in dict.fromkeys(user_ids):
            self.connection.execute(
                """
                UPDATE users
                SET role = ?, company_id = ?, updated_at = ?
                WHERE user_id = ?
                """,
                (Role.ADMIN.value, company_id, now, user_id),
            )

    def get_company_or_raise(self, company_id: str) -> Company:
        company = self.get_company(company_id)
        if company is None:
            raise KeyError(f"Unknown company_id: {company_id}")
        return company

    def get_company(self, company_id: str) -> Company | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT
                    company_id,
                    company_name,
                    company_email,
                    description,
                    created_by,
                    created_at,
                    updated_at
                FROM companies
                WHERE company_id = ? AND is_deleted = 0
                """,
                (company_id,),
            ).fetchone()
            if row is None:
                return None
            hr_rows = self.connection.execute(
                """
                SELECT user_id
                FROM company_hrs
                WHERE company_id = ?
                ORDER BY added_at, user_id
                """,
                (company_id,),
            ).fetchall()
            return Company(
                company_id=row["company_id"],
                company_name=row["company_name"],
                company_email=row["company_email"],
                description=row["description"],
                created_by=row["created_by"],
                hrs=[hr_row["user_id"] for hr_row in hr_rows],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )

    def is_hr_or_company_owner(self, user_id: str) -> bool:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT 1
                FROM companies AS c
                WHERE c.is_deleted = 0
                  AND (
                    c.created_by = ?
                    OR EXISTS (
                        SELECT 1
                        FROM company_hrs AS h
                        WHERE h.company_id = c.company_id AND h.user_id = ?
                    )
                  )
                LIMIT 1
                """,
                (user_id, user_id),
            ).fetchone()
            return row is not None

    # Conversations

    def find_conversation(self, first_id: str, second_id: str) -> Conversation | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT conversation_id, participant_a, participant_b, created_at, updated_at
                FROM conversations
                WHERE pair_key = ?
                """,
                (pair_key(first_id, second_id),),
            ).fetchone()
            if row is None:
                return None
            return self._to_conversation(row)

    def append_message(self, first_id: str, second_id: str, message: Message) -> Conversation:
        with self._lock:
            row = self.connection.execute(
                "SELECT conversation_id FROM conversations WHERE pair_key = ?",
                (pair_key(first_id, second_id),),
            ).fetchone()
            if row is None:
                raise ConversationNotFound(pair_key(first_id, second_id))
            conversation_id = row["conversation_id"]
            try:
                self._insert_message(conversation_id, message)
            except sqlite3.Error:
                self.connection.rollback()
                raise
            self.connection.commit()
            return self._get_conversation_or_raise(conversation_id)

    def create_conversation(
        self,
        sender_id: str,
        receiver_id: str,
        message: Message,
    ) -> Conversation:
        """Create the pair's conversation if absent and append the opening message.

        Creation is an upsert on the unordered pair key, so a racing creator
        appends to the winner's conversation instead of forking a second one.
        """
        with self._lock:
            now = now_utc_iso()
            key = pair_key(sender_id, receiver_id)
            try:
                self.connection.execute(
                    """
                    INSERT INTO conversations (
                        conversation_id,
                        pair_key,
                        participant_a,
                        participant_b,
                        created_at,
                        updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(pair_key) DO NOTHING
                    """,
                    (uuid.uuid4().hex, key, sender_id, receiver_id, now, now),
                )
                conversation_id = self.connection.execute(
                    "SELECT conversation_id FROM conversations WHERE pair_key = ?",
                    (key,),
                ).fetchone()["conversation_id"]
                self._insert_message(conversation_id, message)
            except sqlite3.Error:
                self.connection.rollback()
                raise
            self.connection.commit()
            return self._get_conversation_or_raise(conversation_id)

    def remove_conversation(self, first_id: str, second_id: str) -> bool:
        with self._lock:
            cursor = self.connection.execute(
                "DELETE FROM conversations WHERE pair_key = ?",
                (pair_key(first_id, second_id),),
            )
            self.connection.commit()
            return cursor.rowcount > 0

    def fetch_history(self, first_id: str, second_id: str) -> ChatHistory:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT conversation_id, participant_a, participant_b
                FROM conversations
                WHERE pair_key = ?
                """,
                (pair_key(first_id, second_id),),
            ).fetchone()
            if row is None:
                return ChatHistory()

            participant_ids = [row["participant_a"], row["participant_b"]]
            message_rows = self.connection.execute(
                """
                SELECT m.body, m.sender_id, m.sent_at, u.first_name, u.last_name
                FROM messages AS m
                LEFT JOIN users AS u ON u.user_id = m.sender_id
                WHERE m.conversation_id = ?
                ORDER BY m.id
                """,
                (row["conversation_id"],),
            ).fetchall()
            names = self._display_names(participant_ids)
            return ChatHistory(
                conversation_id=row["conversation_id"],
                participants=[
                    Participant(user_id=user_id, name=names.get(user_id, ""))
                    for user_id in participant_ids
                ],
                messages=[
                    HistoryMessage(
                        body=message_row["body"],
                        sender_id=message_row["sender_id"],
                        sender_name=display_name(
                            message_row["first_name"], message_row["last_name"]
                        ),
                        sent_at=message_row["sent_at"],
                    )
                    for message_row in message_rows
                ],
            )

    def _insert_message(self, conversation_id: str, message: Message) -> None:
        self.connection.execute(
            """
            INSERT INTO messages (conversation_id, body, sender_id, sent_at)
            VALUES (?, ?, ?, ?)
            """,
            (conversation_id, message.body, message.sender_id, message.sent_at),
        )
        self.connection.execute(
            "UPDATE conversations SET updated_at = ? WHERE conversation_id = ?",
            (message.sent_at, conversation_id),
        )

    def _display_names(self, user_ids: list[str]) -> dict[str, str]:
        placeholders = ", ".join("?" for _ in user_ids)
        rows = self.connection.execute(
            f"""
            SELECT user_id, first_name, last_name
            FROM users
            WHERE user_id IN ({placeholders})
            """,
            user_ids,
        ).fetchall()
        return {row["user_id"]: display_name(row["first_name"], row["last_name"]) for row in rows}

    def _get_conversation_or_raise(self, conversation_id: str) -> Conversation:
        row = self.connection.execute(
            """
            SELECT conversation_id, participant_a, participant_b, created_at, updated_at
            FROM conversations
            WHERE conversation_id = ?
            """,
            (conversation_id,),
        ).fetchone()
        if row is None:
            raise ConversationNotFound(conversation_id)
        return self._to_conversation(row)

    # Scheduled deletions

    def schedule_deletion(
        self,
        *,
        requested_by: str,
        counterpart: str,
        due_at: datetime,
    ) -> ScheduledDeletion:
        with self._lock:
            key = pair_key(requested_by, counterpart)
            existing = self.connection.execute(
                """
                SELECT *
                FROM scheduled_deletions
                WHERE pair_key = ? AND status = 'pending'
                ORDER BY due_at
                LIMIT 1
                """,
                (key,),
            ).fetchone()
            if existing is not None:
                return self._to_scheduled_deletion(existing)

            job_id = uuid.uuid4().hex
            self.connection.execute(
                """
                INSERT INTO scheduled_deletions (
                    job_id,
                    pair_key,
                    requested_by,
                    counterpart,
                    due_at,
                    status,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, 'pending', ?)
                """,
                (job_id, key, requested_by, counterpart, format_iso(due_at), now_utc_iso()),
            )
            self.connection.commit()
            return self.get_scheduled_deletion_or_raise(job_id)

    def cancel_deletion(self, first_id: str, second_id: str) -> bool:
        with self._lock:
            cursor = self.connection.execute(
                """
                UPDATE scheduled_deletions
                SET status = 'cancelled', executed_at = ?
                WHERE pair_key = ? AND status = 'pending'
                """,
                (now_utc_iso(), pair_key(first_id, second_id)),
            )
            self.connection.commit()
            return cursor.rowcount > 0

    def list_due_deletions(self, now: datetime) -> list[ScheduledDeletion]:
        with self._lock:
            rows = self.connection.execute(
                """
                SELECT *
                FROM scheduled_deletions
                WHERE status = 'pending' AND due_at <= ?
                ORDER BY due_at
                """,
                (format_iso(now),),
            ).fetchall()
            return [self._to_scheduled_deletion(row) for row in rows]

    def execute_deletion(self, job_id: str, execution_token: str, now: datetime) -> bool:
        """Claim a due job and delete its conversation in one transaction."""
        with self._lock:
            stamp = format_iso(now)
            try:
                claim = self.connection.execute(
                    """
                    UPDATE scheduled_deletions
                    SET status = 'done', execution_token = ?, executed_at = ?
                    WHERE job_id = ? AND status = 'pending' AND due_at <= ?
                    """,
                    (execution_token, stamp, job_id, stamp),
                )
                if claim.rowcount != 1:
                    self.connection.rollback()
                    return False
                self.connection.execute(
                    """
                    DELETE FROM conversations
                    WHERE pair_key = (
                        SELECT pair_key FROM scheduled_deletions WHERE job_id = ?
                    )
                    """,
                    (job_id,),
                )
            except sqlite3.Error:
                self.connection.rollback()
                raise
            self.connection.commit()
            return True

    def get_scheduled_deletion_or_raise(self, job_id: str) -> ScheduledDeletion:
        deletion = self.get_scheduled_deletion(job_id)
        if deletion is None:
            raise KeyError(f"Unknown job_id: {job_id}")
        return deletion

    def get_scheduled_deletion(self, job_id: str) -> ScheduledDeletion | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT * FROM scheduled_deletions WHERE job_id = ?",
                (job_id,),
            ).fetchone()
            if row is None:
                return None
            return self._to_scheduled_deletion(row)

    def _to_identity(self, row: sqlite3.Row) -> Identity:
        return Identity(
            user_id=row["user_id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=row["email"],
            role=Role(row["role"]),
            company_id=row["company_id"],
            provider=row["provider"],
            is_confirmed=bool(row["is_confirmed"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _to_conversation(self, row: sqlite3.Row) -> Conversation:
        message_rows = self.connection.execute(
            """
            SELECT body, sender_id, sent_at
            FROM messages
            WHERE conversation_id = ?
            ORDER BY id
            """,
            (row["conversation_id"],),
        ).fetchall()
        return Conversation(
            conversation_id=row["conversation_id"],
            participant_a=row["participant_a"],
            participant_b=row["participant_b"],
            messages=[
                Message(
                    body=message_row["body"],
                    sender_id=message_row["sender_id"],
                    sent_at=message_row["sent_at"],
                )
                for message_row in message_rows
            ],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _to_scheduled_deletion(self, row: sqlite3.Row) -> ScheduledDeletion:
        return ScheduledDeletion(
            job_id=row["job_id"],
            pair_key=row["pair_key"],
            requested_by=row["requested_by"],
            counterpart=row["counterpart"],
            due_at=row["due_at"],
            status=row["status"],
            created_at=row["created_at"],
            executed_at=row["executed_at"],
        )
