"""PostgreSQL storage implementation."""

import json
import logging
import os
import uuid
from datetime import datetime

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor

from core.config import (
    VERSUS_ROOMS, REVERSE_ROOMS, REVERSE_PLAYERS, REVERSE_ANSWERS, UNIQUE_KEYS, CASCADES
)
from core.errors import NotFound, UniqueViolation
from core.interfaces import ChangeCallback, RoomStore, Subscription, WordStore
from core.models import AppConfig, normalize_config
from core.utils import to_iso

from server.memory_storage import ChangeFeed

logger = logging.getLogger(__name__)

NOTIFY_CHANNEL = 'vocab_changes'

# Store collection -> table name
TABLES = {
    VERSUS_ROOMS: 'vocab_versus_rooms',
    REVERSE_ROOMS: 'vocab_reverse_rooms',
    REVERSE_PLAYERS: 'vocab_reverse_players',
    REVERSE_ANSWERS: 'vocab_reverse_answers',
}

JSON_COLUMNS = {'player_a_words', 'player_b_words', 'current_question', 'game_words'}

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS vocab_users (
        id VARCHAR(64) PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        created_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vocab_words (
        id VARCHAR(64) PRIMARY KEY,
        word VARCHAR(255) NOT NULL,
        hint TEXT NOT NULL DEFAULT '',
        definition TEXT NOT NULL DEFAULT '',
        image_url TEXT,
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vocab_progress (
        user_id VARCHAR(64) NOT NULL REFERENCES vocab_users(id) ON DELETE CASCADE,
        word_id VARCHAR(64) NOT NULL REFERENCES vocab_words(id) ON DELETE CASCADE,
        level_id INTEGER NOT NULL DEFAULT 1,
        streak_correct INTEGER NOT NULL DEFAULT 0,
        total_right INTEGER NOT NULL DEFAULT 0,
        total_wrong INTEGER NOT NULL DEFAULT 0,
        last_reviewed_at TIMESTAMPTZ,
        due_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        last_result VARCHAR(10),
        PRIMARY KEY (user_id, word_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vocab_config (
        id INTEGER PRIMARY KEY DEFAULT 1,
        config JSONB NOT NULL,
        updated_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vocab_versus_rooms (
        id VARCHAR(64) PRIMARY KEY,
        room_code VARCHAR(8) NOT NULL UNIQUE,
        player_a_id VARCHAR(64) NOT NULL,
        player_b_id VARCHAR(64),
        status VARCHAR(20) NOT NULL DEFAULT 'waiting',
        current_turn VARCHAR(64),
        player_a_words JSONB DEFAULT '[]'::jsonb,
        player_b_words JSONB DEFAULT '[]'::jsonb,
        player_a_index INTEGER DEFAULT 0,
        player_b_index INTEGER DEFAULT 0,
        player_a_right_count INTEGER DEFAULT 0,
        player_b_right_count INTEGER DEFAULT 0,
        player_a_wrong_count INTEGER DEFAULT 0,
        player_b_wrong_count INTEGER DEFAULT 0,
        player_a_time BIGINT DEFAULT 0,
        player_b_time BIGINT DEFAULT 0,
        turn_start_time TIMESTAMPTZ,
        winner_id VARCHAR(64),
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vocab_reverse_rooms (
        id VARCHAR(64) PRIMARY KEY,
        room_code VARCHAR(8) NOT NULL UNIQUE,
        host_id VARCHAR(64) NOT NULL,
        status VARCHAR(20) NOT NULL DEFAULT 'waiting',
        total_questions INTEGER DEFAULT 10,
        current_question_index INTEGER DEFAULT 0,
        current_question JSONB,
        game_words JSONB DEFAULT '[]'::jsonb,
        question_start_time TIMESTAMPTZ,
        question_duration_ms INTEGER DEFAULT 15000,
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vocab_reverse_players (
        id VARCHAR(64) PRIMARY KEY,
        room_id VARCHAR(64) NOT NULL REFERENCES vocab_reverse_rooms(id) ON DELETE CASCADE,
        user_id VARCHAR(64) NOT NULL,
        player_name VARCHAR(255) NOT NULL,
        join_order INTEGER NOT NULL CHECK (join_order >= 1 AND join_order <= 5),
        total_score INTEGER DEFAULT 0,
        is_connected BOOLEAN DEFAULT true,
        last_heartbeat TIMESTAMPTZ DEFAULT NOW(),
        joined_at TIMESTAMPTZ DEFAULT NOW(),
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW(),
        UNIQUE (room_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vocab_reverse_answers (
        id VARCHAR(64) PRIMARY KEY,
        room_id VARCHAR(64) NOT NULL REFERENCES vocab_reverse_rooms(id) ON DELETE CASCADE,
        question_index INTEGER NOT NULL,
        user_id VARCHAR(64) NOT NULL,
        selected_word_id TEXT NOT NULL,
        is_correct BOOLEAN NOT NULL,
        was_only_correct BOOLEAN DEFAULT false,
        points_earned INTEGER DEFAULT 0,
        answer_time_ms INTEGER,
        answered_at TIMESTAMPTZ DEFAULT NOW(),
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW(),
        UNIQUE (room_id, question_index, user_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_reverse_players_room ON vocab_reverse_players(room_id)",
    "CREATE INDEX IF NOT EXISTS idx_reverse_answers_room_question "
    "ON vocab_reverse_answers(room_id, question_index)",
]


def _row_out(row: dict) -> dict:
    """Timestamps as ISO strings, like every other store."""
    return {k: to_iso(v) if isinstance(v, datetime) else v for k, v in dict(row).items()}


def _value_in(column: str, value):
    if column in JSON_COLUMNS and value is not None:
        return Json(value)
    return value


class PostgresStorage(RoomStore, WordStore):
    """PostgreSQL-backed word store and room store.

    Room writes notify NOTIFY_CHANNEL with {collection, event, id} for
    other processes and fan out full rows to in-process subscribers.
    """

    def __init__(self, db_url: str = None):
        self.db_url = db_url or os.environ.get(
            'DATABASE_URL',
            'postgresql://localhost:5432/vocab'
        )
        self._conn = None
        self._initialized = False
        self.feed = ChangeFeed()

    @property
    def conn(self):
        """Lazy connection initialization."""
        if self._conn is None or self._conn.closed:
            self._conn = psycopg2.connect(self.db_url)
            if not self._initialized:
                self._init_db()
                self._initialized = True
        return self._conn

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._conn.cursor() as cur:
            for statement in SCHEMA:
                cur.execute(statement)
        self._conn.commit()

    def close(self):
        """Close the database connection."""
        if self._conn and not self._conn.closed:
            self._conn.close()

    # Room store

    def _table(self, collection: str) -> sql.Identifier:
        if collection not in TABLES:
            raise NotFound(f"Unknown collection {collection}")
        return sql.Identifier(TABLES[collection])

    def _where(self, filters: dict) -> tuple[sql.Composable, list]:
        if not filters:
            return sql.SQL('TRUE'), []
        clauses = [sql.SQL('{} IS NOT DISTINCT FROM %s').format(sql.Identifier(k)) for k in filters]
        values = [_value_in(k, v) for k, v in filters.items()]
        return sql.SQL(' AND ').join(clauses), values

    def _notify(self, cur, collection: str, event: str, row_id: str) -> None:
        payload = json.dumps({'collection': collection, 'event': event, 'id': row_id})
        cur.execute("SELECT pg_notify(%s, %s)", (NOTIFY_CHANNEL, payload))

    def _write(self, query, values: list, collection: str, event: str) -> dict | None:
        """Run a single-row write returning the row, commit and notify."""
        try:
            with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, values)
                row = cur.fetchone()
                if row is not None:
                    self._notify(cur, collection, event, row['id'])
            self.conn.commit()
        except pg_errors.UniqueViolation:
            self.conn.rollback()
            fields = UNIQUE_KEYS.get(collection, [('id',)])[0]
            raise UniqueViolation(collection, fields)
        except Exception as e:
            logger.error(f"Error writing {collection}: {e}")
            self.conn.rollback()
            raise
        if row is None:
            return None
        row = _row_out(row)
        self.feed.publish(collection, event, row)
        return row

    def get(self, collection: str, row_id: str) -> dict:
        query = sql.SQL("SELECT * FROM {} WHERE id = %s").format(self._table(collection))
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, (row_id,))
            row = cur.fetchone()
        self.conn.commit()
        if row is None:
            raise NotFound(f"{collection} row {row_id} not found")
        return _row_out(row)

    def find(self, collection: str, **filters) -> list[dict]:
        where, values = self._where(filters)
        query = sql.SQL("SELECT * FROM {} WHERE {} ORDER BY created_at").format(
            self._table(collection), where
        )
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, values)
            rows = cur.fetchall()
        self.conn.commit()
        return [_row_out(r) for r in rows]

    def insert(self, collection: str, fields: dict) -> str:
        fields = {**fields, 'id': fields.get('id') or str(uuid.uuid4())}
        columns = list(fields)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            self._table(collection),
            sql.SQL(', ').join(sql.Identifier(c) for c in columns),
            sql.SQL(', ').join(sql.Placeholder() for _ in columns)
        )
        row = self._write(query, [_value_in(c, fields[c]) for c in columns], collection, 'insert')
        return row['id']

    def _update_query(self, collection: str, row_id: str, fields: dict, expected: dict):
        assignments = [sql.SQL('{} = %s').format(sql.Identifier(c)) for c in fields]
        assignments.append(sql.SQL('updated_at = NOW()'))
        where, where_values = self._where({'id': row_id, **expected})
        query = sql.SQL("UPDATE {} SET {} WHERE {} RETURNING *").format(
            self._table(collection), sql.SQL(', ').join(assignments), where
        )
        return query, [_value_in(c, v) for c, v in fields.items()] + where_values

    def update(self, collection: str, row_id: str, fields: dict) -> None:
        query, values = self._update_query(collection, row_id, fields, {})
        if self._write(query, values, collection, 'update') is None:
            raise NotFound(f"{collection} row {row_id} not found")

    def compare_and_update(self, collection: str, row_id: str, fields: dict,
                           expected: dict) -> bool:
        query, values = self._update_query(collection, row_id, fields, expected)
        if self._write(query, values, collection, 'update') is not None:
            return True
        # Distinguish a missing row from a failed comparison
        self.get(collection, row_id)
        return False

    def atomic_increment(self, collection: str, row_id: str, field: str, delta: int) -> int:
        column = sql.Identifier(field)
        query = sql.SQL(
            "UPDATE {} SET {} = COALESCE({}, 0) + %s, updated_at = NOW() WHERE id = %s RETURNING *"
        ).format(self._table(collection), column, column)
        row = self._write(query, [delta, row_id], collection, 'update')
        if row is None:
            raise NotFound(f"{collection} row {row_id} not found")
        return row[field]

    def delete(self, collection: str, row_id: str) -> bool:
        children = []
        for child, key in CASCADES.get(collection, []):
            children += [(child, r) for r in self.find(child, **{key: row_id})]
        query = sql.SQL("DELETE FROM {} WHERE id = %s RETURNING *").format(self._table(collection))
        row = self._write(query, [row_id], collection, 'delete')
        if row is None:
            return False
        for child, child_row in children:
            self.feed.publish(child, 'delete', child_row)
        return True

    def subscribe(self, collection: str, filters: dict, callback: ChangeCallback) -> Subscription:
        return self.feed.subscribe(collection, filters, callback)

    # Word store

    def load_config(self) -> dict:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute("SELECT config FROM vocab_config WHERE id = 1")
            row = cur.fetchone()
        self.conn.commit()
        if row:
            return row['config']
        return AppConfig.default().to_dict()

    def save_config(self, config: dict) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO vocab_config (id, config, updated_at)
                    VALUES (1, %s, NOW())
                    ON CONFLICT (id)
                    DO UPDATE SET config = EXCLUDED.config, updated_at = NOW()
                """, (Json(normalize_config(config).to_dict()),))
            self.conn.commit()
        except Exception as e:
            logger.error(f"Error saving config: {e}")
            self.conn.rollback()
            raise

    def list_users(self) -> list[dict]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute("SELECT id, name, created_at FROM vocab_users ORDER BY created_at")
            rows = cur.fetchall()
        self.conn.commit()
        return [_row_out(r) for r in rows]

    def get_user(self, user_id: str) -> dict | None:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute("SELECT id, name, created_at FROM vocab_users WHERE id = %s", (user_id,))
            row = cur.fetchone()
        self.conn.commit()
        return _row_out(row) if row else None

    def _first_level_id(self) -> int:
        return normalize_config(self.load_config()).first_level_id

    def create_user(self, name: str) -> str:
        user_id = str(uuid.uuid4())
        first_level = self._first_level_id()
        try:
            with self.conn.cursor() as cur:
                cur.execute("INSERT INTO vocab_users (id, name) VALUES (%s, %s)", (user_id, name.strip()))
                cur.execute("""
                    INSERT INTO vocab_progress (user_id, word_id, level_id)
                    SELECT %s, id, %s FROM vocab_words
                """, (user_id, first_level))
            self.conn.commit()
        except Exception as e:
            logger.error(f"Error creating user: {e}")
            self.conn.rollback()
            raise
        logger.info(f"Created user {name} ({user_id})")
        return user_id

    def get_words_with_progress(self, user_id: str) -> list[dict]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute("""
                SELECT w.id, w.word, w.hint, w.definition, w.image_url, w.created_at, w.updated_at,
                       p.level_id, p.streak_correct, p.total_right, p.total_wrong,
                       p.last_reviewed_at, p.due_at, p.last_result
                FROM vocab_words w
                JOIN vocab_progress p ON p.word_id = w.id AND p.user_id = %s
                ORDER BY lower(w.word)
            """, (user_id,))
            rows = cur.fetchall()
        self.conn.commit()
        return [_row_out(r) for r in rows]

    def create_word(self, word: str, hint: str, definition: str,
                    image_url: str | None = None) -> str:
        word_id = str(uuid.uuid4())
        first_level = self._first_level_id()
        try:
            with self.conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO vocab_words (id, word, hint, definition, image_url)
                    VALUES (%s, %s, %s, %s, %s)
                """, (word_id, word.strip(), (hint or '').strip(), (definition or '').strip(), image_url))
                cur.execute("""
                    INSERT INTO vocab_progress (user_id, word_id, level_id)
                    SELECT id, %s, %s FROM vocab_users
                """, (word_id, first_level))
            self.conn.commit()
        except Exception as e:
            logger.error(f"Error creating word: {e}")
            self.conn.rollback()
            raise
        return word_id

    def update_word(self, word_id: str, word: str, hint: str, definition: str,
                    image_url: str | None = None) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute("""
                    UPDATE vocab_words
                    SET word = %s, hint = %s, definition = %s, image_url = %s, updated_at = NOW()
                    WHERE id = %s
                """, (word.strip(), (hint or '').strip(), (definition or '').strip(), image_url, word_id))
                updated = cur.rowcount > 0
            self.conn.commit()
        except Exception as e:
            logger.error(f"Error updating word: {e}")
            self.conn.rollback()
            raise
        if not updated:
            raise NotFound(f"Word {word_id} not found")

    def delete_word(self, word_id: str) -> bool:
        try:
            with self.conn.cursor() as cur:
                cur.execute("DELETE FROM vocab_words WHERE id = %s", (word_id,))
                deleted = cur.rowcount > 0
            self.conn.commit()
            return deleted
        except Exception as e:
            logger.error(f"Error deleting word: {e}")
            self.conn.rollback()
            raise

    def save_progress(self, user_id: str, word_id: str, progress: dict) -> None:
        columns = ['level_id', 'streak_correct', 'total_right', 'total_wrong',
                   'last_reviewed_at', 'due_at', 'last_result']
        fields = {c: progress[c] for c in columns if c in progress}
        if not fields:
            return
        query = sql.SQL("UPDATE vocab_progress SET {} WHERE user_id = %s AND word_id = %s").format(
            sql.SQL(', ').join(sql.SQL('{} = %s').format(sql.Identifier(c)) for c in fields)
        )
        try:
            with self.conn.cursor() as cur:
                cur.execute(query, list(fields.values()) + [user_id, word_id])
                updated = cur.rowcount > 0
            self.conn.commit()
        except Exception as e:
            logger.error(f"Error saving progress: {e}")
            self.conn.rollback()
            raise
        if not updated:
            raise NotFound(f"No progress for user {user_id} word {word_id}")
