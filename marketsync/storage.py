from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

VENUE_MARKET_FIELDS = (
    "question",
    "description",
    "url",
    "yes_price",
    "no_price",
    "last_price",
    "volume",
    "liquidity",
    "best_bid",
    "best_ask",
    "spread",
    "active",
    "closes_at",
    "resolved_at",
    "resolution",
    "category",
    "platform_data",
    "canonical_market_id",
    "synced_at",
)

CANONICAL_MARKET_FIELDS = (
    "question",
    "description",
    "category",
    "best_yes_price",
    "best_no_price",
    "best_yes_venue",
    "best_no_venue",
    "total_volume",
    "total_liquidity",
    "active",
    "resolution_date",
    "updated_at",
)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def init_db(path: str) -> None:
    conn = sqlite3.connect(path)
    try:
        cur = conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS venue_configs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                slug TEXT NOT NULL UNIQUE,
                display_name TEXT NOT NULL,
                base_url TEXT NOT NULL,
                chain_id INTEGER,
                health_status TEXT NOT NULL DEFAULT 'UNKNOWN',
                last_health_check TEXT,
                created_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS venue_markets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                venue_config_id INTEGER NOT NULL,
                external_id TEXT NOT NULL,
                question TEXT NOT NULL,
                description TEXT,
                url TEXT,
                yes_price REAL,
                no_price REAL,
                last_price REAL,
                volume REAL,
                liquidity REAL,
                best_bid REAL,
                best_ask REAL,
                spread REAL,
                active INTEGER NOT NULL DEFAULT 1,
                closes_at TEXT,
                resolved_at TEXT,
                resolution TEXT,
                category TEXT,
                platform_data TEXT,
                canonical_market_id INTEGER,
                synced_at TEXT,
                created_at TEXT,
                UNIQUE (venue_config_id, external_id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS canonical_markets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                slug TEXT NOT NULL UNIQUE,
                question TEXT NOT NULL,
                description TEXT,
                category TEXT,
                best_yes_price REAL,
                best_no_price REAL,
                best_yes_venue TEXT,
                best_no_venue TEXT,
                total_volume REAL,
                total_liquidity REAL,
                active INTEGER NOT NULL DEFAULT 1,
                resolution_date TEXT,
                created_at TEXT,
                updated_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS price_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                venue_market_id INTEGER NOT NULL,
                yes_price REAL NOT NULL,
                no_price REAL NOT NULL,
                volume REAL,
                liquidity REAL,
                best_bid REAL,
                best_ask REAL,
                ts TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sync_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                venue TEXT NOT NULL,
                kind TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                duration_ms INTEGER,
                markets_updated INTEGER,
                prices_updated INTEGER,
                error_count INTEGER,
                error_details TEXT
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_price_snapshots_market ON price_snapshots (venue_market_id)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_sync_logs_venue ON sync_logs (venue, status, started_at)"
        )
        conn.commit()
    finally:
        conn.close()


def ping(path: str) -> bool:
    try:
        conn = sqlite3.connect(path)
    except sqlite3.Error:
        return False
    try:
        conn.execute("SELECT 1").fetchone()
        return True
    except sqlite3.Error:
        return False
    finally:
        conn.close()


def _rows(cur: sqlite3.Cursor) -> list[dict]:
    columns = [col[0] for col in cur.description]
    return [dict(zip(columns, row)) for row in cur.fetchall()]


def _one(cur: sqlite3.Cursor) -> Optional[dict]:
    rows = _rows(cur)
    return rows[0] if rows else None


def _assignments(fields: dict, allowed: Iterable[str]) -> tuple[str, list[Any]]:
    allowed = set(allowed)
    unknown = [key for key in fields if key not in allowed]
    if unknown:
        raise ValueError(f"Unknown column(s): {', '.join(sorted(unknown))}")
    keys = list(fields)
    clause = ", ".join(f"{key}=?" for key in keys)
    return clause, [_encode(fields[key]) for key in keys]


def _encode(value: Any) -> Any:
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, dict):
        return json.dumps(value)
    return value


# Venue configuration


def get_venue_config(path: str, slug: str) -> Optional[dict]:
    conn = sqlite3.connect(path)
    try:
        cur = conn.execute("SELECT * FROM venue_configs WHERE slug=?", (slug,))
        return _one(cur)
    finally:
        conn.close()


def create_venue_config(
    path: str,
    slug: str,
    display_name: str,
    base_url: str,
    chain_id: Optional[int],
) -> int:
    conn = sqlite3.connect(path)
    try:
        cur = conn.execute(
            """
            INSERT INTO venue_configs (slug, display_name, base_url, chain_id, health_status, created_at)
            VALUES (?, ?, ?, ?, 'UNKNOWN', ?)
            """,
            (slug, display_name, base_url, chain_id, utc_now()),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def update_venue_health(path: str, venue_config_id: int, health_status: str) -> None:
    conn = sqlite3.connect(path)
    try:
        conn.execute(
            "UPDATE venue_configs SET health_status=?, last_health_check=? WHERE id=?",
            (health_status, utc_now(), venue_config_id),
        )
        conn.commit()
    finally:
        conn.close()


# Venue markets


def find_venue_market(path: str, venue_config_id: int, external_id: str) -> Optional[dict]:
    conn = sqlite3.connect(path)
    try:
        cur = conn.execute(
            "SELECT * FROM venue_markets WHERE venue_config_id=? AND external_id=?",
            (venue_config_id, external_id),
        )
        row = _one(cur)
    finally:
        conn.close()
    if row and row.get("platform_data"):
        row["platform_data"] = json.loads(row["platform_data"])
    return row


def create_venue_market(path: str, venue_config_id: int, external_id: str, fields: dict) -> int:
    _assignments(fields, VENUE_MARKET_FIELDS)
    keys = list(fields)
    columns = ", ".join(["venue_config_id", "external_id", "created_at", *keys])
    placeholders = ", ".join("?" for _ in range(len(keys) + 3))
    values = [venue_config_id, external_id, utc_now()] + [_encode(fields[key]) for key in keys]
    conn = sqlite3.connect(path)
    try:
        cur = conn.execute(
            f"INSERT INTO venue_markets ({columns}) VALUES ({placeholders})",
            values,
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def update_venue_market(path: str, venue_market_id: int, fields: dict) -> None:
    if not fields:
        return
    clause, values = _assignments(fields, VENUE_MARKET_FIELDS)
    conn = sqlite3.connect(path)
    try:
        conn.execute(f"UPDATE venue_markets SET {clause} WHERE id=?", (*values, venue_market_id))
        conn.commit()
    finally:
        conn.close()


def list_price_candidates(
    path: str,
    venue_config_id: int,
    limit: int,
    open_only: bool = False,
    now: Optional[str] = None,
) -> list[dict]:
    query = """
        SELECT id, external_id, platform_data, closes_at
        FROM venue_markets
        WHERE venue_config_id=? AND active=1 AND resolved_at IS NULL
    """
    params: list[Any] = [venue_config_id]
    if open_only:
        query += " AND (closes_at IS NULL OR closes_at > ?)"
        params.append(now or utc_now())
    query += " ORDER BY volume DESC, id ASC LIMIT ?"
    params.append(limit)
    conn = sqlite3.connect(path)
    try:
        rows = _rows(conn.execute(query, params))
    finally:
        conn.close()
    for row in rows:
        row["platform_data"] = json.loads(row["platform_data"]) if row.get("platform_data") else {}
    return rows


def count_venue_markets(path: str, venue_config_id: int, active_only: bool = False) -> int:
    query = "SELECT COUNT(*) FROM venue_markets WHERE venue_config_id=?"
    if active_only:
        query += " AND active=1"
    conn = sqlite3.connect(path)
    try:
        return int(conn.execute(query, (venue_config_id,)).fetchone()[0])
    finally:
        conn.close()


# Price history


def insert_price_snapshot(
    path: str,
    venue_market_id: int,
    yes_price: float,
    no_price: float,
    volume: Optional[float] = None,
    liquidity: Optional[float] = None,
    best_bid: Optional[float] = None,
    best_ask: Optional[float] = None,
) -> int:
    conn = sqlite3.connect(path)
    try:
        cur = conn.execute(
            """
            INSERT INTO price_snapshots (
                venue_market_id, yes_price, no_price, volume, liquidity, best_bid, best_ask, ts
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (venue_market_id, yes_price, no_price, volume, liquidity, best_bid, best_ask, utc_now()),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def list_price_snapshots(path: str, venue_market_id: int) -> list[dict]:
    conn = sqlite3.connect(path)
    try:
        cur = conn.execute(
            "SELECT * FROM price_snapshots WHERE venue_market_id=? ORDER BY id",
            (venue_market_id,),
        )
        return _rows(cur)
    finally:
        conn.close()


# Canonical markets


def find_canonical_market(path: str, slug: str) -> Optional[dict]:
    conn = sqlite3.connect(path)
    try:
        return _one(conn.execute("SELECT * FROM canonical_markets WHERE slug=?", (slug,)))
    finally:
        conn.close()


def create_canonical_market(path: str, slug: str, fields: dict) -> int:
    _assignments(fields, CANONICAL_MARKET_FIELDS)
    keys = list(fields)
    columns = ", ".join(["slug", "created_at", *keys])
    placeholders = ", ".join("?" for _ in range(len(keys) + 2))
    values = [slug, utc_now()] + [_encode(fields[key]) for key in keys]
    conn = sqlite3.connect(path)
    try:
        cur = conn.execute(
            f"INSERT INTO canonical_markets ({columns}) VALUES ({placeholders})",
            values,
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def update_canonical_market(path: str, canonical_market_id: int, fields: dict) -> None:
    if not fields:
        return
    clause, values = _assignments(fields, CANONICAL_MARKET_FIELDS)
    conn = sqlite3.connect(path)
    try:
        conn.execute(
            f"UPDATE canonical_markets SET {clause} WHERE id=?",
            (*values, canonical_market_id),
        )
        conn.commit()
    finally:
        conn.close()


# Sync log


def insert_sync_log(path: str, venue: str, kind: str, status: str) -> int:
    conn = sqlite3.connect(path)
    try:
        cur = conn.execute(
            "INSERT INTO sync_logs (venue, kind, status, started_at) VALUES (?, ?, ?, ?)",
            (venue, kind, status, utc_now()),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def complete_sync_log(
    path: str,
    entry_id: int,
    status: str,
    duration_ms: int,
    markets_updated: int,
    prices_updated: int,
    error_count: int,
    error_details: Optional[list[str]],
) -> None:
    conn = sqlite3.connect(path)
    try:
        conn.execute(
            """
            UPDATE sync_logs SET
                status=?,
                completed_at=?,
                duration_ms=?,
                markets_updated=?,
                prices_updated=?,
                error_count=?,
                error_details=?
            WHERE id=?
            """,
            (
                status,
                utc_now(),
                duration_ms,
                markets_updated,
                prices_updated,
                error_count,
                json.dumps(error_details) if error_details else None,
                entry_id,
            ),
        )
        conn.commit()
    finally:
        conn.close()


def latest_sync_log(path: str, venue: str, status: Optional[str] = None) -> Optional[dict]:
    query = "SELECT * FROM sync_logs WHERE venue=?"
    params: list[Any] = [venue]
    if status:
        query += " AND status=?"
        params.append(status)
    query += " ORDER BY COALESCE(completed_at, started_at) DESC, id DESC LIMIT 1"
    conn = sqlite3.connect(path)
    try:
        return _one(conn.execute(query, params))
    finally:
        conn.close()


def count_sync_logs(path: str, venue: str, status: str, since: str) -> int:
    conn = sqlite3.connect(path)
    try:
        row = conn.execute(
            "SELECT COUNT(*) FROM sync_logs WHERE venue=? AND status=? AND started_at >= ?",
            (venue, status, since),
        ).fetchone()
        return int(row[0])
    finally:
        conn.close()


def list_sync_logs(path: str, venue: Optional[str] = None, limit: int = 20) -> list[dict]:
    query = "SELECT * FROM sync_logs"
    params: list[Any] = []
    if venue:
        query += " WHERE venue=?"
        params.append(venue)
    query += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    conn = sqlite3.connect(path)
    try:
        rows = _rows(conn.execute(query, params))
    finally:
        conn.close()
    for row in rows:
        row["error_details"] = json.loads(row["error_details"]) if row.get("error_details") else []
    return rows
