import sqlite3
from pathlib import Path

from .settings import Settings


def connect(db_path: str | Path, timeout: float = 5.0):
    conn = sqlite3.connect(str(db_path), timeout=timeout)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _column_exists(conn: sqlite3.Connection, table_name: str, column_name: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table_name})").fetchall()
    return any(row["name"] == column_name for row in rows)


def _updated_at_trigger(conn: sqlite3.Connection, table_name: str) -> None:
    conn.execute(
        f"""
        CREATE TRIGGER IF NOT EXISTS {table_name}_updated_at
        AFTER UPDATE ON {table_name}
        FOR EACH ROW
        WHEN NEW.updated_at = OLD.updated_at
        BEGIN
          UPDATE {table_name} SET updated_at = datetime('now') WHERE id = OLD.id;
        END;
        """
    )


def init_db(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    with connect(settings.db_path, settings.db_timeout) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS anggota (
              id TEXT PRIMARY KEY,
              nama TEXT NOT NULL,
              nomor_rekening TEXT NOT NULL UNIQUE,
              created_at TEXT NOT NULL DEFAULT (datetime('now')),
              updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS jenis_tabungan (
              id TEXT PRIMARY KEY,
              kode TEXT NOT NULL UNIQUE,
              nama TEXT NOT NULL,
              created_at TEXT NOT NULL DEFAULT (datetime('now')),
              updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tabungan (
              id TEXT PRIMARY KEY,
              anggota_id TEXT NOT NULL REFERENCES anggota(id) ON DELETE RESTRICT,
              jenis_tabungan_id TEXT NOT NULL REFERENCES jenis_tabungan(id) ON DELETE RESTRICT,
              saldo_sen INTEGER NOT NULL DEFAULT 0 CHECK(saldo_sen >= 0),
              status TEXT NOT NULL DEFAULT 'aktif' CHECK(status IN ('aktif','tutup')),
              created_at TEXT NOT NULL DEFAULT (datetime('now')),
              updated_at TEXT NOT NULL DEFAULT (datetime('now')),
              UNIQUE(anggota_id, jenis_tabungan_id)
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS pembiayaan (
              id TEXT PRIMARY KEY,
              anggota_id TEXT NOT NULL REFERENCES anggota(id) ON DELETE RESTRICT,
              jenis_pembiayaan TEXT NOT NULL,
              jumlah_sen INTEGER NOT NULL CHECK(jumlah_sen >= 0),
              sisa_sen INTEGER NOT NULL CHECK(sisa_sen >= 0),
              status TEXT NOT NULL DEFAULT 'aktif' CHECK(status IN ('aktif','lunas')),
              created_at TEXT NOT NULL DEFAULT (datetime('now')),
              updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS transaksi (
              id TEXT PRIMARY KEY,
              anggota_id TEXT NOT NULL REFERENCES anggota(id) ON DELETE RESTRICT,
              tipe_transaksi TEXT NOT NULL CHECK(tipe_transaksi IN ('masuk','keluar')),
              source_type TEXT NOT NULL CHECK(source_type IN ('tabungan','pembiayaan')),
              jumlah_sen INTEGER NOT NULL CHECK(jumlah_sen >= 0),
              sebelum_sen INTEGER NOT NULL,
              sesudah_sen INTEGER NOT NULL,
              deskripsi TEXT,
              tabungan_id TEXT REFERENCES tabungan(id) ON DELETE RESTRICT,
              pembiayaan_id TEXT REFERENCES pembiayaan(id) ON DELETE RESTRICT,
              idempotency_key TEXT UNIQUE,
              urutan INTEGER NOT NULL,
              created_at TEXT NOT NULL DEFAULT (datetime('now')),
              updated_at TEXT NOT NULL DEFAULT (datetime('now')),
              CHECK(
                (source_type = 'tabungan' AND tabungan_id IS NOT NULL AND pembiayaan_id IS NULL)
                OR (source_type = 'pembiayaan' AND pembiayaan_id IS NOT NULL AND tabungan_id IS NULL)
              )
            );
            """
        )
        # databases created before the pinjaman -> pembiayaan rename
        if _column_exists(conn, "transaksi", "pinjaman_id") and not _column_exists(
            conn, "transaksi", "pembiayaan_id"
        ):
            conn.execute(
                """
                ALTER TABLE transaksi
                RENAME COLUMN pinjaman_id TO pembiayaan_id
                """
            )
        if not _column_exists(conn, "transaksi", "idempotency_key"):
            conn.execute(
                """
                ALTER TABLE transaksi
                ADD COLUMN idempotency_key TEXT
                """
            )
        if not _column_exists(conn, "transaksi", "urutan"):
            conn.execute(
                """
                ALTER TABLE transaksi
                ADD COLUMN urutan INTEGER
                """
            )
            conn.execute("UPDATE transaksi SET urutan = rowid")
        conn.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_transaksi_idempotency_key
            ON transaksi(idempotency_key)
            """
        )
        for table_name in ("anggota", "jenis_tabungan", "tabungan", "pembiayaan", "transaksi"):
            _updated_at_trigger(conn, table_name)
        conn.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_transaksi_urutan
            ON transaksi(urutan)
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_transaksi_anggota_created
            ON transaksi(anggota_id, created_at DESC)
            """
        )
