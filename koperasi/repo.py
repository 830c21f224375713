import sqlite3
import uuid

from .db import connect
from .errors import ConflictError, InputError, NotFoundError
from .models import Direction, RecordOutcome, SavingsSource, TransactionIntent


# largest value a SQLite INTEGER column can hold
MAX_BALANCE_SEN = 2**63 - 1


def _new_id() -> str:
    return str(uuid.uuid4())


def create_member(db_path, nama: str, nomor_rekening: str, *, timeout: float = 5.0) -> str:
    member_name = nama.strip()
    if not member_name:
        raise InputError("nama required")
    member_id = _new_id()
    with connect(db_path, timeout) as conn:
        try:
            conn.execute(
                """
                INSERT INTO anggota(id, nama, nomor_rekening)
                VALUES (?, ?, ?)
                """,
                (member_id, member_name, nomor_rekening.strip()),
            )
        except sqlite3.IntegrityError as exc:
            raise InputError("nomor rekening already exists") from exc
    return member_id


def create_savings_type(db_path, kode: str, nama: str, *, timeout: float = 5.0) -> str:
    type_id = _new_id()
    with connect(db_path, timeout) as conn:
        try:
            conn.execute(
                """
                INSERT INTO jenis_tabungan(id, kode, nama)
                VALUES (?, ?, ?)
                """,
                (type_id, kode.strip(), nama.strip()),
            )
        except sqlite3.IntegrityError as exc:
            raise InputError("kode jenis tabungan already exists") from exc
    return type_id


def open_savings_account(
    db_path, anggota_id: str, jenis_tabungan_id: str, *, timeout: float = 5.0
) -> str:
    account_id = _new_id()
    with connect(db_path, timeout) as conn:
        try:
            conn.execute(
                """
                INSERT INTO tabungan(id, anggota_id, jenis_tabungan_id, saldo_sen)
                VALUES (?, ?, ?, 0)
                """,
                (account_id, anggota_id, jenis_tabungan_id),
            )
        except sqlite3.IntegrityError as exc:
            raise InputError("savings account already exists or references are invalid") from exc
    return account_id


def create_financing(
    db_path,
    anggota_id: str,
    jenis_pembiayaan: str,
    jumlah_sen: int,
    *,
    timeout: float = 5.0,
) -> str:
    financing_id = _new_id()
    with connect(db_path, timeout) as conn:
        try:
            conn.execute(
                """
                INSERT INTO pembiayaan(id, anggota_id, jenis_pembiayaan, jumlah_sen, sisa_sen)
                VALUES (?, ?, ?, ?, ?)
                """,
                (financing_id, anggota_id, jenis_pembiayaan, jumlah_sen, jumlah_sen),
            )
        except sqlite3.IntegrityError as exc:
            raise InputError("financing references are invalid") from exc
    return financing_id


def get_savings_account(db_path, account_id: str, *, timeout: float = 5.0):
    with connect(db_path, timeout) as conn:
        return conn.execute(
            """
            SELECT id, anggota_id, jenis_tabungan_id, saldo_sen, status
            FROM tabungan
            WHERE id = ?
            """,
            (account_id,),
        ).fetchone()


def get_financing(db_path, financing_id: str, *, timeout: float = 5.0):
    with connect(db_path, timeout) as conn:
        return conn.execute(
            """
            SELECT id, anggota_id, jenis_pembiayaan, jumlah_sen, sisa_sen, status
            FROM pembiayaan
            WHERE id = ?
            """,
            (financing_id,),
        ).fetchone()


def _apply_savings(conn, intent: TransactionIntent):
    account = conn.execute(
        """
        SELECT id, saldo_sen, status
        FROM tabungan
        WHERE anggota_id = ? AND jenis_tabungan_id = ?
        """,
        (intent.anggota_id, intent.source.savings_type_id),
    ).fetchone()
    if account is None or account["status"] != "aktif":
        return None, "Rekening tabungan untuk jenis tabungan ini tidak ditemukan"

    before = int(account["saldo_sen"])
    if intent.direction is Direction.MASUK:
        after = before + intent.amount_sen
        if after > MAX_BALANCE_SEN:
            return None, "Saldo melebihi batas maksimum"
    else:
        if intent.amount_sen > before:
            return None, "Saldo tidak mencukupi"
        after = before - intent.amount_sen

    conn.execute(
        "UPDATE tabungan SET saldo_sen = ? WHERE id = ?",
        (after, account["id"]),
    )
    return (before, after, account["id"], None), None


def _apply_financing(conn, intent: TransactionIntent):
    financing = conn.execute(
        """
        SELECT id, anggota_id, sisa_sen
        FROM pembiayaan
        WHERE id = ?
        """,
        (intent.source.financing_id,),
    ).fetchone()
    if financing is None or financing["anggota_id"] != intent.anggota_id:
        return None, "Pembiayaan tidak ditemukan"

    # the tracked balance is the outstanding amount
    before = int(financing["sisa_sen"])
    if intent.direction is Direction.MASUK:
        if intent.amount_sen > before:
            return None, "Jumlah pembayaran melebihi sisa pembayaran"
        after = before - intent.amount_sen
    else:
        after = before + intent.amount_sen
        if after > MAX_BALANCE_SEN:
            return None, "Sisa pembayaran melebihi batas maksimum"

    conn.execute(
        "UPDATE pembiayaan SET sisa_sen = ?, status = ? WHERE id = ?",
        (after, "lunas" if after == 0 else "aktif", financing["id"]),
    )
    return (before, after, None, financing["id"]), None


def record_transaction(
    db_path,
    intent: TransactionIntent,
    *,
    idempotency_key: str | None = None,
    timeout: float = 5.0,
) -> RecordOutcome:
    """Apply the balance mutation and append the ledger row in one transaction.

    Business rejections (unknown member, missing account, insufficient
    balance) come back as an unsuccessful ``RecordOutcome`` and leave the
    database untouched. Reusing an idempotency key for a different movement
    raises ``ConflictError``. Database failures propagate as ``sqlite3.Error``.
    """
    with connect(db_path, timeout) as conn:
        conn.execute("BEGIN IMMEDIATE")

        if idempotency_key:
            existing = conn.execute(
                """
                SELECT id, anggota_id, tipe_transaksi, source_type, jumlah_sen
                FROM transaksi
                WHERE idempotency_key = ?
                """,
                (idempotency_key,),
            ).fetchone()
            if existing is not None:
                if (
                    existing["anggota_id"],
                    existing["tipe_transaksi"],
                    existing["source_type"],
                    existing["jumlah_sen"],
                ) != (
                    intent.anggota_id,
                    intent.direction.value,
                    intent.source.source_type.value,
                    intent.amount_sen,
                ):
                    raise ConflictError(
                        "Idempotency-Key already used for a different transaction"
                    )
                return RecordOutcome(
                    success=True, transaction_id=existing["id"], replayed=True
                )

        member = conn.execute(
            "SELECT id FROM anggota WHERE id = ?", (intent.anggota_id,)
        ).fetchone()
        if member is None:
            return RecordOutcome(success=False, error="Anggota tidak ditemukan")

        if isinstance(intent.source, SavingsSource):
            applied, error = _apply_savings(conn, intent)
        else:
            applied, error = _apply_financing(conn, intent)
        if error is not None:
            return RecordOutcome(success=False, error=error)

        before, after, tabungan_id, pembiayaan_id = applied
        txn_id = _new_id()
        conn.execute(
            """
            INSERT INTO transaksi(
              id, anggota_id, tipe_transaksi, source_type, jumlah_sen,
              sebelum_sen, sesudah_sen, deskripsi, tabungan_id, pembiayaan_id,
              idempotency_key, urutan
            )
            VALUES (
              ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
              (SELECT COALESCE(MAX(urutan), 0) + 1 FROM transaksi)
            )
            """,
            (
                txn_id,
                intent.anggota_id,
                intent.direction.value,
                intent.source.source_type.value,
                intent.amount_sen,
                before,
                after,
                intent.deskripsi,
                tabungan_id,
                pembiayaan_id,
                idempotency_key,
            ),
        )
        return RecordOutcome(success=True, transaction_id=txn_id)


def list_transactions(
    db_path, *, limit: int = 100, anggota_id: str | None = None, timeout: float = 5.0
):
    query = """
        SELECT
          t.id, t.anggota_id, t.tipe_transaksi, t.source_type, t.deskripsi,
          t.jumlah_sen, t.sebelum_sen, t.sesudah_sen,
          t.pembiayaan_id, t.tabungan_id, t.created_at, t.updated_at,
          a.nama AS anggota_nama,
          a.nomor_rekening AS anggota_nomor_rekening,
          tb.saldo_sen AS tabungan_saldo_sen,
          tb.jenis_tabungan_id AS tabungan_jenis_id,
          jt.nama AS tabungan_jenis_nama,
          jt.kode AS tabungan_jenis_kode,
          p.jumlah_sen AS pembiayaan_jumlah_sen,
          p.sisa_sen AS pembiayaan_sisa_sen,
          p.jenis_pembiayaan AS pembiayaan_jenis
        FROM transaksi t
        LEFT JOIN anggota a ON a.id = t.anggota_id
        LEFT JOIN tabungan tb ON tb.id = t.tabungan_id
        LEFT JOIN jenis_tabungan jt ON jt.id = tb.jenis_tabungan_id
        LEFT JOIN pembiayaan p ON p.id = t.pembiayaan_id
    """
    params: tuple = ()
    if anggota_id is not None:
        query += " WHERE t.anggota_id = ?"
        params = (anggota_id,)
    query += " ORDER BY t.urutan DESC LIMIT ?"
    with connect(db_path, timeout) as conn:
        return conn.execute(query, params + (limit,)).fetchall()


def get_transaction(db_path, txn_id: str, *, timeout: float = 5.0):
    with connect(db_path, timeout) as conn:
        return conn.execute(
            """
            SELECT id, anggota_id, tipe_transaksi, jumlah_sen, source_type,
                   tabungan_id, pembiayaan_id, sebelum_sen, sesudah_sen
            FROM transaksi
            WHERE id = ?
            """,
            (txn_id,),
        ).fetchone()


def delete_transaction(db_path, txn_id: str, *, timeout: float = 5.0) -> None:
    """Remove a ledger row and reverse the balance mutation it caused.

    Only the most recent row of an account can be removed; older rows are
    frozen by the snapshots of the rows recorded after them.
    """
    with connect(db_path, timeout) as conn:
        conn.execute("BEGIN IMMEDIATE")
        row = conn.execute(
            """
            SELECT urutan, id, source_type, tabungan_id, pembiayaan_id,
                   sebelum_sen, sesudah_sen
            FROM transaksi
            WHERE id = ?
            """,
            (txn_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError("Transaction not found")

        if row["source_type"] == "tabungan":
            account_column, account_id = "tabungan_id", row["tabungan_id"]
        else:
            account_column, account_id = "pembiayaan_id", row["pembiayaan_id"]

        later = conn.execute(
            f"""
            SELECT 1 FROM transaksi
            WHERE {account_column} = ? AND urutan > ?
            LIMIT 1
            """,
            (account_id, row["urutan"]),
        ).fetchone()
        if later is not None:
            raise ConflictError(
                "Transaction cannot be deleted: a later transaction exists on the same account"
            )

        delta = int(row["sesudah_sen"]) - int(row["sebelum_sen"])
        if row["source_type"] == "tabungan":
            conn.execute(
                "UPDATE tabungan SET saldo_sen = saldo_sen - ? WHERE id = ?",
                (delta, account_id),
            )
        else:
            conn.execute(
                """
                UPDATE pembiayaan
                SET sisa_sen = sisa_sen - ?,
                    status = CASE WHEN sisa_sen - ? = 0 THEN 'lunas' ELSE 'aktif' END
                WHERE id = ?
                """,
                (delta, delta, account_id),
            )

        conn.execute("DELETE FROM transaksi WHERE id = ?", (txn_id,))
