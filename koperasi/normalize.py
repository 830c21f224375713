"""Map joined ledger rows onto the transaction feed shape.

The store returns one flat row per ledger entry with member, savings and
financing columns already joined in. Consumers expect nested objects, and
still read the financing under its old ``pinjaman`` name.
"""

from .models import Direction, SourceType, Transaction


def sen_to_rupiah(sen):
    if sen is None:
        return None
    # JSON numbers, as consumers expect; exact while sen stays below 2**53,
    # which request amounts are capped well under
    return int(sen) / 100


def row_to_transaction(row) -> Transaction:
    return Transaction(
        id=row["id"],
        anggota_id=row["anggota_id"],
        direction=Direction(row["tipe_transaksi"]),
        source_type=SourceType(row["source_type"]),
        amount_sen=int(row["jumlah_sen"]),
        sebelum_sen=int(row["sebelum_sen"]),
        sesudah_sen=int(row["sesudah_sen"]),
        deskripsi=row["deskripsi"],
        tabungan_id=row["tabungan_id"],
        pembiayaan_id=row["pembiayaan_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _member(row):
    if not row["anggota_nama"]:
        return None
    return {
        "nama": row["anggota_nama"],
        "nomor_rekening": row["anggota_nomor_rekening"],
    }


def _savings(row):
    if not row["tabungan_id"]:
        return None
    savings_type = None
    if row["tabungan_jenis_nama"]:
        savings_type = {
            "nama": row["tabungan_jenis_nama"],
            "kode": row["tabungan_jenis_kode"],
        }
    return {
        "saldo": sen_to_rupiah(row["tabungan_saldo_sen"]),
        "jenis_tabungan_id": row["tabungan_jenis_id"],
        "jenis_tabungan": savings_type,
    }


def _loan(row):
    if not row["pembiayaan_id"]:
        return None
    return {
        "id": row["pembiayaan_id"],
        "jumlah": sen_to_rupiah(row["pembiayaan_jumlah_sen"]),
        "sisa_pembayaran": sen_to_rupiah(row["pembiayaan_sisa_sen"]),
        "jenis_pinjaman": row["pembiayaan_jenis"],
    }


def normalize_row(row) -> dict:
    txn = row_to_transaction(row)
    return {
        "id": txn.id,
        "anggota_id": txn.anggota_id,
        "tipe_transaksi": txn.direction.value,
        "source_type": txn.source_type.value,
        "deskripsi": txn.deskripsi,
        # stored magnitude is unsigned, the sign always comes from direction
        "jumlah": sen_to_rupiah(txn.signed_amount_sen),
        "sebelum": sen_to_rupiah(txn.sebelum_sen),
        "sesudah": sen_to_rupiah(txn.sesudah_sen),
        "pembiayaan_id": txn.pembiayaan_id,
        "tabungan_id": txn.tabungan_id,
        "created_at": txn.created_at,
        "updated_at": txn.updated_at,
        "anggota": _member(row),
        "tabungan": _savings(row),
        "pinjaman": _loan(row),
    }


def normalize_rows(rows) -> list[dict]:
    return [normalize_row(row) for row in rows]
