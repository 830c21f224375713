import sqlite3

import pytest

from koperasi.errors import ConflictError, InputError, NotFoundError
from koperasi.models import (
    Direction,
    FinancingSource,
    SavingsSource,
    TransactionIntent,
)
from koperasi.repo import (
    MAX_BALANCE_SEN,
    create_member,
    delete_transaction,
    get_financing,
    get_savings_account,
    get_transaction,
    list_transactions,
    record_transaction,
)


def _savings_intent(seeded, direction, amount_sen):
    return TransactionIntent(
        anggota_id=seeded["member_id"],
        direction=direction,
        source=SavingsSource(savings_type_id=seeded["savings_type_id"]),
        amount_sen=amount_sen,
    )


def _financing_intent(seeded, direction, amount_sen):
    return TransactionIntent(
        anggota_id=seeded["member_id"],
        direction=direction,
        source=FinancingSource(financing_id=seeded["financing_id"]),
        amount_sen=amount_sen,
    )


def test_record_list_delete(settings, seeded):
    outcome = record_transaction(
        settings.db_path, _savings_intent(seeded, Direction.MASUK, 50000)
    )
    assert outcome.success
    rows = list_transactions(settings.db_path)
    assert len(rows) == 1
    assert rows[0]["id"] == outcome.transaction_id
    assert rows[0]["jumlah_sen"] == 50000
    assert rows[0]["sebelum_sen"] == 0
    assert rows[0]["sesudah_sen"] == 50000

    delete_transaction(settings.db_path, outcome.transaction_id)
    assert list_transactions(settings.db_path) == []


def test_savings_deposit_and_withdrawal_update_balance(settings, seeded):
    record_transaction(settings.db_path, _savings_intent(seeded, Direction.MASUK, 100000))
    outcome = record_transaction(
        settings.db_path, _savings_intent(seeded, Direction.KELUAR, 30000)
    )
    assert outcome.success

    account = get_savings_account(settings.db_path, seeded["savings_account_id"])
    assert account["saldo_sen"] == 70000

    row = get_transaction(settings.db_path, outcome.transaction_id)
    assert row["sebelum_sen"] == 100000
    assert row["sesudah_sen"] == 70000
    assert row["tabungan_id"] == seeded["savings_account_id"]
    assert row["pembiayaan_id"] is None


def test_withdrawal_over_balance_is_rejected_without_side_effects(settings, seeded):
    outcome = record_transaction(
        settings.db_path, _savings_intent(seeded, Direction.KELUAR, 1)
    )
    assert not outcome.success
    assert outcome.error == "Saldo tidak mencukupi"
    assert list_transactions(settings.db_path) == []
    account = get_savings_account(settings.db_path, seeded["savings_account_id"])
    assert account["saldo_sen"] == 0


def test_unknown_member_and_missing_account_are_rejected(settings, seeded):
    stranger = TransactionIntent(
        anggota_id="missing",
        direction=Direction.MASUK,
        source=SavingsSource(savings_type_id=seeded["savings_type_id"]),
        amount_sen=100,
    )
    assert record_transaction(settings.db_path, stranger).error == "Anggota tidak ditemukan"

    other_member = create_member(settings.db_path, "Siti", "02.1.0007")
    no_account = TransactionIntent(
        anggota_id=other_member,
        direction=Direction.MASUK,
        source=SavingsSource(savings_type_id=seeded["savings_type_id"]),
        amount_sen=100,
    )
    outcome = record_transaction(settings.db_path, no_account)
    assert not outcome.success
    assert "tidak ditemukan" in outcome.error


def test_financing_payment_reduces_outstanding(settings, seeded):
    outcome = record_transaction(
        settings.db_path, _financing_intent(seeded, Direction.MASUK, 250_000_00)
    )
    assert outcome.success

    financing = get_financing(settings.db_path, seeded["financing_id"])
    assert financing["sisa_sen"] == 750_000_00
    assert financing["status"] == "aktif"

    row = get_transaction(settings.db_path, outcome.transaction_id)
    assert row["source_type"] == "pembiayaan"
    assert row["pembiayaan_id"] == seeded["financing_id"]
    assert row["tabungan_id"] is None


def test_financing_paid_off_and_overpayment(settings, seeded):
    over = record_transaction(
        settings.db_path, _financing_intent(seeded, Direction.MASUK, 1_000_000_01)
    )
    assert over.error == "Jumlah pembayaran melebihi sisa pembayaran"

    full = record_transaction(
        settings.db_path, _financing_intent(seeded, Direction.MASUK, 1_000_000_00)
    )
    assert full.success
    assert get_financing(settings.db_path, seeded["financing_id"])["status"] == "lunas"

    delete_transaction(settings.db_path, full.transaction_id)
    financing = get_financing(settings.db_path, seeded["financing_id"])
    assert financing["sisa_sen"] == 1_000_000_00
    assert financing["status"] == "aktif"


def test_financing_of_other_member_is_rejected(settings, seeded):
    other_member = create_member(settings.db_path, "Siti", "02.1.0007")
    intent = TransactionIntent(
        anggota_id=other_member,
        direction=Direction.MASUK,
        source=FinancingSource(financing_id=seeded["financing_id"]),
        amount_sen=100,
    )
    assert record_transaction(settings.db_path, intent).error == "Pembiayaan tidak ditemukan"


def test_idempotency_key_replays_without_second_mutation(settings, seeded):
    intent = _savings_intent(seeded, Direction.MASUK, 10000)
    first = record_transaction(settings.db_path, intent, idempotency_key="req-1")
    second = record_transaction(settings.db_path, intent, idempotency_key="req-1")

    assert second.success
    assert second.replayed
    assert second.transaction_id == first.transaction_id
    assert len(list_transactions(settings.db_path)) == 1
    account = get_savings_account(settings.db_path, seeded["savings_account_id"])
    assert account["saldo_sen"] == 10000


def test_delete_reverses_balance(settings, seeded):
    record_transaction(settings.db_path, _savings_intent(seeded, Direction.MASUK, 80000))
    withdrawal = record_transaction(
        settings.db_path, _savings_intent(seeded, Direction.KELUAR, 20000)
    )

    delete_transaction(settings.db_path, withdrawal.transaction_id)

    account = get_savings_account(settings.db_path, seeded["savings_account_id"])
    assert account["saldo_sen"] == 80000
    assert get_transaction(settings.db_path, withdrawal.transaction_id) is None


def test_delete_refuses_when_later_transaction_exists(settings, seeded):
    first = record_transaction(
        settings.db_path, _savings_intent(seeded, Direction.MASUK, 80000)
    )
    record_transaction(settings.db_path, _savings_intent(seeded, Direction.MASUK, 1000))
    # a row on a different account does not block
    record_transaction(settings.db_path, _financing_intent(seeded, Direction.MASUK, 500))

    with pytest.raises(ConflictError):
        delete_transaction(settings.db_path, first.transaction_id)

    account = get_savings_account(settings.db_path, seeded["savings_account_id"])
    assert account["saldo_sen"] == 81000
    assert get_transaction(settings.db_path, first.transaction_id) is not None


def test_delete_unknown_transaction(settings):
    with pytest.raises(NotFoundError):
        delete_transaction(settings.db_path, "missing")


def test_list_is_capped_and_scoped_by_member(settings, seeded):
    for _ in range(5):
        record_transaction(settings.db_path, _savings_intent(seeded, Direction.MASUK, 100))

    assert len(list_transactions(settings.db_path, limit=3)) == 3
    assert list_transactions(settings.db_path, anggota_id="someone-else") == []
    assert len(list_transactions(settings.db_path, anggota_id=seeded["member_id"])) == 5


def test_list_returns_newest_first(settings, seeded):
    ids = [
        record_transaction(
            settings.db_path, _savings_intent(seeded, Direction.MASUK, 100)
        ).transaction_id
        for _ in range(3)
    ]
    rows = list_transactions(settings.db_path)
    assert [row["id"] for row in rows] == list(reversed(ids))


def test_create_member_rejects_duplicate_account_number(settings, seeded):
    with pytest.raises(InputError, match="nomor rekening already exists"):
        create_member(settings.db_path, "Lain", "02.1.0006")


def test_idempotency_key_reused_for_different_movement(settings, seeded):
    record_transaction(
        settings.db_path,
        _savings_intent(seeded, Direction.MASUK, 10000),
        idempotency_key="req-1",
    )

    with pytest.raises(ConflictError):
        record_transaction(
            settings.db_path,
            _savings_intent(seeded, Direction.MASUK, 99999),
            idempotency_key="req-1",
        )

    assert len(list_transactions(settings.db_path)) == 1
    account = get_savings_account(settings.db_path, seeded["savings_account_id"])
    assert account["saldo_sen"] == 10000


def test_rows_carry_increasing_sequence(settings, seeded):
    ids = [
        record_transaction(
            settings.db_path, _savings_intent(seeded, Direction.MASUK, 100)
        ).transaction_id
        for _ in range(3)
    ]
    conn = sqlite3.connect(str(settings.db_path))
    sequence = [
        conn.execute("SELECT urutan FROM transaksi WHERE id = ?", (txn_id,)).fetchone()[0]
        for txn_id in ids
    ]
    conn.close()
    assert sequence == [1, 2, 3]


def test_deposit_past_storage_limit_is_rejected(settings, seeded):
    conn = sqlite3.connect(str(settings.db_path))
    conn.execute(
        "UPDATE tabungan SET saldo_sen = ? WHERE id = ?",
        (MAX_BALANCE_SEN, seeded["savings_account_id"]),
    )
    conn.commit()
    conn.close()

    outcome = record_transaction(
        settings.db_path, _savings_intent(seeded, Direction.MASUK, 1)
    )
    assert not outcome.success
    assert outcome.error == "Saldo melebihi batas maksimum"
