from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import InputError
from .models import (
    Direction,
    FinancingSource,
    SavingsSource,
    SourceType,
    TransactionIntent,
)

REQUIRED_FIELDS = ("anggota_id", "tipe_transaksi", "source_type", "jumlah")

# keeps every amount exact as a JSON number and far inside SQLite INTEGER
MAX_AMOUNT_SEN = 10**15

# canonical field -> accepted request names, most preferred first
FIELD_ALIASES = {
    "pembiayaan_id": ("pembiayaan_id", "pinjaman_id"),
}

# legacy value -> canonical value
SOURCE_TYPE_ALIASES = {
    "pinjaman": SourceType.PEMBIAYAAN.value,
}

SAVINGS_TYPE_REQUIRED = "Jenis tabungan harus dipilih untuk setoran atau penarikan"
FINANCING_REQUIRED = "Pembiayaan harus dipilih untuk pembayaran atau pencairan"


def resolve_aliases(payload: dict) -> dict:
    resolved = dict(payload)
    for canonical, names in FIELD_ALIASES.items():
        value = None
        for name in names:
            if payload.get(name):
                value = payload[name]
                break
        for name in names:
            resolved.pop(name, None)
        resolved[canonical] = value
    source_type = resolved.get("source_type")
    if isinstance(source_type, str):
        resolved["source_type"] = SOURCE_TYPE_ALIASES.get(source_type, source_type)
    return resolved


def validate_direction(s: str) -> Direction:
    try:
        return Direction(s)
    except ValueError as e:
        raise InputError("tipe_transaksi must be masuk or keluar") from e


def validate_source_type(s: str) -> SourceType:
    try:
        return SourceType(s)
    except ValueError as e:
        raise InputError("source_type must be tabungan or pembiayaan") from e


def parse_amount_to_sen(value) -> int:
    if isinstance(value, bool):
        raise InputError("jumlah invalid")
    if isinstance(value, str) and not value.strip():
        raise InputError("jumlah required")
    try:
        d = Decimal(str(value))
    except InvalidOperation as e:
        raise InputError("jumlah invalid") from e
    if not d.is_finite():
        raise InputError("jumlah invalid")
    if d <= 0:
        raise InputError("jumlah must be positive")
    try:
        sen = (d * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise InputError("jumlah too large") from e
    if (d * 100) != sen:
        raise InputError("jumlah supports up to 2 decimals")
    if sen > MAX_AMOUNT_SEN:
        raise InputError("jumlah too large")
    return int(sen)


def build_intent(payload: dict) -> TransactionIntent:
    """Validate a create request body and turn it into a ``TransactionIntent``.

    Checks run before anything touches the store: required fields in order,
    then the product selection for the chosen source, then value formats.
    """
    body = resolve_aliases(payload)

    for field in REQUIRED_FIELDS:
        if not body.get(field):
            raise InputError(f"Field '{field}' is required")

    if body["source_type"] == SourceType.TABUNGAN.value and not body.get(
        "jenis_tabungan_id"
    ):
        raise InputError(SAVINGS_TYPE_REQUIRED)

    direction = validate_direction(body["tipe_transaksi"])
    source_type = validate_source_type(body["source_type"])

    if source_type is SourceType.TABUNGAN:
        source = SavingsSource(savings_type_id=str(body["jenis_tabungan_id"]))
    else:
        if not body.get("pembiayaan_id"):
            raise InputError(FINANCING_REQUIRED)
        source = FinancingSource(financing_id=str(body["pembiayaan_id"]))

    deskripsi = body.get("deskripsi") or None
    if deskripsi is not None:
        deskripsi = str(deskripsi).strip() or None

    return TransactionIntent(
        anggota_id=str(body["anggota_id"]),
        direction=direction,
        source=source,
        amount_sen=parse_amount_to_sen(body["jumlah"]),
        deskripsi=deskripsi,
    )
