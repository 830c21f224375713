from dataclasses import dataclass
from enum import Enum


class Direction(str, Enum):
    MASUK = "masuk"
    KELUAR = "keluar"


class SourceType(str, Enum):
    TABUNGAN = "tabungan"
    PEMBIAYAAN = "pembiayaan"


@dataclass(frozen=True)
class SavingsSource:
    savings_type_id: str

    source_type = SourceType.TABUNGAN


@dataclass(frozen=True)
class FinancingSource:
    financing_id: str

    source_type = SourceType.PEMBIAYAAN


Source = SavingsSource | FinancingSource


@dataclass(frozen=True)
class TransactionIntent:
    anggota_id: str
    direction: Direction
    source: Source
    amount_sen: int
    deskripsi: str | None = None


@dataclass(frozen=True)
class RecordOutcome:
    success: bool
    transaction_id: str | None = None
    error: str | None = None
    replayed: bool = False


@dataclass(frozen=True)
class Transaction:
    id: str
    anggota_id: str
    direction: Direction
    source_type: SourceType
    amount_sen: int
    sebelum_sen: int
    sesudah_sen: int
    deskripsi: str | None
    tabungan_id: str | None
    pembiayaan_id: str | None
    created_at: str
    updated_at: str

    @property
    def signed_amount_sen(self) -> int:
        magnitude = abs(self.amount_sen)
        return magnitude if self.direction is Direction.MASUK else -magnitude
