import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    list_limit: int = 100
    db_timeout: float = 5.0
    log_level: str = "INFO"


def get_settings() -> Settings:
    data_dir = Path(os.getenv("KOPERASI_DATA_DIR", Path.cwd() / ".data"))
    return Settings(
        data_dir=data_dir,
        db_path=data_dir / "ledger.sqlite",
        list_limit=int(os.getenv("KOPERASI_LIST_LIMIT", "100")),
        db_timeout=float(os.getenv("KOPERASI_DB_TIMEOUT", "5.0")),
        log_level=os.getenv("KOPERASI_LOG_LEVEL", "INFO"),
    )
