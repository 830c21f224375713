import pytest

from koperasi.db import init_db
from koperasi.repo import (
    create_financing,
    create_member,
    create_savings_type,
    open_savings_account,
)
from koperasi.settings import Settings


@pytest.fixture
def settings(tmp_path):
    settings = Settings(data_dir=tmp_path, db_path=tmp_path / "t.sqlite")
    init_db(settings)
    return settings


@pytest.fixture
def seeded(settings):
    """One member with a savings account and an active financing."""
    member_id = create_member(settings.db_path, "Galih Wicaksono", "02.1.0006")
    savings_type_id = create_savings_type(settings.db_path, "SWK", "Simpanan Wajib")
    savings_account_id = open_savings_account(
        settings.db_path, member_id, savings_type_id
    )
    financing_id = create_financing(
        settings.db_path, member_id, "Murabahah", 1_000_000_00
    )
    return {
        "member_id": member_id,
        "savings_type_id": savings_type_id,
        "savings_account_id": savings_account_id,
        "financing_id": financing_id,
    }
