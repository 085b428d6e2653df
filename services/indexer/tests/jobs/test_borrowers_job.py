"""Tests for the borrower export/import commands."""

import json
from decimal import Decimal

import pytest
from sqlalchemy import create_engine

from services.indexer.src.indexer.db.engine import init_db
from services.indexer.src.indexer.db.store import StateStore
from services.indexer.src.indexer.domain.models import Borrower, BorrowerStatus
from services.indexer.src.indexer.jobs.borrowers import (
    borrower_from_dict,
    borrower_to_dict,
    export_borrowers,
    import_borrowers,
)


def make_store() -> StateStore:
    engine = create_engine("sqlite:///:memory:")
    init_db(engine)
    return StateStore(engine)


@pytest.fixture
def store():
    store = make_store()
    store.borrowers.import_borrowers([
        Borrower(
            platform="navi",
            address="0x1",
            status=BorrowerStatus.LIQUIDATABLE,
            health_factor=Decimal("0.5"),
        ),
        Borrower(platform="scallop", address="0x2", obligation_id="0xobl"),
    ])
    return store


class TestBorrowerDict:
    def test_to_dict(self):
        borrower = Borrower(
            platform="navi", address="0x1", status=BorrowerStatus.CLOSED, health_factor=Decimal("1.25")
        )

        assert borrower_to_dict(borrower) == {
            "platform": "navi",
            "address": "0x1",
            "obligation_id": None,
            "status": "closed",
            "health_factor": "1.25",
        }

    def test_from_dict_defaults(self):
        borrower = borrower_from_dict({"platform": "suilend", "address": "0x3"})

        assert borrower.status == BorrowerStatus.ACTIVE
        assert borrower.health_factor is None
        assert borrower.obligation_id is None


class TestExportImport:
    def test_round_trip_between_databases(self, store, tmp_path):
        path = tmp_path / "borrowers.json"

        assert export_borrowers(store, path) == 2
        target = make_store()
        assert import_borrowers(target, path) == 2

        imported = target.borrowers.get_borrower("navi", "0x1")
        assert imported.status == BorrowerStatus.LIQUIDATABLE
        assert imported.health_factor == Decimal("0.5")
        assert target.borrowers.get_borrower("scallop", "0x2").obligation_id == "0xobl"

    def test_export_by_platform(self, store, tmp_path):
        path = tmp_path / "navi.json"

        assert export_borrowers(store, path, platform="navi") == 1
        assert [item["address"] for item in json.loads(path.read_text())] == ["0x1"]
