"""Tests for the demo data seeder."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from medchart.models.base import Base
from medchart.seed_demo import (
    DEMO_MEDICINES,
    DEMO_PATIENTS,
    DEMO_PRESCRIPTIONS,
    seed_demo_data,
)
from medchart.storage.database import DatabaseStorage
from medchart.storage.memory import MemStorage


@pytest.fixture(params=["memory", "database"])
def storage(request):
    """An empty storage backend of each kind."""
    if request.param == "memory":
        return MemStorage()
    test_engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=test_engine)
    return DatabaseStorage(sessionmaker(autocommit=False, autoflush=False, bind=test_engine))


class TestSeedDemoData:
    def test_creates_demo_patients(self, storage):
        seed_demo_data(storage)
        assert {p.id for p in storage.list_patients()} == set(DEMO_PATIENTS)
        olivia = storage.get_patient("112233445566")
        assert olivia.name == "Olivia Chen"
        assert olivia.department == "Labor & Delivery"
        assert olivia.chart_data.handoff == "Place holder"

    def test_creates_demo_medicines(self, storage):
        seed_demo_data(storage)
        assert {m.id for m in storage.list_medicines()} == set(DEMO_MEDICINES)
        # Leading zero is part of the barcode
        assert storage.get_medicine("09509828942").name == "Metformin"

    def test_creates_demo_prescriptions(self, storage):
        seed_demo_data(storage)
        assert len(storage.list_prescriptions()) == len(DEMO_PRESCRIPTIONS)
        carter = {p.medicine_id for p in storage.list_prescriptions("223344556677")}
        assert carter == {"09509828942", "319084", "2094434849303"}
        assert storage.list_prescriptions("445566778899") == []

    def test_idempotent_on_second_call(self, storage):
        """Calling seed_demo_data twice must not create duplicate records."""
        seed_demo_data(storage)
        seed_demo_data(storage)
        assert len(storage.list_patients()) == len(DEMO_PATIENTS)
        assert len(storage.list_medicines()) == len(DEMO_MEDICINES)
        assert len(storage.list_prescriptions()) == len(DEMO_PRESCRIPTIONS)
