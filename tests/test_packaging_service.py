"""Tests for PackagingService — computation, immutability, slot-demand queries."""

import logging
import uuid
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from fleetflow.exceptions import (
    AlreadyComputedException,
    NotFoundException,
    PackagingImmutableException,
)
from fleetflow.models.enums import PackagingType
from fleetflow.models.requisition_packaging import RequisitionPackaging
from fleetflow.models.requisition_packaging_item import RequisitionPackagingItem
from fleetflow.modules.packaging.service import PackagingService


def _item(name, quantity, weight=None, volume=None):
    return {
        "item_name": name,
        "quantity": quantity,
        "weight_kg": Decimal(weight) if weight is not None else None,
        "volume_m3": Decimal(volume) if volume is not None else None,
    }


class TestComputePackaging:
    @pytest.mark.asyncio
    async def test_slot_demand_is_additive(self, db, make_requisition, slot_costs):
        requisition = await make_requisition([
            _item("Cold box", 3, "20", "0.03"),      # box_l, 1.00 each
            _item("IV fluids crate", 2, "35", "0.1"),  # crate_xl, 2.00 each
        ])

        packaging = await PackagingService(db).compute_packaging(requisition.id)

        assert packaging.total_slot_demand == Decimal("7.00")
        assert packaging.rounded_slot_demand == 7
        assert packaging.total_items == 5
        assert packaging.is_final is True

        items = (await PackagingService(db).get_packaging(requisition.id)).items
        by_name = {item.item_name: item for item in items}
        assert by_name["Cold box"].packaging_type == PackagingType.BOX_L
        assert by_name["Cold box"].package_count == 3
        assert by_name["Cold box"].slot_demand == Decimal("3.00")
        assert by_name["IV fluids crate"].packaging_type == PackagingType.CRATE_XL
        assert by_name["IV fluids crate"].slot_demand == Decimal("4.00")

    @pytest.mark.asyncio
    async def test_rounded_demand_is_ceiling(self, db, make_requisition, slot_costs):
        requisition = await make_requisition([_item("Gloves", 1, "1", "0.005")])

        packaging = await PackagingService(db).compute_packaging(requisition.id)

        assert packaging.total_slot_demand == Decimal("0.25")
        assert packaging.rounded_slot_demand == 1

    @pytest.mark.asyncio
    async def test_totals_use_per_unit_data(self, db, make_requisition, slot_costs):
        requisition = await make_requisition([_item("Syringes", 4, "2.5", "0.010")])

        packaging = await PackagingService(db).compute_packaging(requisition.id)

        assert packaging.total_weight_kg == Decimal("10.00")
        assert packaging.total_volume_m3 == Decimal("0.040")

    @pytest.mark.asyncio
    async def test_missing_physical_data_uses_logged_defaults(
        self, db, make_requisition, slot_costs, caplog
    ):
        requisition = await make_requisition([_item("Unknown kit", 2)])

        with caplog.at_level(logging.WARNING, logger="fleetflow.modules.packaging.service"):
            packaging = await PackagingService(db).compute_packaging(requisition.id)

        # 10 kg / 0.05 m3 per unit lands in box_m
        item = (await PackagingService(db).get_packaging(requisition.id)).items[0]
        assert item.packaging_type == PackagingType.BOX_M
        assert item.weight_kg == Decimal("10.0")
        assert packaging.total_slot_demand == Decimal("1.00")
        messages = [r.getMessage() for r in caplog.records]
        assert any("has no weight" in m for m in messages)
        assert any("has no volume" in m for m in messages)

    @pytest.mark.asyncio
    async def test_missing_slot_cost_falls_back_to_default(self, db, make_requisition, caplog):
        # No slot-cost rows seeded
        requisition = await make_requisition([_item("Bandages", 3, "1", "0.001")])

        with caplog.at_level(logging.WARNING, logger="fleetflow.modules.packaging.service"):
            packaging = await PackagingService(db).compute_packaging(requisition.id)

        assert packaging.total_slot_demand == Decimal("3.00")
        assert any("No active slot cost" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_second_computation_is_rejected_and_changes_nothing(
        self, db, make_requisition, slot_costs
    ):
        requisition = await make_requisition([_item("Cold box", 3, "20", "0.03")])
        service = PackagingService(db)
        first = await service.compute_packaging(requisition.id)

        with pytest.raises(AlreadyComputedException):
            await service.compute_packaging(requisition.id)

        rows = (await db.execute(
            select(RequisitionPackaging).where(RequisitionPackaging.requisition_id == requisition.id)
        )).scalars().all()
        assert len(rows) == 1
        assert rows[0].id == first.id
        assert rows[0].total_slot_demand == Decimal("3.00")

    @pytest.mark.asyncio
    async def test_concurrent_computation_loses_on_unique_constraint(
        self, db, make_requisition, slot_costs
    ):
        requisition = await make_requisition([_item("Cold box", 3, "20", "0.03")])
        service = PackagingService(db)
        await service.compute_packaging(requisition.id)

        # The existence check sees nothing, as it would for a racing caller
        real_execute = db.execute
        checks = []

        async def execute(statement, *args, **kwargs):
            if not checks:
                checks.append(statement)
                return MagicMock(scalar_one_or_none=MagicMock(return_value=None))
            return await real_execute(statement, *args, **kwargs)

        with patch.object(db, "execute", new=execute):
            with pytest.raises(AlreadyComputedException) as exc_info:
                await service.compute_packaging(requisition.id)

        assert len(checks) == 1
        assert isinstance(exc_info.value.__cause__, IntegrityError)

    @pytest.mark.asyncio
    async def test_get_packaging_not_found(self, db):
        with pytest.raises(NotFoundException):
            await PackagingService(db).get_packaging(uuid.uuid4())


class TestPackagingImmutability:
    @pytest.mark.asyncio
    async def test_final_packaging_cannot_be_updated(self, db, make_requisition, slot_costs):
        requisition = await make_requisition()
        packaging = await PackagingService(db).compute_packaging(requisition.id)

        packaging.total_slot_demand = Decimal("99")
        with pytest.raises(PackagingImmutableException):
            await db.flush()

    @pytest.mark.asyncio
    async def test_final_packaging_cannot_be_deleted(self, db, make_requisition, slot_costs):
        requisition = await make_requisition()
        packaging = await PackagingService(db).compute_packaging(requisition.id)

        await db.delete(packaging)
        with pytest.raises(PackagingImmutableException):
            await db.flush()

    @pytest.mark.asyncio
    async def test_packaging_items_are_write_once(self, db, make_requisition, slot_costs):
        requisition = await make_requisition()
        await PackagingService(db).compute_packaging(requisition.id)
        item = (await db.execute(select(RequisitionPackagingItem))).scalars().first()

        item.package_count = 5
        with pytest.raises(PackagingImmutableException):
            await db.flush()


class TestSlotDemandQueries:
    @pytest.mark.asyncio
    async def test_facility_demand_counts_only_ready_requisitions(
        self, db, make_requisition, make_ready_requisition, facility
    ):
        # 8 kg + 40 kg -> 0.50 + 2.00 = 2.50 -> rounded 3
        await make_ready_requisition([_item("ORS", 1, "8", "0.01"), _item("Crate", 1, "40", "0.1")])
        # 1 kg -> 0.25 -> rounded 1
        await make_ready_requisition([_item("Gloves", 1, "1", "0.001")])
        # Still pending: not counted
        await make_requisition([_item("Crate", 5, "40", "0.1")])

        demand = await PackagingService(db).get_facility_slot_demand(facility.id)

        assert demand == Decimal("4")

    @pytest.mark.asyncio
    async def test_facility_without_requisitions_has_zero_demand(self, db, facility):
        assert await PackagingService(db).get_facility_slot_demand(facility.id) == Decimal("0")

    @pytest.mark.asyncio
    async def test_batch_demand_per_facility(
        self, db, make_ready_requisition, facility, other_facility
    ):
        await make_ready_requisition([_item("Crate", 2, "40", "0.1")])

        rows = await PackagingService(db).get_batch_slot_demand(
            [facility.id, other_facility.id, uuid.uuid4()]
        )

        assert [row.facility_name for row in rows] == ["Bondo Dispensary", "Kilimani Health Centre"]
        by_id = {row.facility_id: row for row in rows}
        assert by_id[facility.id].slot_demand == Decimal("4")
        assert by_id[facility.id].requisition_count == 1
        assert by_id[other_facility.id].slot_demand == Decimal("0")
        assert by_id[other_facility.id].requisition_count == 0
