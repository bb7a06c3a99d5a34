"""Delivery batches with the dispatch snapshot lock

Revision ID: 005
Revises: 004
Create Date: 2026-10-08

Creates: delivery_batches
Adds: requisitions.batch_id FK, trigger guarding frozen fields of locked batches
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "005"
down_revision: str | None = "004"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ── 1. delivery_batches ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE delivery_batches (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(255) NOT NULL,
            batch_number VARCHAR(50) NOT NULL UNIQUE,
            warehouse_id UUID REFERENCES warehouses(id) ON DELETE SET NULL,
            vehicle_id UUID REFERENCES vehicles(id) ON DELETE SET NULL,
            driver_id UUID REFERENCES drivers(id) ON DELETE SET NULL,

            scheduled_date DATE NOT NULL,
            scheduled_time TIME,
            status VARCHAR(20) NOT NULL DEFAULT 'planned'
                CONSTRAINT ck_delivery_batches_status
                CHECK (status IN ('planned', 'assigned', 'in-progress', 'completed', 'cancelled')),
            priority VARCHAR(10) NOT NULL DEFAULT 'medium'
                CHECK (priority IN ('low', 'medium', 'high', 'urgent')),

            total_distance NUMERIC(10, 2),
            estimated_duration INTEGER,
            optimized_route JSONB,
            facility_ids JSONB NOT NULL DEFAULT '[]'::jsonb,
            total_quantity INTEGER NOT NULL DEFAULT 0,
            medication_type VARCHAR(100),
            notes TEXT,

            actual_start_time TIMESTAMPTZ,
            actual_end_time TIMESTAMPTZ,

            -- Snapshot lock
            batch_snapshot JSONB,
            snapshot_locked_at TIMESTAMPTZ,
            is_snapshot_locked BOOLEAN NOT NULL DEFAULT false,
            total_slot_demand NUMERIC(6, 2),
            vehicle_total_slots INTEGER,

            cancellation_reason TEXT,
            cancelled_by UUID,
            cancelled_at TIMESTAMPTZ,
            created_by UUID,

            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),

            CONSTRAINT ck_delivery_batches_snapshot_present
                CHECK (NOT is_snapshot_locked OR batch_snapshot IS NOT NULL)
        );
    """)
    op.execute("CREATE INDEX ix_delivery_batches_status ON delivery_batches (status);")
    op.execute(
        "CREATE INDEX ix_delivery_batches_scheduled_date ON delivery_batches (scheduled_date);"
    )
    op.execute("CREATE INDEX ix_delivery_batches_driver_id ON delivery_batches (driver_id);")
    op.execute("CREATE INDEX ix_delivery_batches_vehicle_id ON delivery_batches (vehicle_id);")

    # ── 2. requisitions.batch_id FK ───────────────────────────────────────
    op.execute("""
        ALTER TABLE requisitions
            ADD CONSTRAINT fk_requisitions_batch_id
            FOREIGN KEY (batch_id) REFERENCES delivery_batches(id) ON DELETE SET NULL;
    """)

    # ── 3. Locked batch guard ─────────────────────────────────────────────
    op.execute("""
        CREATE OR REPLACE FUNCTION guard_locked_delivery_batch() RETURNS trigger AS $$
        BEGIN
            IF NOT OLD.is_snapshot_locked THEN
                RETURN NEW;
            END IF;
            IF NOT NEW.is_snapshot_locked
               OR NEW.batch_snapshot IS DISTINCT FROM OLD.batch_snapshot
               OR NEW.snapshot_locked_at IS DISTINCT FROM OLD.snapshot_locked_at
               OR NEW.facility_ids IS DISTINCT FROM OLD.facility_ids
               OR NEW.vehicle_id IS DISTINCT FROM OLD.vehicle_id
               OR NEW.total_quantity IS DISTINCT FROM OLD.total_quantity
               OR NEW.optimized_route IS DISTINCT FROM OLD.optimized_route THEN
                RAISE EXCEPTION 'delivery_batches % is snapshot-locked', OLD.id
                    USING ERRCODE = 'check_violation';
            END IF;
            IF NEW.status IS DISTINCT FROM OLD.status
               AND NEW.status NOT IN ('in-progress', 'completed', 'cancelled') THEN
                RAISE EXCEPTION 'delivery_batches % is snapshot-locked', OLD.id
                    USING ERRCODE = 'check_violation';
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER trg_delivery_batches_locked
        BEFORE UPDATE ON delivery_batches
        FOR EACH ROW EXECUTE FUNCTION guard_locked_delivery_batch();
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_delivery_batches_locked ON delivery_batches;")
    op.execute("DROP FUNCTION IF EXISTS guard_locked_delivery_batch();")
    op.execute("ALTER TABLE requisitions DROP CONSTRAINT IF EXISTS fk_requisitions_batch_id;")
    op.execute("DROP TABLE IF EXISTS delivery_batches;")
