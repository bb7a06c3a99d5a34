"""Requisitions, line items and the transition audit log

Revision ID: 003
Revises: 002
Create Date: 2026-10-06

Creates: requisitions, requisition_items, requisition_transitions
Status columns are VARCHAR with CHECK constraints; the ORM stores enum values.
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "003"
down_revision: str | None = "002"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_STATUSES = (
    "'pending', 'approved', 'packaged', 'ready_for_dispatch', 'assigned_to_batch', "
    "'in_transit', 'fulfilled', 'partially_delivered', 'failed', 'rejected', 'cancelled'"
)


def upgrade() -> None:
    # ── 1. requisitions ───────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE requisitions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            requisition_number VARCHAR(50) NOT NULL UNIQUE,
            facility_id UUID NOT NULL REFERENCES facilities(id) ON DELETE RESTRICT,
            warehouse_id UUID REFERENCES warehouses(id) ON DELETE SET NULL,
            created_by UUID,
            approved_by UUID,

            status VARCHAR(30) NOT NULL DEFAULT 'pending'
                CONSTRAINT ck_requisitions_status CHECK (status IN ({_STATUSES})),
            requisition_type VARCHAR(20) NOT NULL DEFAULT 'routine'
                CONSTRAINT ck_requisitions_type CHECK (requisition_type IN ('routine', 'emergency')),

            total_items INTEGER NOT NULL DEFAULT 0,
            total_weight NUMERIC(12, 2) NOT NULL DEFAULT 0,
            total_volume NUMERIC(12, 3) NOT NULL DEFAULT 0,

            -- FK to delivery_batches is added in 005
            batch_id UUID,

            expected_delivery_date DATE,
            notes TEXT,
            rejection_reason TEXT,
            cancellation_reason TEXT,
            cancelled_by UUID,

            approved_at TIMESTAMPTZ,
            packaged_at TIMESTAMPTZ,
            ready_for_dispatch_at TIMESTAMPTZ,
            assigned_to_batch_at TIMESTAMPTZ,
            in_transit_at TIMESTAMPTZ,
            delivered_at TIMESTAMPTZ,
            rejected_at TIMESTAMPTZ,
            cancelled_at TIMESTAMPTZ,

            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_requisitions_facility_id ON requisitions (facility_id);")
    op.execute("CREATE INDEX ix_requisitions_status ON requisitions (status);")
    op.execute("CREATE INDEX ix_requisitions_batch_id ON requisitions (batch_id);")
    op.execute(
        "CREATE INDEX ix_requisitions_facility_status ON requisitions (facility_id, status);"
    )

    # ── 2. requisition_items ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE requisition_items (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            requisition_id UUID NOT NULL REFERENCES requisitions(id) ON DELETE CASCADE,
            item_name VARCHAR(255) NOT NULL,
            item_code VARCHAR(100),
            quantity INTEGER NOT NULL
                CONSTRAINT ck_requisition_items_quantity_positive CHECK (quantity > 0),
            unit VARCHAR(30) NOT NULL DEFAULT 'pieces',
            weight_kg NUMERIC(10, 2),
            volume_m3 NUMERIC(10, 3),
            temperature_requirement VARCHAR(50),
            is_fragile BOOLEAN NOT NULL DEFAULT false,
            notes TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX ix_requisition_items_requisition_id ON requisition_items (requisition_id);"
    )

    # ── 3. requisition_transitions (append-only) ──────────────────────────
    op.execute(f"""
        CREATE TABLE requisition_transitions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            requisition_id UUID NOT NULL REFERENCES requisitions(id) ON DELETE CASCADE,
            from_status VARCHAR(30) CHECK (from_status IN ({_STATUSES})),
            to_status VARCHAR(30) NOT NULL CHECK (to_status IN ({_STATUSES})),
            triggered_by UUID,
            trigger_source VARCHAR(10) NOT NULL DEFAULT 'user'
                CHECK (trigger_source IN ('user', 'system')),
            reason TEXT,
            metadata_extra JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX ix_requisition_transitions_requisition_id "
        "ON requisition_transitions (requisition_id);"
    )
    op.execute(
        "CREATE INDEX ix_requisition_transitions_to_status ON requisition_transitions (to_status);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS requisition_transitions;")
    op.execute("DROP TABLE IF EXISTS requisition_items;")
    op.execute("DROP TABLE IF EXISTS requisitions;")
