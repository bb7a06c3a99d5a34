"""Packaging slot costs and computed requisition packaging

Revision ID: 004
Revises: 003
Create Date: 2026-10-07

Creates: packaging_slot_costs (seeded), requisition_packaging, requisition_packaging_items
Adds triggers that make finalized packaging and its items write-once.
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "004"
down_revision: str | None = "003"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_PACKAGING_TYPES = "'bag_s', 'box_m', 'box_l', 'crate_xl'"


def upgrade() -> None:
    # ── 1. packaging_slot_costs ───────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE packaging_slot_costs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            packaging_type VARCHAR(20) NOT NULL UNIQUE
                CHECK (packaging_type IN ({_PACKAGING_TYPES})),
            slot_cost NUMERIC(4, 2) NOT NULL CHECK (slot_cost > 0),
            max_weight_kg NUMERIC(10, 2),
            max_volume_m3 NUMERIC(10, 3),
            description TEXT,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("""
        INSERT INTO packaging_slot_costs (packaging_type, slot_cost, max_weight_kg, max_volume_m3, description)
        VALUES
            ('bag_s', 0.25, 5, 0.02, 'Small bag'),
            ('box_m', 0.50, 15, 0.05, 'Medium box'),
            ('box_l', 1.00, 30, 0.12, 'Large box'),
            ('crate_xl', 2.00, NULL, NULL, 'Extra-large crate');
    """)

    # ── 2. requisition_packaging ──────────────────────────────────────────
    op.execute("""
        CREATE TABLE requisition_packaging (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            requisition_id UUID NOT NULL UNIQUE REFERENCES requisitions(id) ON DELETE CASCADE,
            total_slot_demand NUMERIC(6, 2) NOT NULL,
            rounded_slot_demand INTEGER NOT NULL,
            total_weight_kg NUMERIC(10, 2),
            total_volume_m3 NUMERIC(10, 3),
            total_items INTEGER,
            packaging_version INTEGER NOT NULL DEFAULT 1,
            computed_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            computed_by VARCHAR(64) NOT NULL DEFAULT 'system',
            is_final BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_requisition_packaging_rounded
                CHECK (rounded_slot_demand >= total_slot_demand)
        );
    """)

    # ── 3. requisition_packaging_items ────────────────────────────────────
    op.execute(f"""
        CREATE TABLE requisition_packaging_items (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            requisition_packaging_id UUID NOT NULL
                REFERENCES requisition_packaging(id) ON DELETE CASCADE,
            requisition_item_id UUID NOT NULL REFERENCES requisition_items(id) ON DELETE CASCADE,
            packaging_type VARCHAR(20) NOT NULL CHECK (packaging_type IN ({_PACKAGING_TYPES})),
            package_count INTEGER NOT NULL CHECK (package_count > 0),
            slot_cost NUMERIC(4, 2) NOT NULL,
            slot_demand NUMERIC(6, 2) NOT NULL,
            item_name VARCHAR(255) NOT NULL,
            quantity INTEGER NOT NULL,
            weight_kg NUMERIC(10, 2),
            volume_m3 NUMERIC(10, 3),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX ix_requisition_packaging_items_packaging_id "
        "ON requisition_packaging_items (requisition_packaging_id);"
    )
    op.execute(
        "CREATE INDEX ix_requisition_packaging_items_item_id "
        "ON requisition_packaging_items (requisition_item_id);"
    )

    # ── 4. Write-once guards ──────────────────────────────────────────────
    op.execute("""
        CREATE OR REPLACE FUNCTION reject_final_packaging_change() RETURNS trigger AS $$
        BEGIN
            IF OLD.is_final THEN
                RAISE EXCEPTION 'requisition_packaging % is final', OLD.id
                    USING ERRCODE = 'check_violation';
            END IF;
            IF TG_OP = 'DELETE' THEN
                RETURN OLD;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER trg_requisition_packaging_immutable
        BEFORE UPDATE OR DELETE ON requisition_packaging
        FOR EACH ROW EXECUTE FUNCTION reject_final_packaging_change();
    """)
    op.execute("""
        CREATE OR REPLACE FUNCTION reject_packaging_item_update() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'requisition_packaging_items % is write-once', OLD.id
                USING ERRCODE = 'check_violation';
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER trg_requisition_packaging_items_immutable
        BEFORE UPDATE ON requisition_packaging_items
        FOR EACH ROW EXECUTE FUNCTION reject_packaging_item_update();
    """)


def downgrade() -> None:
    op.execute(
        "DROP TRIGGER IF EXISTS trg_requisition_packaging_items_immutable "
        "ON requisition_packaging_items;"
    )
    op.execute(
        "DROP TRIGGER IF EXISTS trg_requisition_packaging_immutable ON requisition_packaging;"
    )
    op.execute("DROP FUNCTION IF EXISTS reject_packaging_item_update();")
    op.execute("DROP FUNCTION IF EXISTS reject_final_packaging_change();")
    op.execute("DROP TABLE IF EXISTS requisition_packaging_items;")
    op.execute("DROP TABLE IF EXISTS requisition_packaging;")
    op.execute("DROP TABLE IF EXISTS packaging_slot_costs;")
