"""001 – Initial schema: users, treasury, expenses, attendance, Odoo sync.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000+03:00
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── 1. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            email        VARCHAR(255) NOT NULL UNIQUE,
            display_name VARCHAR(200) NOT NULL,
            google_id    VARCHAR(255) UNIQUE,
            avatar_url   TEXT,
            is_active    BOOLEAN DEFAULT TRUE,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 2. user_sessions ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_sessions (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id            UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash         VARCHAR(512) NOT NULL,
            refresh_token_hash VARCHAR(512),
            ip_address         INET,
            user_agent         TEXT,
            expires_at         TIMESTAMPTZ NOT NULL,
            is_revoked         BOOLEAN DEFAULT FALSE,
            created_at         TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_user_sessions_user_id    ON user_sessions(user_id)")
    op.execute("CREATE INDEX ix_user_sessions_token_hash ON user_sessions(token_hash)")
    op.execute("CREATE INDEX ix_user_sessions_refresh    ON user_sessions(refresh_token_hash)")

    # ── 3. role_assignments ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE role_assignments (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id     UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            role        VARCHAR(20) NOT NULL,
            assigned_by UUID REFERENCES users(id),
            assigned_at TIMESTAMPTZ DEFAULT NOW(),
            is_active   BOOLEAN DEFAULT TRUE
        )
    """)
    op.execute("CREATE INDEX ix_role_assignments_user_id ON role_assignments(user_id)")

    # ── 4. page_permissions ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE page_permissions (
            id         UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id    UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            page_key   VARCHAR(50) NOT NULL,
            has_access BOOLEAN DEFAULT TRUE,
            granted_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_page_permission_user_page UNIQUE (user_id, page_key)
        )
    """)

    # ── 5. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES users(id),
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID,
            old_values  JSONB,
            new_values  JSONB,
            ip_address  INET,
            user_agent  TEXT,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity   ON audit_trail(entity_type, entity_id)")

    # ── 6. attendance_types / employees ───────────────────────────────────
    op.execute("""
        CREATE TABLE attendance_types (
            id                       UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name                     VARCHAR(100) NOT NULL UNIQUE,
            fixed_start_time         TIME,
            fixed_end_time           TIME,
            allow_late_minutes       INTEGER DEFAULT 0,
            allow_early_exit_minutes INTEGER DEFAULT 0,
            is_active                BOOLEAN DEFAULT TRUE,
            created_at               TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at               TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE employees (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_number    VARCHAR(20)  NOT NULL UNIQUE,
            zk_employee_code   VARCHAR(50)  UNIQUE,
            first_name         VARCHAR(100) NOT NULL,
            last_name          VARCHAR(100) NOT NULL DEFAULT '',
            email              VARCHAR(255),
            attendance_type_id UUID REFERENCES attendance_types(id),
            basic_salary       NUMERIC(12, 2),
            employment_status  VARCHAR(30) DEFAULT 'active',
            is_active          BOOLEAN DEFAULT TRUE,
            created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_employees_zk_employee_code ON employees(zk_employee_code)")

    # ── 7. currencies / currency_rates ────────────────────────────────────
    op.execute("""
        CREATE TABLE currencies (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            currency_code VARCHAR(10)  NOT NULL UNIQUE,
            currency_name VARCHAR(100) NOT NULL,
            symbol        VARCHAR(10),
            is_base       BOOLEAN DEFAULT FALSE,
            is_active     BOOLEAN DEFAULT TRUE,
            created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE currency_rates (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            currency_id         UUID NOT NULL REFERENCES currencies(id) ON DELETE CASCADE,
            rate_to_base        NUMERIC(18, 6) NOT NULL,
            conversion_operator VARCHAR(10) NOT NULL DEFAULT 'multiply',
            effective_date      DATE NOT NULL,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_currency_rates_currency_date
            ON currency_rates(currency_id, effective_date)
    """)

    # ── 8. banks / treasuries ─────────────────────────────────────────────
    for table, prefix in (("banks", "bank"), ("treasuries", "treasury")):
        op.execute(f"""
            CREATE TABLE {table} (
                id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
                {prefix}_code   VARCHAR(20)  NOT NULL UNIQUE,
                {prefix}_name   VARCHAR(150) NOT NULL,
                currency_id     UUID REFERENCES currencies(id),
                current_balance NUMERIC(14, 2) NOT NULL DEFAULT 0,
                is_active       BOOLEAN DEFAULT TRUE,
                created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)

    # ── 9. expense_types / expense_requests ───────────────────────────────
    op.execute("""
        CREATE TABLE expense_types (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            expense_name VARCHAR(150) NOT NULL,
            is_asset     BOOLEAN DEFAULT FALSE,
            is_active    BOOLEAN DEFAULT TRUE,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE expense_requests (
            id                   UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            request_number       VARCHAR(30) NOT NULL UNIQUE,
            request_date         DATE NOT NULL,
            description          TEXT NOT NULL,
            amount               NUMERIC(14, 2) NOT NULL,
            currency_id          UUID REFERENCES currencies(id),
            base_currency_amount NUMERIC(14, 2),
            expense_type_id      UUID REFERENCES expense_types(id),
            is_asset             BOOLEAN DEFAULT FALSE,
            payment_method       VARCHAR(20),
            bank_id              UUID REFERENCES banks(id),
            treasury_id          UUID REFERENCES treasuries(id),
            status               VARCHAR(20) NOT NULL DEFAULT 'pending',
            requester_id         UUID REFERENCES users(id),
            classified_by        UUID REFERENCES users(id),
            classified_at        TIMESTAMPTZ,
            approved_by          UUID REFERENCES users(id),
            approved_at          TIMESTAMPTZ,
            paid_by              UUID REFERENCES users(id),
            paid_at              TIMESTAMPTZ,
            notes                TEXT,
            created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at           TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_expense_requests_status ON expense_requests(status)")

    # ── 10. bank_entries / treasury_entries ───────────────────────────────
    for table, account_col, account_table in (
        ("bank_entries", "bank_id", "banks"),
        ("treasury_entries", "treasury_id", "treasuries"),
    ):
        op.execute(f"""
            CREATE TABLE {table} (
                id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
                {account_col}      UUID NOT NULL REFERENCES {account_table}(id),
                entry_number       VARCHAR(30) NOT NULL,
                entry_type         VARCHAR(20) NOT NULL,
                amount             NUMERIC(14, 2) NOT NULL,
                exchange_rate      NUMERIC(18, 6) NOT NULL DEFAULT 1,
                converted_amount   NUMERIC(14, 2) NOT NULL,
                balance_after      NUMERIC(14, 2),
                description        TEXT,
                entry_date         DATE NOT NULL,
                status             VARCHAR(20) NOT NULL DEFAULT 'approved',
                expense_request_id UUID REFERENCES expense_requests(id) ON DELETE SET NULL,
                created_by         UUID REFERENCES users(id),
                approved_by        UUID REFERENCES users(id),
                approved_at        TIMESTAMPTZ,
                created_at         TIMESTAMPTZ DEFAULT NOW()
            )
        """)
        op.execute(f"CREATE INDEX ix_{table}_entry_number ON {table}(entry_number)")
        op.execute(f"CREATE INDEX ix_{table}_expense_request_id ON {table}(expense_request_id)")

    # ── 11. void_payment_history ──────────────────────────────────────────
    op.execute("""
        CREATE TABLE void_payment_history (
            id                    UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            expense_request_id    UUID REFERENCES expense_requests(id) ON DELETE SET NULL,
            request_number        VARCHAR(30) NOT NULL,
            description           TEXT,
            original_amount       NUMERIC(14, 2),
            treasury_amount       NUMERIC(14, 2),
            treasury_id           UUID,
            treasury_entry_number VARCHAR(30),
            original_paid_at      TIMESTAMPTZ,
            voided_by             UUID REFERENCES users(id),
            voided_by_name        VARCHAR(200),
            reason                TEXT NOT NULL,
            created_at            TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 12. device_api_keys / zk_attendance_logs ──────────────────────────
    op.execute("""
        CREATE TABLE device_api_keys (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            api_key             VARCHAR(128) NOT NULL UNIQUE,
            name                VARCHAR(100) NOT NULL,
            is_active           BOOLEAN DEFAULT TRUE,
            allow_zk_attendance BOOLEAN DEFAULT FALSE,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE zk_attendance_logs (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code   VARCHAR(50) NOT NULL,
            attendance_date DATE NOT NULL,
            attendance_time VARCHAR(8) NOT NULL,
            record_type     VARCHAR(10) NOT NULL DEFAULT 'unknown',
            raw_data        JSONB,
            is_processed    BOOLEAN DEFAULT FALSE,
            processed_at    TIMESTAMPTZ,
            api_key_id      UUID REFERENCES device_api_keys(id) ON DELETE SET NULL,
            created_at      TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_zk_logs_code_date ON zk_attendance_logs(employee_code, attendance_date)")
    op.execute("CREATE INDEX ix_zk_logs_date_time ON zk_attendance_logs(attendance_date, attendance_time)")

    # ── 13. deduction_rules / saved_attendance ────────────────────────────
    op.execute("""
        CREATE TABLE deduction_rules (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            rule_name       VARCHAR(150) NOT NULL,
            rule_type       VARCHAR(20)  NOT NULL,
            min_minutes     INTEGER,
            max_minutes     INTEGER,
            deduction_type  VARCHAR(20)  NOT NULL,
            deduction_value NUMERIC(12, 4) NOT NULL DEFAULT 0,
            sort_order      INTEGER DEFAULT 0,
            is_active       BOOLEAN DEFAULT TRUE,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE saved_attendance (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code      VARCHAR(50) NOT NULL,
            attendance_date    DATE NOT NULL,
            in_time            VARCHAR(8),
            out_time           VARCHAR(8),
            total_hours        NUMERIC(6, 2),
            expected_hours     NUMERIC(6, 2),
            difference_hours   NUMERIC(6, 2),
            record_status      VARCHAR(20) NOT NULL DEFAULT 'normal',
            vacation_type      VARCHAR(50),
            late_minutes       INTEGER DEFAULT 0,
            early_exit_minutes INTEGER DEFAULT 0,
            deduction_rule_id  UUID REFERENCES deduction_rules(id) ON DELETE SET NULL,
            deduction_amount   NUMERIC(12, 2) DEFAULT 0,
            is_confirmed       BOOLEAN DEFAULT FALSE,
            confirmed_by       UUID REFERENCES users(id),
            confirmed_at       TIMESTAMPTZ,
            saved_by           UUID REFERENCES users(id),
            saved_at           TIMESTAMPTZ DEFAULT NOW(),
            filter_from_date   DATE,
            filter_to_date     DATE,
            batch_id           UUID,
            notes              TEXT,
            CONSTRAINT uq_saved_attendance_code_date UNIQUE (employee_code, attendance_date)
        )
    """)
    op.execute("CREATE INDEX ix_saved_attendance_batch ON saved_attendance(batch_id)")

    # ── 14. Odoo configuration and master data ────────────────────────────
    op.execute("""
        CREATE TABLE odoo_api_config (
            id                          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            is_active                   BOOLEAN DEFAULT TRUE,
            is_production_mode          BOOLEAN DEFAULT FALSE,
            api_key                     VARCHAR(255),
            api_key_test                VARCHAR(255),
            customer_api_url            TEXT,
            customer_api_url_test       TEXT,
            brand_api_url               TEXT,
            brand_api_url_test          TEXT,
            product_api_url             TEXT,
            product_api_url_test        TEXT,
            sales_order_api_url         TEXT,
            sales_order_api_url_test    TEXT,
            purchase_order_api_url      TEXT,
            purchase_order_api_url_test TEXT,
            supplier_api_url            TEXT,
            supplier_api_url_test       TEXT,
            created_at                  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at                  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE purpletransaction (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            order_number        VARCHAR(100) NOT NULL,
            created_at_date     TIMESTAMP NOT NULL,
            created_at_date_int INTEGER NOT NULL,
            customer_name       VARCHAR(200),
            customer_phone      VARCHAR(50),
            brand_code          VARCHAR(50),
            brand_name          VARCHAR(200),
            product_id          VARCHAR(100),
            product_name        VARCHAR(300),
            unit_price          NUMERIC(14, 4) DEFAULT 0,
            total               NUMERIC(14, 2) DEFAULT 0,
            qty                 NUMERIC(12, 3) DEFAULT 1,
            cost_price          NUMERIC(14, 4),
            cost_sold           NUMERIC(14, 2),
            payment_method      VARCHAR(50),
            payment_brand       VARCHAR(50),
            user_name           VARCHAR(200),
            vendor_name         VARCHAR(200),
            company             VARCHAR(100),
            is_deleted          BOOLEAN DEFAULT FALSE,
            sendodoo            BOOLEAN DEFAULT FALSE
        )
    """)
    op.execute("CREATE INDEX ix_purpletransaction_date_int ON purpletransaction(created_at_date_int)")
    op.execute("CREATE INDEX ix_purpletransaction_order    ON purpletransaction(order_number)")

    op.execute("""
        CREATE TABLE products (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            product_id      VARCHAR(100) NOT NULL UNIQUE,
            sku             VARCHAR(100),
            product_name    VARCHAR(300),
            non_stock       BOOLEAN DEFAULT FALSE,
            odoo_product_id INTEGER,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_products_sku ON products(sku)")
    op.execute("""
        CREATE TABLE brands (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            brand_code       VARCHAR(50) NOT NULL UNIQUE,
            brand_name       VARCHAR(200),
            odoo_category_id INTEGER,
            created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at       TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE customers (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            customer_phone     VARCHAR(50) NOT NULL UNIQUE,
            customer_name      VARCHAR(200),
            partner_profile_id INTEGER,
            res_partner_id     INTEGER,
            created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE suppliers (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            supplier_code      VARCHAR(50)  NOT NULL UNIQUE,
            supplier_name      VARCHAR(200) NOT NULL,
            partner_profile_id INTEGER,
            created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 15. Odoo sync runs ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE odoo_sync_runs (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            from_date         DATE NOT NULL,
            to_date           DATE NOT NULL,
            start_time        TIMESTAMPTZ DEFAULT NOW(),
            end_time          TIMESTAMPTZ,
            total_orders      INTEGER DEFAULT 0,
            successful_orders INTEGER DEFAULT 0,
            failed_orders     INTEGER DEFAULT 0,
            skipped_orders    INTEGER DEFAULT 0,
            progress          INTEGER DEFAULT 0,
            status            VARCHAR(20) NOT NULL DEFAULT 'running',
            mode              VARCHAR(20) NOT NULL DEFAULT 'orders',
            created_by        UUID REFERENCES users(id)
        )
    """)
    op.execute("""
        CREATE TABLE odoo_sync_run_details (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            run_id         UUID NOT NULL REFERENCES odoo_sync_runs(id) ON DELETE CASCADE,
            order_number   VARCHAR(100) NOT NULL,
            order_date     DATE,
            customer_phone VARCHAR(50),
            product_names  TEXT,
            total_amount   NUMERIC(14, 2) DEFAULT 0,
            payment_method VARCHAR(50),
            payment_brand  VARCHAR(50),
            sync_status    VARCHAR(20) NOT NULL DEFAULT 'pending',
            error_message  TEXT,
            step_customer  VARCHAR(20) DEFAULT 'pending',
            step_brand     VARCHAR(20) DEFAULT 'pending',
            step_product   VARCHAR(20) DEFAULT 'pending',
            step_order     VARCHAR(20) DEFAULT 'pending',
            step_purchase  VARCHAR(20) DEFAULT 'pending',
            created_at     TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_odoo_sync_run_details_run ON odoo_sync_run_details(run_id)")

    op.execute("""
        CREATE TABLE aggregated_order_mapping (
            id                      UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            aggregated_order_number VARCHAR(100) NOT NULL,
            original_order_number   VARCHAR(100) NOT NULL UNIQUE,
            aggregation_date        DATE NOT NULL,
            brand_name              VARCHAR(200),
            payment_method          VARCHAR(50),
            payment_brand           VARCHAR(50),
            user_name               VARCHAR(200),
            created_at              TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_aggregated_order_mapping_aggregated_order_number
            ON aggregated_order_mapping(aggregated_order_number)
    """)

    # ── Seed data ─────────────────────────────────────────────────────────
    op.execute("""
        INSERT INTO currencies (currency_code, currency_name, symbol, is_base)
        VALUES ('SAR', 'Saudi Riyal', 'SR', TRUE)
        ON CONFLICT (currency_code) DO NOTHING
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "aggregated_order_mapping",
        "odoo_sync_run_details",
        "odoo_sync_runs",
        "suppliers",
        "customers",
        "brands",
        "products",
        "purpletransaction",
        "odoo_api_config",
        "saved_attendance",
        "deduction_rules",
        "zk_attendance_logs",
        "device_api_keys",
        "void_payment_history",
        "treasury_entries",
        "bank_entries",
        "expense_requests",
        "expense_types",
        "treasuries",
        "banks",
        "currency_rates",
        "currencies",
        "employees",
        "attendance_types",
        "audit_trail",
        "page_permissions",
        "role_assignments",
        "user_sessions",
        "users",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")
