"""Fixed SQL template for a tenant schema.

The template is parameterised only by the schema name. Every statement is
conditional (IF NOT EXISTS / ON CONFLICT / WHERE NOT EXISTS) so rendering it
twice against the same schema never duplicates tables or seed rows. Table
definitions mirror the ``TenantBase`` models in ``appointly.models``.
"""

from __future__ import annotations

from appointly.errors import BadRequest
from appointly.models.tenant import is_valid_schema_name

SCHEMA_PLACEHOLDER = "{schema}"

TENANT_SCHEMA_TEMPLATE = """
CREATE SCHEMA IF NOT EXISTS "{schema}";

CREATE TABLE IF NOT EXISTS "{schema}".users (
    id SERIAL PRIMARY KEY,
    email VARCHAR(255) UNIQUE NOT NULL,
    password VARCHAR(255) NOT NULL,
    role VARCHAR(20) NOT NULL DEFAULT 'user' CHECK (role IN ('admin', 'user')),
    name VARCHAR(255) NOT NULL,
    phone VARCHAR(20),
    birth_date DATE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS "{schema}".settings (
    id SERIAL PRIMARY KEY,
    key VARCHAR(100) UNIQUE NOT NULL,
    value TEXT NOT NULL,
    description TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS "{schema}".categories (
    id SERIAL PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    description TEXT,
    active BOOLEAN DEFAULT true,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS "{schema}".services (
    id SERIAL PRIMARY KEY,
    category_id INTEGER REFERENCES "{schema}".categories(id) ON DELETE SET NULL,
    name VARCHAR(255) NOT NULL,
    description TEXT,
    price DECIMAL(10,2) NOT NULL,
    image_url VARCHAR(500),
    active BOOLEAN DEFAULT true,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS "{schema}".specialists (
    id SERIAL PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    email VARCHAR(255) UNIQUE NOT NULL,
    phone VARCHAR(20),
    active BOOLEAN DEFAULT true,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS "{schema}".working_hours (
    id SERIAL PRIMARY KEY,
    specialist_id INTEGER NOT NULL REFERENCES "{schema}".specialists(id) ON DELETE CASCADE,
    day_of_week INTEGER NOT NULL CHECK (day_of_week >= 0 AND day_of_week <= 6),
    start_time TIME NOT NULL,
    end_time TIME NOT NULL,
    active BOOLEAN DEFAULT true,
    CONSTRAINT uq_working_hours_specialist_day UNIQUE (specialist_id, day_of_week),
    CHECK (NOT active OR start_time < end_time)
);

CREATE TABLE IF NOT EXISTS "{schema}".devices (
    id SERIAL PRIMARY KEY,
    brand VARCHAR(255) NOT NULL,
    name VARCHAR(255) NOT NULL,
    device_date DATE NOT NULL,
    price DECIMAL(10,2) NOT NULL,
    active BOOLEAN DEFAULT true,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS "{schema}".appointments (
    id SERIAL PRIMARY KEY,
    user_id INTEGER REFERENCES "{schema}".users(id) ON DELETE CASCADE,
    specialist_id INTEGER NOT NULL REFERENCES "{schema}".specialists(id) ON DELETE CASCADE,
    service_id INTEGER NOT NULL REFERENCES "{schema}".services(id) ON DELETE CASCADE,
    appointment_date DATE NOT NULL,
    appointment_time TIME NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'confirmed', 'completed', 'cancelled')),
    payment_status VARCHAR(20) NOT NULL DEFAULT 'pending'
        CHECK (payment_status IN ('pending', 'completed', 'failed', 'refunded')),
    total_amount DECIMAL(10,2) NOT NULL,
    notes TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS "{schema}".contact_messages (
    id SERIAL PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    email VARCHAR(255) NOT NULL,
    subject VARCHAR(255) NOT NULL,
    message TEXT NOT NULL,
    is_read BOOLEAN DEFAULT false,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS "{schema}".payments (
    id SERIAL PRIMARY KEY,
    appointment_id INTEGER REFERENCES "{schema}".appointments(id) ON DELETE CASCADE,
    device_id INTEGER REFERENCES "{schema}".devices(id) ON DELETE SET NULL,
    amount DECIMAL(10,2) NOT NULL,
    payment_method VARCHAR(50),
    transaction_id VARCHAR(255),
    status VARCHAR(20) DEFAULT 'pending' CHECK (status IN ('pending', 'completed', 'failed', 'refunded')),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS "{schema}".reports (
    id SERIAL PRIMARY KEY,
    user_id INTEGER REFERENCES "{schema}".users(id) ON DELETE CASCADE,
    report_type VARCHAR(50) NOT NULL CHECK (report_type IN ('sales', 'payments', 'appointments', 'users')),
    file_name VARCHAR(255) NOT NULL,
    file_path VARCHAR(500),
    filters JSONB,
    status VARCHAR(20) DEFAULT 'generated' CHECK (status IN ('generated', 'downloaded', 'expired')),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    expires_at TIMESTAMP
);

-- one live booking per specialist slot; cancelled rows free the slot again
CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot
    ON "{schema}".appointments(specialist_id, appointment_date, appointment_time)
    WHERE status <> 'cancelled';

CREATE INDEX IF NOT EXISTS ix_appointments_user_id ON "{schema}".appointments(user_id);
CREATE INDEX IF NOT EXISTS ix_appointments_specialist_date ON "{schema}".appointments(specialist_id, appointment_date);
CREATE INDEX IF NOT EXISTS ix_appointments_date ON "{schema}".appointments(appointment_date);
CREATE INDEX IF NOT EXISTS ix_working_hours_specialist_id ON "{schema}".working_hours(specialist_id);
CREATE INDEX IF NOT EXISTS ix_contact_messages_read ON "{schema}".contact_messages(is_read);
CREATE INDEX IF NOT EXISTS ix_reports_user_type ON "{schema}".reports(user_id, report_type);
CREATE INDEX IF NOT EXISTS ix_reports_created ON "{schema}".reports(created_at);
CREATE INDEX IF NOT EXISTS ix_categories_active ON "{schema}".categories(active);
CREATE INDEX IF NOT EXISTS ix_services_category ON "{schema}".services(category_id, active);
CREATE INDEX IF NOT EXISTS ix_services_active ON "{schema}".services(active);
CREATE INDEX IF NOT EXISTS ix_specialists_active ON "{schema}".specialists(active);
CREATE INDEX IF NOT EXISTS ix_devices_active ON "{schema}".devices(active);
CREATE INDEX IF NOT EXISTS ix_payments_appointment ON "{schema}".payments(appointment_id);
CREATE INDEX IF NOT EXISTS ix_payments_device ON "{schema}".payments(device_id);

INSERT INTO "{schema}".settings (key, value, description) VALUES
    ('appointment_duration', '60', 'Appointment duration in minutes for available slots calculation'),
    ('working_hours_start', '09:00', 'Default working hours start time'),
    ('working_hours_end', '17:00', 'Default working hours end time'),
    ('max_advance_booking_days', '30', 'Maximum days in advance for booking')
ON CONFLICT (key) DO NOTHING;

INSERT INTO "{schema}".categories (name, description)
SELECT v.name, v.description
FROM (VALUES
    ('Consulting', 'Expert consulting services'),
    ('Health', 'Health related services'),
    ('Education', 'Training and tutoring services')
) AS v(name, description)
WHERE NOT EXISTS (SELECT 1 FROM "{schema}".categories);

INSERT INTO "{schema}".services (category_id, name, description, price, image_url)
SELECT c.id, v.name, v.description, v.price, v.image_url
FROM (VALUES
    ('Consulting', 'Individual Consulting', 'One-to-one expert session', 200.00, 'https://example.com/images/counseling.jpg'),
    ('Consulting', 'Consultation', 'Short consultation', 100.00, 'https://example.com/images/consultation.jpg'),
    ('Health', 'Health Check', 'Detailed health examination', 300.00, 'https://example.com/images/health-check.jpg')
) AS v(category, name, description, price, image_url)
JOIN "{schema}".categories c ON c.name = v.category
WHERE NOT EXISTS (SELECT 1 FROM "{schema}".services);

INSERT INTO "{schema}".specialists (name, email, phone) VALUES
    ('Dr. Jane Carter', 'jane.carter@example.com', '+15550100100')
ON CONFLICT (email) DO NOTHING;

INSERT INTO "{schema}".working_hours (specialist_id, day_of_week, start_time, end_time, active)
SELECT s.id, d.day, TIME '09:00', TIME '17:00', true
FROM "{schema}".specialists s
CROSS JOIN (VALUES (1), (2), (3), (4), (5)) AS d(day)
WHERE s.email = 'jane.carter@example.com'
ON CONFLICT (specialist_id, day_of_week) DO NOTHING;

INSERT INTO "{schema}".devices (brand, name, device_date, price)
SELECT v.brand, v.name, v.device_date::date, v.price
FROM (VALUES
    ('Philips', 'X-Ray Unit Model A', '2024-01-15', 25000.00),
    ('Siemens', 'MRI Scanner Pro', '2023-12-20', 85000.00),
    ('GE Healthcare', 'Ultrasound Unit', '2024-02-10', 15000.00)
) AS v(brand, name, device_date, price)
WHERE NOT EXISTS (SELECT 1 FROM "{schema}".devices);
"""


def _is_comment_only(chunk: str) -> bool:
    return all(not line.strip() or line.strip().startswith("--") for line in chunk.splitlines())


def render_schema_template(schema_name: str, template: str = TENANT_SCHEMA_TEMPLATE) -> list[str]:
    """Substitute ``schema_name`` into the template and split it into statements."""
    if not is_valid_schema_name(schema_name):
        raise BadRequest(f"invalid schema name: {schema_name!r}")

    rendered = template.replace(SCHEMA_PLACEHOLDER, schema_name)
    statements = []
    for chunk in rendered.split(";\n"):
        chunk = chunk.strip().rstrip(";").strip()
        if chunk and not _is_comment_only(chunk):
            statements.append(chunk)
    return statements
