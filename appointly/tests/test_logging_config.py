from __future__ import annotations

import logging

from appointly.logging_config import StructuredFormatter
from appointly.tenancy.cache import TenantCacheEntry
from appointly.tenancy.middleware import current_tenant


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("appointly.test", logging.INFO, __file__, 1, "slot lookup", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_includes_request_context():
    line = StructuredFormatter().format(_record(request_id="abc", status_code=201))

    assert "appointly.test: slot lookup" in line
    assert "request_id=abc" in line
    assert "status_code=201" in line
    assert "tenant=" not in line


def test_formatter_stamps_active_tenant():
    token = current_tenant.set(TenantCacheEntry(id=1, name="Clinic", domain="clinic.com", schema_name="clinic"))
    try:
        line = StructuredFormatter().format(_record())
        explicit = StructuredFormatter().format(_record(tenant="other.org"))
    finally:
        current_tenant.reset(token)

    assert "tenant=clinic.com" in line
    assert "tenant=other.org" in explicit
