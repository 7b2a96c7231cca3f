#!/usr/bin/env python3
"""Booking E2E smoke for the Appointly API.

Registers a tenant through the platform API, then books, double-books,
reschedules and cancels against the seeded specialist of that tenant.
Requires a running PostgreSQL-backed server with PLATFORM_API_KEY set.
"""

from __future__ import annotations

import json
import os
import sys
import uuid
from dataclasses import dataclass
from datetime import date, timedelta

import httpx

BASE_URL = os.getenv("APPOINTLY_URL", "http://127.0.0.1:8080")
PLATFORM_KEY = os.getenv("PLATFORM_API_KEY", "")
TIMEOUT = 30.0

# Seeded by the tenant schema template.
SPECIALIST_ID = 1
SERVICE_ID = 1


@dataclass
class SmokeState:
    domain: str = ""
    appointment_id: int | None = None


def expect(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def call(client: httpx.Client, method: str, path: str, expected: int = 200, **kwargs):
    resp = client.request(method, f"{BASE_URL}{path}", **kwargs)
    expect(
        resp.status_code == expected,
        f"{method} {path} -> {resp.status_code} != {expected}; body={resp.text[:500]}",
    )
    return resp


def next_weekday(start: date) -> date:
    day = start + timedelta(days=1)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


def main() -> int:
    expect(bool(PLATFORM_KEY), "PLATFORM_API_KEY must be set")
    suffix = uuid.uuid4().hex[:8]
    state = SmokeState(domain=f"smoke-{suffix}.example.com")

    with httpx.Client(timeout=TIMEOUT) as client:
        # 1) Health
        health = call(client, "GET", "/api/health").json()
        expect(health.get("status") == "healthy", "health status is not healthy")

        # 2) Register tenant (provisions its schema)
        platform = {"X-Platform-Key": PLATFORM_KEY}
        call(
            client,
            "POST",
            "/api/platform/tenants",
            expected=201,
            headers=platform,
            json={"name": "Smoke Clinic", "domain": state.domain, "schema_name": f"smoke_{suffix}"},
        )
        tenant = {"Origin": f"https://www.{state.domain}"}

        # 3) Availability on the next weekday
        day = next_weekday(date.today()).isoformat()
        slots = call(
            client, "GET", f"/api/specialists/{SPECIALIST_ID}/available-slots?date={day}", headers=tenant
        ).json()["data"]
        expect(len(slots) == 8, f"expected 8 hourly slots, got {slots}")

        # 4) Book, then try to double-book
        body = {
            "specialist_id": SPECIALIST_ID,
            "service_id": SERVICE_ID,
            "appointment_date": day,
            "appointment_time": slots[0],
        }
        created = call(client, "POST", "/api/appointments", expected=201, headers=tenant, json=body).json()
        state.appointment_id = int(created["data"]["id"])
        call(client, "POST", "/api/appointments", expected=409, headers=tenant, json=body)

        after = call(
            client, "GET", f"/api/specialists/{SPECIALIST_ID}/available-slots?date={day}", headers=tenant
        ).json()["data"]
        expect(slots[0] not in after, "booked slot still offered")

        # 5) Reschedule and cancel
        call(
            client,
            "PUT",
            f"/api/appointments/{state.appointment_id}",
            headers=tenant,
            json={"appointment_date": day, "appointment_time": slots[1]},
        )
        call(client, "POST", f"/api/appointments/{state.appointment_id}/cancel", headers=tenant)

        # 6) Negative sanity
        unknown = client.get(
            f"{BASE_URL}/api/specialists/{SPECIALIST_ID}/available-slots?date={day}",
            headers={"Origin": f"https://unknown-{suffix}.example.com"},
        )
        expect(unknown.status_code == 404, f"expected 404 for unknown tenant, got {unknown.status_code}")

    print(json.dumps({"ok": True, "message": "Appointly booking smoke passed", "domain": state.domain}))
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as exc:  # noqa: BLE001
        print(json.dumps({"ok": False, "error": str(exc)}))
        sys.exit(1)
