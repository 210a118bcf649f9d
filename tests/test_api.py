"""HTTP surface over the in-memory container."""

import pytest
from httpx import AsyncClient

from storeops.container import ServiceContainer

pytestmark = pytest.mark.asyncio


async def test_settings_fallback_over_http(client: AsyncClient, container: ServiceContainer):
    container.backend.drop_table("loyalty_system_settings")
    r = await client.get("/v1/loyalty/settings")
    assert r.status_code == 200
    body = r.json()
    assert body["is_system_enabled"] is True
    assert body["default_coins_per_rupee"] == 0.10
    assert body["min_coins_to_redeem"] == 10


async def test_wallet_credit_and_redeem_flow(client: AsyncClient):
    r = await client.get("/v1/loyalty/wallet/u1")
    assert r.status_code == 200
    assert r.json()["wallet"]["available_coins"] == 0

    r = await client.post(
        "/v1/loyalty/credits/order",
        json={"order_id": "o-1", "user_id": "u1", "order_amount": 1000, "order_number": "SO-1"},
    )
    assert r.json() == {"credited": True}

    r = await client.post("/v1/loyalty/redeem", json={"user_id": "u1", "coins": 60, "order_id": "o-2"})
    assert r.status_code == 200
    assert r.json()["wallet"]["available_coins"] == 40

    r = await client.post("/v1/loyalty/redeem", json={"user_id": "u1", "coins": 500, "order_id": "o-3"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "BAD_REQUEST"

    r = await client.get("/v1/loyalty/transactions/u1")
    assert [t["transaction_type"] for t in r.json()["transactions"]] == ["redeemed", "earned"]


async def test_quote(client: AsyncClient):
    r = await client.get("/v1/loyalty/quote", params={"amount": 1234.56})
    assert r.json() == {"amount": 1234.56, "coins": 123}


async def test_admin_settings_and_adjustment(client: AsyncClient):
    r = await client.put("/v1/admin/loyalty/settings", json={"global_coins_multiplier": 2.0})
    assert r.status_code == 200
    assert r.json()["global_coins_multiplier"] == 2.0
    r = await client.get("/v1/loyalty/quote", params={"amount": 100})
    assert r.json()["coins"] == 20

    await client.get("/v1/loyalty/wallet/u9")
    r = await client.post(
        "/v1/admin/loyalty/adjust", json={"user_id": "u9", "coins": 15, "type": "add", "reason": "Goodwill"}
    )
    assert r.status_code == 200
    assert r.json()["available_coins"] == 15

    r = await client.get("/v1/admin/loyalty/stats")
    assert r.json()["total_coins_issued"] == 15

    r = await client.post("/v1/admin/loyalty/wallets/u9/reconcile")
    assert r.json()["was_in_sync"] is True


async def test_redeem_wallet_failure_is_503(client: AsyncClient, container: ServiceContainer):
    await client.post(
        "/v1/admin/loyalty/adjust", json={"user_id": "u1", "coins": 50, "type": "add", "reason": "Seed"}
    )
    container.backend.drop_function("update_user_coin_wallet_safe")
    r = await client.post("/v1/loyalty/redeem", json={"user_id": "u1", "coins": 20, "order_id": "o-1"})
    assert r.status_code == 503
    assert r.json()["error"]["code"] == "SERVICE_UNAVAILABLE"


async def test_payroll_endpoints(client: AsyncClient):
    r = await client.post(
        "/v1/employees",
        json={"employee_id": "EMP001", "full_name": "Asha", "salary_type": "Monthly", "base_salary": 30000},
    )
    assert r.status_code == 200
    emp_id = r.json()["id"]

    r = await client.post(
        "/v1/attendance", json={"employee_id": emp_id, "attendance_date": "2026-03-02", "status": "Absent"}
    )
    assert r.status_code == 200

    r = await client.post("/v1/payroll/generate", json={"employee_id": emp_id, "month": 3, "year": 2026})
    assert r.status_code == 200
    salary = r.json()
    assert salary["absent_deduction"] == 1153.85

    r = await client.post("/v1/payroll/generate", json={"employee_id": emp_id, "month": 3, "year": 2026})
    assert r.status_code == 409

    r = await client.post(f"/v1/payroll/salaries/{salary['id']}/payment", json={"payment_mode": "Bank Transfer"})
    assert r.json()["payment_status"] == "Paid"

    r = await client.get("/v1/payroll/summary", params={"month": 3, "year": 2026})
    assert r.json()["paid_count"] == 1

    r = await client.get("/v1/payroll/export", params={"month": 3, "year": 2026})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/vnd.openxmlformats")


async def test_validation_error_shape(client: AsyncClient):
    r = await client.post("/v1/payroll/bulk", json={"month": 14, "year": 2026})
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_unknown_employee_is_404(client: AsyncClient):
    r = await client.get("/v1/employees/missing")
    assert r.status_code == 404


async def test_attendance_lock_endpoint(client: AsyncClient, make_employee):
    emp = await make_employee("EMP001", "Asha")
    r = await client.post(
        "/v1/attendance", json={"employee_id": emp["id"], "attendance_date": "2026-03-02", "status": "Present"}
    )
    assert r.status_code == 200

    r = await client.post("/v1/attendance/lock", json={"employee_id": emp["id"], "month": 3, "year": 2026})
    assert r.json() == {"locked": 1}

    r = await client.post(
        "/v1/attendance",
        json={"employee_id": emp["id"], "attendance_date": "2026-03-02", "status": "Absent", "overwrite": True},
    )
    assert r.status_code == 409

    r = await client.post("/v1/attendance/lock", json={"employee_id": emp["id"], "month": 13, "year": 2026})
    assert r.status_code == 422
