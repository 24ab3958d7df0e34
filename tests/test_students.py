import io
from datetime import datetime
from typing import Dict

import pytest
from httpx import AsyncClient
from openpyxl import Workbook, load_workbook
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tuitiondesk.api.v1.students.service import normalize_phone, parse_join_date
from tuitiondesk.core.models import FeeAuditLog

from conftest import create_batch, create_student

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _xlsx(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()


@pytest.mark.asyncio
async def test_create_student_defaults(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    batch = await create_batch(client, teacher_headers)
    student = await create_student(client, teacher_headers, batch["id"])
    assert student["batch_id"] == batch["id"]
    assert student["custom_fee"] is None
    assert student["join_date"] is not None


@pytest.mark.asyncio
async def test_same_phone_twice_in_batch_conflicts(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    batch = await create_batch(client, teacher_headers)
    other = await create_batch(client, teacher_headers, name="Maths 10B")
    await create_student(client, teacher_headers, batch["id"])

    response = await client.post(
        "/api/v1/students",
        json={"batch_id": batch["id"], "full_name": "Someone Else", "phone": "9876543210", "standard": "Class 10"},
        headers=teacher_headers,
    )
    assert response.status_code == 409

    # The same phone may join a different batch
    await create_student(client, teacher_headers, other["id"])


@pytest.mark.asyncio
@pytest.mark.parametrize("phone", ["12345", "98765432100", "98765abcde"])
async def test_malformed_phone_rejected(client: AsyncClient, teacher_headers: Dict[str, str], phone: str) -> None:
    batch = await create_batch(client, teacher_headers)
    response = await client.post(
        "/api/v1/students",
        json={"batch_id": batch["id"], "full_name": "Rahul", "phone": phone, "standard": "Class 10"},
        headers=teacher_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_student_in_foreign_batch_forbidden(
    client: AsyncClient,
    teacher_headers: Dict[str, str],
    other_teacher_headers: Dict[str, str],
) -> None:
    batch = await create_batch(client, teacher_headers)
    response = await client.post(
        "/api/v1/students",
        json={"batch_id": batch["id"], "full_name": "Rahul", "phone": "9876543210", "standard": "Class 10"},
        headers=other_teacher_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_student_custom_fee_above_batch_fee(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    batch = await create_batch(client, teacher_headers)
    response = await client.post(
        "/api/v1/students",
        json={
            "batch_id": batch["id"],
            "full_name": "Rahul",
            "phone": "9876543210",
            "standard": "Class 10",
            "custom_fee": 6000,
        },
        headers=teacher_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Custom fee (₹6000) cannot exceed the batch fee (₹5000)"


@pytest.mark.asyncio
async def test_custom_fee_override(
    client: AsyncClient,
    db_session: AsyncSession,
    teacher_headers: Dict[str, str],
) -> None:
    batch = await create_batch(client, teacher_headers)
    student = await create_student(client, teacher_headers, batch["id"])

    ok = await client.patch(f"/api/v1/students/{student['id']}/fee", json={"custom_fee": 3000}, headers=teacher_headers)
    assert ok.status_code == 200
    assert ok.json()["custom_fee"] == 3000

    detail = await client.get(f"/api/v1/students/{student['id']}", headers=teacher_headers)
    assert detail.json()["student"]["expected_total_fee"] == 3000

    too_high = await client.patch(
        f"/api/v1/students/{student['id']}/fee", json={"custom_fee": 6000}, headers=teacher_headers
    )
    assert too_high.status_code == 400
    assert "₹5000" in too_high.json()["detail"]

    zero = await client.patch(f"/api/v1/students/{student['id']}/fee", json={"custom_fee": 0}, headers=teacher_headers)
    assert zero.status_code == 400

    cleared = await client.patch(
        f"/api/v1/students/{student['id']}/fee", json={"custom_fee": None}, headers=teacher_headers
    )
    assert cleared.status_code == 200
    assert cleared.json()["custom_fee"] is None

    logs = (
        await db_session.execute(select(FeeAuditLog).where(FeeAuditLog.reference_table == "students"))
    ).scalars().all()
    assert len(logs) == 2
    assert {(log.old_value["custom_fee"], log.new_value["custom_fee"]) for log in logs} == {(None, 3000), (3000, None)}


@pytest.mark.asyncio
async def test_student_detail_ledger(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    batch = await create_batch(client, teacher_headers)
    student = await create_student(client, teacher_headers, batch["id"])
    for amount in (1000, 1500):
        resp = await client.post(
            "/api/v1/payments",
            json={"student_id": student["id"], "amount": amount, "payment_method": "Cash"},
            headers=teacher_headers,
        )
        assert resp.status_code == 201

    response = await client.get(f"/api/v1/students/{student['id']}", headers=teacher_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["student"]["total_paid"] == 2500
    assert data["student"]["total_due"] == 2500
    assert [p["paid_so_far"] for p in data["payments"]] == [1000, 2500]
    assert [p["remaining"] for p in data["payments"]] == [4000, 2500]


@pytest.mark.asyncio
async def test_update_and_delete_student(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    batch = await create_batch(client, teacher_headers)
    student = await create_student(client, teacher_headers, batch["id"])
    response = await client.patch(
        f"/api/v1/students/{student['id']}",
        json={
            "full_name": "Rahul K Sharma",
            "phone": "9876543211",
            "standard": "Class 11",
            "join_date": "2024-01-15T00:00:00+00:00",
            "guardian_name": "Anil Sharma",
            "city": "",
        },
        headers=teacher_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["full_name"] == "Rahul K Sharma"
    assert data["guardian_name"] == "Anil Sharma"
    assert data["city"] is None
    assert data["join_date"].startswith("2024-01-15")

    deleted = await client.delete(f"/api/v1/students/{student['id']}", headers=teacher_headers)
    assert deleted.status_code == 200
    gone = await client.get(f"/api/v1/students/{student['id']}", headers=teacher_headers)
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_bulk_json_import(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    batch = await create_batch(client, teacher_headers)
    await create_student(client, teacher_headers, batch["id"], phone="9000000001")
    response = await client.post(
        f"/api/v1/batches/{batch['id']}/students/bulk",
        json={
            "students": [
                {"full_name": "Asha", "phone": "9000000001", "standard": "Class 10"},
                {"full_name": "Bina", "phone": "9000000002", "standard": "Class 10"},
                {"full_name": "Chetan", "phone": "9000000003", "standard": "Class 10"},
                {"full_name": "Bina Again", "phone": "9000000002", "standard": "Class 10"},
            ]
        },
        headers=teacher_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["count"] == 2
    assert [f["index"] for f in data["failed"]] == [0, 3]
    assert {s["phone"] for s in data["students"]} == {"9000000002", "9000000003"}


@pytest.mark.asyncio
async def test_bulk_json_import_keeps_valid_rows(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    batch = await create_batch(client, teacher_headers)
    response = await client.post(
        f"/api/v1/batches/{batch['id']}/students/bulk",
        json={
            "students": [
                {"full_name": "Asha", "phone": "9876543210", "standard": "Class 10"},
                {"full_name": "Short Phone", "phone": "12345", "standard": "Class 10"},
                {"full_name": "No Class", "phone": "9876543211"},
                {"full_name": "Dev", "phone": "9876543212", "standard": "Class 10"},
            ]
        },
        headers=teacher_headers,
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["count"] == 2
    assert {s["phone"] for s in data["students"]} == {"9876543210", "9876543212"}
    failed = data["failed"]
    assert [f["index"] for f in failed] == [1, 2]
    assert failed[0]["full_name"] == "Short Phone"
    assert failed[0]["phone"] == "12345"
    assert "phone" in failed[0]["reason"]
    assert "standard" in failed[1]["reason"]


@pytest.mark.asyncio
async def test_excel_template(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    batch = await create_batch(client, teacher_headers)
    response = await client.get(
        f"/api/v1/batches/{batch['id']}/students/bulk-excel/template",
        headers=teacher_headers,
    )
    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX
    ws = load_workbook(io.BytesIO(response.content)).active
    assert [c.value for c in ws[1]] == ["Full Name", "Phone", "Email", "Class/Standard", "Join Date"]


@pytest.mark.asyncio
async def test_excel_import(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    batch = await create_batch(client, teacher_headers)
    content = _xlsx(
        [
            ["Full Name", "Phone", "Email", "Class/Standard", "Join Date"],
            ["Rahul Sharma", "+91 98765 43210", "rahul@example.com", "Class 10", "2024-01-15"],
            ["Priya Patel", 9876543211, None, "Class 10", datetime(2024, 2, 1)],
            ["Bad Phone", "12345", None, "Class 10", None],
            [None, None, None, None, None],
            ["Dup Rahul", "9876543210", None, "Class 10", None],
            ["Bad Date", "9876543212", None, "Class 10", "15/01/2024"],
        ]
    )
    response = await client.post(
        f"/api/v1/batches/{batch['id']}/students/bulk-excel",
        files={"file": ("students.xlsx", content, XLSX)},
        headers=teacher_headers,
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["count"] == 2
    assert {s["phone"] for s in data["students"]} == {"9876543210", "9876543211"}
    assert [f["index"] for f in data["failed"]] == [4, 6, 7]


@pytest.mark.asyncio
async def test_excel_import_rejects_non_xlsx(client: AsyncClient, teacher_headers: Dict[str, str]) -> None:
    batch = await create_batch(client, teacher_headers)
    response = await client.post(
        f"/api/v1/batches/{batch['id']}/students/bulk-excel",
        files={"file": ("students.csv", b"name,phone\n", "text/csv")},
        headers=teacher_headers,
    )
    assert response.status_code == 400


def test_normalize_phone() -> None:
    assert normalize_phone("+91 98765 43210") == "9876543210"
    assert normalize_phone(9876543210) == "9876543210"
    assert normalize_phone(9876543210.0) == "9876543210"
    assert normalize_phone(None) == ""


def test_parse_join_date() -> None:
    assert parse_join_date(None) is None
    assert parse_join_date("  ") is None
    assert parse_join_date("2024-01-15") == datetime(2024, 1, 15)
    assert parse_join_date(45306) == datetime(2024, 1, 15)
    with pytest.raises(ValueError):
        parse_join_date("15/01/2024")
