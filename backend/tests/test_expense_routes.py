"""
Expense Tracker Backend — Expense API Tests
============================================

What:  Expense CRUD, listing, statistics and receipt handling end to end.

What we test:
    ✅ 12.50 / food / today round-trips exactly
    ✅ Invalid amount, category and future date each get a field-specific message
    ✅ Pagination: 55 expenses at limit 50 → pages of 50 and 5, totalPages 2
    ✅ Another user's expense is a 404 for GET, PUT and DELETE
    ✅ Partial updates, clearing a description, empty updates
    ✅ Receipts: upload on create, replacement, deletion survives host failure
    ✅ Oversized receipts are rejected; a failed write after upload keeps the asset
    ✅ Statistics: zero-valued when empty, grouped and ordered otherwise
"""

import datetime as dt
import logging
import uuid

import pytest
from sqlalchemy import text

from expense_tracker.exceptions import DatabaseError
from expense_tracker.services.upload_service import ImageUpload


def _fields(body):
    return {e["field"]: e["message"] for e in body.get("errors", [])}


def _today() -> str:
    return dt.date.today().isoformat()


def _days_ago(n: int) -> str:
    return (dt.date.today() - dt.timedelta(days=n)).isoformat()


@pytest.fixture
def create_expense(client):
    async def _create(headers, amount="10.00", category="food", date=None, description=None):
        payload = {"amount": amount, "category": category, "date": date or _today()}
        if description is not None:
            payload["description"] = description
        response = await client.post("/api/expenses", data=payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create


class TestCreateExpense:
    @pytest.mark.asyncio
    async def test_round_trip(self, client, register):
        user, headers = await register()
        response = await client.post(
            "/api/expenses",
            data={"amount": "12.50", "category": "food", "date": _today(), "description": "Lunch"},
            headers=headers,
        )
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Expense created successfully"
        created = body["data"]
        assert created["amount"] == 12.5
        assert created["category"] == "food"
        assert created["date"] == _today()
        assert created["description"] == "Lunch"
        assert created["user_id"] == user["id"]
        assert created["receipt_url"] is None

        fetched = await client.get(f"/api/expenses/{created['id']}", headers=headers)
        assert fetched.status_code == 200
        assert fetched.json()["message"] == "Expense retrieved successfully"
        stored = fetched.json()["data"]
        for key in ("id", "user_id", "amount", "category", "description", "date", "receipt_url"):
            assert stored[key] == created[key]

    @pytest.mark.asyncio
    async def test_json_body_accepted(self, client, register):
        _, headers = await register()
        response = await client.post(
            "/api/expenses",
            json={"amount": 99.99, "category": "Transport", "date": _today()},
            headers=headers,
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["amount"] == 99.99
        assert data["category"] == "transport"
        assert data["description"] is None

    @pytest.mark.asyncio
    async def test_invalid_fields_all_reported(self, client, register):
        _, headers = await register()
        tomorrow = (dt.date.today() + dt.timedelta(days=1)).isoformat()
        response = await client.post(
            "/api/expenses",
            data={"amount": "0", "category": "invalid-cat", "date": tomorrow},
            headers=headers,
        )
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert _fields(body) == {
            "amount": "Amount must be a positive number with max 2 decimal places",
            "category": (
                "Invalid category. Must be one of: food, transport, shopping, "
                "bills, entertainment, health, other"
            ),
            "date": "Date cannot be in the future",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount",
        ["-5", "0", "1.234", "abc", "100000000.00", "1e30", "1" * 30],
    )
    async def test_bad_amounts(self, client, register, amount):
        _, headers = await register()
        response = await client.post(
            "/api/expenses",
            data={"amount": amount, "category": "food", "date": _today()},
            headers=headers,
        )
        assert response.status_code == 400
        assert "amount" in _fields(response.json())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("date", ["2024/01/15", "15-01-2024", "2024-13-01", "yesterday"])
    async def test_bad_date_format(self, client, register, date):
        _, headers = await register()
        response = await client.post(
            "/api/expenses",
            data={"amount": "5.00", "category": "food", "date": date},
            headers=headers,
        )
        assert response.status_code == 400
        assert _fields(response.json()) == {"date": "Invalid date format. Use YYYY-MM-DD"}

    @pytest.mark.asyncio
    async def test_missing_required_fields(self, client, register):
        _, headers = await register()
        response = await client.post("/api/expenses", data={"description": "x"}, headers=headers)
        assert response.status_code == 400
        assert set(_fields(response.json())) == {"amount", "category", "date"}

    @pytest.mark.asyncio
    async def test_description_too_long(self, client, register):
        _, headers = await register()
        response = await client.post(
            "/api/expenses",
            data={"amount": "5.00", "category": "food", "date": _today(), "description": "d" * 501},
            headers=headers,
        )
        assert response.status_code == 400
        assert _fields(response.json()) == {
            "description": "Description must not exceed 500 characters"
        }

    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        response = await client.post(
            "/api/expenses", data={"amount": "5.00", "category": "food", "date": _today()}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_with_receipt(self, client, register, asset_store, png_bytes):
        _, headers = await register()
        response = await client.post(
            "/api/expenses",
            data={"amount": "42.00", "category": "bills", "date": _today()},
            files={"receipt": ("receipt.png", png_bytes, "image/png")},
            headers=headers,
        )
        assert response.status_code == 201
        assert asset_store.uploads == ["expense-tracker/receipts/asset-1"]
        assert response.json()["data"]["receipt_url"].endswith("receipts/asset-1.png")

    @pytest.mark.asyncio
    async def test_non_image_receipt_rejected(self, client, register, asset_store):
        _, headers = await register()
        response = await client.post(
            "/api/expenses",
            data={"amount": "42.00", "category": "bills", "date": _today()},
            files={"receipt": ("receipt.png", b"definitely not a png", "image/png")},
            headers=headers,
        )
        assert response.status_code == 400
        assert _fields(response.json()) == {"receipt": "Uploaded file is not a valid image"}
        assert asset_store.uploads == []

    @pytest.mark.asyncio
    async def test_oversized_receipt_rejected(self, client, register, asset_store, test_settings):
        _, headers = await register()
        response = await client.post(
            "/api/expenses",
            data={"amount": "42.00", "category": "bills", "date": _today()},
            files={
                "receipt": ("receipt.png", b"\0" * (test_settings.max_upload_size + 1), "image/png")
            },
            headers=headers,
        )
        assert response.status_code == 400
        assert _fields(response.json()) == {"receipt": "File size exceeds maximum of 5MB"}
        assert asset_store.uploads == []

    @pytest.mark.asyncio
    async def test_write_failure_after_upload_keeps_asset(
        self, app, client, register, asset_store, png_bytes, monkeypatch, caplog
    ):
        _, headers = await register()

        async def failing_create(*args, **kwargs):
            raise DatabaseError()

        monkeypatch.setattr(app.state.expense_service.ledger, "create", failing_create)
        with caplog.at_level(logging.ERROR, logger="expense_tracker"):
            response = await client.post(
                "/api/expenses",
                data={"amount": "42.00", "category": "bills", "date": _today()},
                files={"receipt": ("receipt.png", png_bytes, "image/png")},
                headers=headers,
            )

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert asset_store.uploads == ["expense-tracker/receipts/asset-1"]
        assert asset_store.deleted == []
        orphan_logs = [
            r for r in caplog.records
            if r.levelno == logging.ERROR and "expense-tracker/receipts/asset-1" in r.getMessage()
        ]
        assert len(orphan_logs) == 1

    @pytest.mark.asyncio
    async def test_transaction_released_before_upload(
        self, app, register, asset_store, db_session, png_bytes
    ):
        user, _ = await register()
        seen = []
        asset_store.on_upload = lambda: seen.append(db_session.in_transaction())

        await db_session.execute(text("SELECT 1"))
        assert db_session.in_transaction()
        created = await app.state.expense_service.create(
            db_session,
            uuid.UUID(user["id"]),
            {"amount": "42.00", "category": "bills", "date": _today()},
            ImageUpload(field="receipt", filename="receipt.png", content=png_bytes),
        )

        assert seen == [False]
        assert created.receipt_url.endswith("receipts/asset-1.png")


class TestListExpenses:
    @pytest.mark.asyncio
    async def test_pagination(self, client, register, create_expense):
        _, headers = await register()
        for i in range(55):
            await create_expense(headers, amount=f"{i + 1}.00", date=_days_ago(i % 10))

        first = await client.get("/api/expenses?page=1&limit=50", headers=headers)
        assert first.status_code == 200
        body = first.json()
        assert body["message"] == "Expenses retrieved successfully"
        assert len(body["data"]["expenses"]) == 50
        assert body["data"]["pagination"] == {
            "currentPage": 1,
            "totalPages": 2,
            "totalCount": 55,
            "limit": 50,
        }

        second = await client.get("/api/expenses?page=2&limit=50", headers=headers)
        assert len(second.json()["data"]["expenses"]) == 5
        assert second.json()["data"]["pagination"]["currentPage"] == 2

        ids = [e["id"] for e in body["data"]["expenses"]] + [
            e["id"] for e in second.json()["data"]["expenses"]
        ]
        assert len(set(ids)) == 55

    @pytest.mark.asyncio
    async def test_newest_date_first(self, client, register, create_expense):
        _, headers = await register()
        old = await create_expense(headers, date=_days_ago(5))
        new = await create_expense(headers, date=_today())
        middle = await create_expense(headers, date=_days_ago(2))

        response = await client.get("/api/expenses", headers=headers)
        ids = [e["id"] for e in response.json()["data"]["expenses"]]
        assert ids == [new["id"], middle["id"], old["id"]]

    @pytest.mark.asyncio
    async def test_empty_list(self, client, register):
        _, headers = await register()
        response = await client.get("/api/expenses", headers=headers)
        data = response.json()["data"]
        assert data["expenses"] == []
        assert data["pagination"] == {
            "currentPage": 1,
            "totalPages": 0,
            "totalCount": 0,
            "limit": 50,
        }

    @pytest.mark.asyncio
    async def test_limit_is_capped(self, client, register):
        _, headers = await register()
        response = await client.get("/api/expenses?limit=500", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["pagination"]["limit"] == 100

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "query", ["page=0", "limit=0", "page=abc", "page=100000000000000000000"]
    )
    async def test_bad_paging_params(self, client, register, query):
        _, headers = await register()
        response = await client.get(f"/api/expenses?{query}", headers=headers)
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_only_own_expenses_listed(self, client, register, create_expense):
        _, alice = await register("alice@example.com")
        _, bob = await register("bob@example.com")
        await create_expense(alice)
        await create_expense(bob)
        await create_expense(bob)

        response = await client.get("/api/expenses", headers=alice)
        assert response.json()["data"]["pagination"]["totalCount"] == 1


class TestOwnership:
    @pytest.mark.asyncio
    async def test_other_users_expense_is_not_found(self, client, register, create_expense):
        _, alice = await register("alice@example.com")
        _, bob = await register("bob@example.com")
        expense = await create_expense(alice, amount="30.00")
        url = f"/api/expenses/{expense['id']}"

        get = await client.get(url, headers=bob)
        put = await client.put(url, data={"amount": "1.00"}, headers=bob)
        delete = await client.delete(url, headers=bob)

        for response in (get, put, delete):
            assert response.status_code == 404
            assert response.json() == {"success": False, "message": "Expense not found"}

        still_there = await client.get(url, headers=alice)
        assert still_there.json()["data"]["amount"] == 30.0

    @pytest.mark.asyncio
    async def test_missing_expense_is_not_found(self, client, register):
        _, headers = await register()
        response = await client.get(f"/api/expenses/{uuid.uuid4()}", headers=headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Expense not found"

    @pytest.mark.asyncio
    async def test_malformed_id_is_bad_request(self, client, register):
        _, headers = await register()
        response = await client.get("/api/expenses/not-a-uuid", headers=headers)
        assert response.status_code == 400
        assert "expense_id" in _fields(response.json())


class TestUpdateExpense:
    @pytest.mark.asyncio
    async def test_partial_update(self, client, register, create_expense):
        _, headers = await register()
        expense = await create_expense(headers, amount="10.00", description="Coffee")

        response = await client.put(
            f"/api/expenses/{expense['id']}", data={"amount": "11.25"}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Expense updated successfully"
        data = response.json()["data"]
        assert data["amount"] == 11.25
        assert data["category"] == expense["category"]
        assert data["description"] == "Coffee"
        assert data["date"] == expense["date"]

    @pytest.mark.asyncio
    async def test_empty_description_clears_it(self, client, register, create_expense):
        _, headers = await register()
        expense = await create_expense(headers, description="Coffee")
        response = await client.put(
            f"/api/expenses/{expense['id']}", data={"description": ""}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["description"] is None

    @pytest.mark.asyncio
    async def test_nothing_to_update(self, client, register, create_expense):
        _, headers = await register()
        expense = await create_expense(headers)
        response = await client.put(f"/api/expenses/{expense['id']}", headers=headers)
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "No fields to update"}

    @pytest.mark.asyncio
    async def test_invalid_update_rejected(self, client, register, create_expense):
        _, headers = await register()
        expense = await create_expense(headers)
        response = await client.put(
            f"/api/expenses/{expense['id']}",
            data={"amount": "-5", "category": "invalid-cat"},
            headers=headers,
        )
        assert response.status_code == 400
        assert set(_fields(response.json())) == {"amount", "category"}

    @pytest.mark.asyncio
    async def test_replace_receipt_discards_old(self, client, register, asset_store, png_bytes, image_factory):
        _, headers = await register()
        created = await client.post(
            "/api/expenses",
            data={"amount": "8.00", "category": "health", "date": _today()},
            files={"receipt": ("r1.png", png_bytes, "image/png")},
            headers=headers,
        )
        expense_id = created.json()["data"]["id"]

        response = await client.put(
            f"/api/expenses/{expense_id}",
            files={"receipt": ("r2.jpg", image_factory((10, 200, 10)), "image/png")},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["receipt_url"].endswith("receipts/asset-2.png")
        assert asset_store.deleted == ["expense-tracker/receipts/asset-1"]


class TestDeleteExpense:
    @pytest.mark.asyncio
    async def test_delete(self, client, register, create_expense):
        _, headers = await register()
        expense = await create_expense(headers)
        response = await client.delete(f"/api/expenses/{expense['id']}", headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Expense deleted successfully"
        assert body["data"] == {"id": expense["id"]}

        gone = await client.get(f"/api/expenses/{expense['id']}", headers=headers)
        assert gone.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_removes_receipt(self, client, register, asset_store, png_bytes):
        _, headers = await register()
        created = await client.post(
            "/api/expenses",
            data={"amount": "8.00", "category": "other", "date": _today()},
            files={"receipt": ("r.png", png_bytes, "image/png")},
            headers=headers,
        )
        expense_id = created.json()["data"]["id"]
        response = await client.delete(f"/api/expenses/{expense_id}", headers=headers)
        assert response.status_code == 200
        assert asset_store.deleted == ["expense-tracker/receipts/asset-1"]

    @pytest.mark.asyncio
    async def test_receipt_deletion_failure_still_removes_row(self, client, register, asset_store, png_bytes):
        _, headers = await register()
        created = await client.post(
            "/api/expenses",
            data={"amount": "8.00", "category": "other", "date": _today()},
            files={"receipt": ("r.png", png_bytes, "image/png")},
            headers=headers,
        )
        expense_id = created.json()["data"]["id"]
        asset_store.fail_delete = True

        response = await client.delete(f"/api/expenses/{expense_id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"] == {"id": expense_id}

        gone = await client.get(f"/api/expenses/{expense_id}", headers=headers)
        assert gone.status_code == 404


class TestStatistics:
    @pytest.mark.asyncio
    async def test_empty_statistics(self, client, register):
        _, headers = await register()
        response = await client.get("/api/expenses/stats", headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Statistics retrieved successfully"
        assert body["data"] == {"total": {"count": 0, "amount": 0.0}, "byCategory": []}

    @pytest.mark.asyncio
    async def test_grouped_and_ordered(self, client, register, create_expense):
        _, headers = await register()
        await create_expense(headers, amount="10.00", category="food")
        await create_expense(headers, amount="15.50", category="food")
        await create_expense(headers, amount="40.00", category="bills")
        await create_expense(headers, amount="5.00", category="transport")
        await create_expense(headers, amount="5.00", category="health")

        response = await client.get("/api/expenses/stats", headers=headers)
        data = response.json()["data"]
        assert data["total"] == {"count": 5, "amount": 75.5}
        assert data["byCategory"] == [
            {"category": "bills", "count": 1, "total": 40.0},
            {"category": "food", "count": 2, "total": 25.5},
            {"category": "health", "count": 1, "total": 5.0},
            {"category": "transport", "count": 1, "total": 5.0},
        ]

    @pytest.mark.asyncio
    async def test_statistics_are_per_user(self, client, register, create_expense):
        _, alice = await register("alice@example.com")
        _, bob = await register("bob@example.com")
        await create_expense(alice, amount="100.00")

        response = await client.get("/api/expenses/stats", headers=bob)
        assert response.json()["data"]["total"] == {"count": 0, "amount": 0.0}

    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        response = await client.get("/api/expenses/stats")
        assert response.status_code == 401
