import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from services.common import ServiceSettings, create_engine, dispose_engines
from services.inventory_service.app.main import create_app
from services.inventory_service.app.models import Base

HEADERS = {"X-Owner-Id": "42"}
OTHER_OWNER = {"X-Owner-Id": "43"}


def _run(coro):
    return asyncio.run(coro)


async def _prepare_app(tmp_path, **overrides: Any) -> FastAPI:
    db_file = tmp_path / "inventory.db"
    database_url = f"sqlite+aiosqlite:///{db_file}"

    engine = create_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    settings = ServiceSettings(
        app_name="Inventory Service Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=database_url,
        **overrides,
    )
    return create_app(settings)


def _item_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": "Espresso Beans",
        "sku": "BEAN-1",
        "barcode": "0123456789",
        "category": "food",
        "quantity": {"current": 10},
        "stockLevels": {"maximum": 100, "reorderPoint": 5},
        "pricing": {"cost": "4.00", "sellingPrice": "10.00"},
        "suppliers": [{"name": "Roasters Co", "isPrimary": True, "contactInfo": {"email": "sales@roasters.test"}}],
        "locations": [{"warehouse": "Main", "zone": "A", "quantity": 10}],
    }
    payload.update(overrides)
    return payload


def test_create_and_get_item(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                create_resp = await client.post("/inventory", json=_item_payload(), headers=HEADERS)
                assert create_resp.status_code == 201
                created = create_resp.json()
                assert created["ownerId"] == 42
                assert created["quantity"] == {"current": 10, "reserved": 0, "available": 10}
                assert created["stockStatus"] == "in_stock"
                assert created["profitMargin"] == 60.0
                assert created["primarySupplier"]["name"] == "Roasters Co"
                assert created["locationTotal"] == 10
                item_id = created["id"]

                get_resp = await client.get(f"/inventory/{item_id}", headers=HEADERS)
                assert get_resp.status_code == 200
                assert get_resp.json()["sku"] == "BEAN-1"

                history = await client.get(f"/inventory/{item_id}/transactions", headers=HEADERS)
                assert history.status_code == 200
                entries = history.json()["transactions"]
                assert len(entries) == 1
                assert entries[0]["type"] == "stock_in"
                assert entries[0]["reason"] == "Initial stock entry"
                assert entries[0]["afterQuantity"] == 10
                assert entries[0]["itemSku"] == "BEAN-1"

                barcode = await client.get("/inventory/barcode/0123456789", headers=HEADERS)
                assert barcode.status_code == 200
                assert barcode.json()["id"] == item_id

    _run(body())
    _run(dispose_engines())


def test_owner_header_is_required_and_scopes_data(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                anonymous = await client.get("/inventory")
                assert anonymous.status_code == 401
                garbage = await client.get("/inventory", headers={"X-Owner-Id": "abc"})
                assert garbage.status_code == 401

                created = await client.post("/inventory", json=_item_payload(), headers=HEADERS)
                item_id = created.json()["id"]

                foreign = await client.get(f"/inventory/{item_id}", headers=OTHER_OWNER)
                assert foreign.status_code == 404
                foreign_list = await client.get("/inventory", headers=OTHER_OWNER)
                assert foreign_list.json()["total"] == 0

    _run(body())
    _run(dispose_engines())


def test_list_filters_and_conflict(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                await client.post("/inventory", json=_item_payload(), headers=HEADERS)
                await client.post(
                    "/inventory",
                    json=_item_payload(name="Paper Cups", sku="CUP-1", category="supplies", quantity={"current": 2}),
                    headers=HEADERS,
                )

                conflict = await client.post("/inventory", json=_item_payload(sku="bean-1"), headers=HEADERS)
                assert conflict.status_code == 409
                assert "BEAN-1" in conflict.json()["detail"]

                everything = await client.get("/inventory", headers=HEADERS)
                assert everything.status_code == 200
                listed = everything.json()
                assert listed["total"] == 2
                assert [item["sku"] for item in listed["items"]] == ["BEAN-1", "CUP-1"]

                low = await client.get("/inventory", params={"stockStatus": "low_stock"}, headers=HEADERS)
                assert [item["sku"] for item in low.json()["items"]] == ["CUP-1"]

                search = await client.get("/inventory", params={"search": "cup"}, headers=HEADERS)
                assert search.json()["total"] == 1

                paged = await client.get(
                    "/inventory",
                    params={"limit": 1, "page": 2, "sortBy": "name", "sortOrder": "desc"},
                    headers=HEADERS,
                )
                second_page = paged.json()
                assert second_page["pages"] == 2
                assert [item["sku"] for item in second_page["items"]] == ["BEAN-1"]

                categories = await client.get("/inventory/categories", headers=HEADERS)
                assert categories.json() == ["food", "supplies"]

    _run(body())
    _run(dispose_engines())


def test_adjust_transfer_and_reservations(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                created = await client.post("/inventory", json=_item_payload(), headers=HEADERS)
                item_id = created.json()["id"]

                zero = await client.post(
                    f"/inventory/{item_id}/adjust",
                    json={"adjustment": 0, "reason": "noop"},
                    headers=HEADERS,
                )
                assert zero.status_code == 400

                adjust = await client.post(
                    f"/inventory/{item_id}/adjust",
                    json={"adjustment": 6, "reason": "Delivery", "referenceType": "purchase", "referenceId": "PO-9"},
                    headers=HEADERS,
                )
                assert adjust.status_code == 200
                result = adjust.json()
                assert result["item"]["quantity"]["current"] == 16
                assert result["transaction"]["type"] == "stock_in"
                assert result["transaction"]["beforeQuantity"] == 10
                assert result["transaction"]["referenceId"] == "PO-9"
                assert result["transaction"]["performedBy"] == 42

                transfer = await client.post(
                    f"/inventory/{item_id}/transfer",
                    json={
                        "fromLocation": {"warehouse": "Main", "zone": "A"},
                        "toLocation": {"warehouse": "Annex", "zone": "C", "bin": "7"},
                        "quantity": 4,
                        "reason": "Rebalance",
                    },
                    headers=HEADERS,
                )
                assert transfer.status_code == 200
                moved = transfer.json()
                assert moved["item"]["quantity"]["current"] == 16
                assert moved["item"]["locationTotal"] == 10
                assert {loc["warehouse"]: loc["quantity"] for loc in moved["item"]["locations"]} == {
                    "Main": 6,
                    "Annex": 4,
                }
                assert moved["transaction"]["locationTo"]["bin"] == "7"

                short = await client.post(
                    f"/inventory/{item_id}/transfer",
                    json={
                        "fromLocation": {"warehouse": "Main", "zone": "A"},
                        "toLocation": {"warehouse": "Annex", "zone": "C"},
                        "quantity": 50,
                        "reason": "Too much",
                    },
                    headers=HEADERS,
                )
                assert short.status_code == 409

                reserve = await client.post(f"/inventory/{item_id}/reserve", json={"quantity": 10}, headers=HEADERS)
                assert reserve.status_code == 200
                assert reserve.json()["quantity"] == {"current": 16, "reserved": 10, "available": 6}

                over_reserve = await client.post(f"/inventory/{item_id}/reserve", json={"quantity": 7}, headers=HEADERS)
                assert over_reserve.status_code == 409

                release = await client.post(f"/inventory/{item_id}/release", json={"quantity": 25}, headers=HEADERS)
                assert release.status_code == 200
                assert release.json()["quantity"]["reserved"] == 0

                missing = await client.post("/inventory/999/adjust", json={"adjustment": 1, "reason": "x"}, headers=HEADERS)
                assert missing.status_code == 404

    _run(body())
    _run(dispose_engines())


def test_reverse_transaction_once(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                created = await client.post("/inventory", json=_item_payload(), headers=HEADERS)
                item_id = created.json()["id"]
                sale = await client.post(
                    f"/inventory/{item_id}/adjust",
                    json={"adjustment": -3, "reason": "Sale"},
                    headers=HEADERS,
                )
                transaction_id = sale.json()["transaction"]["id"]

                reverse = await client.post(
                    f"/inventory/transactions/{transaction_id}/reverse",
                    json={"reason": "Customer returned it"},
                    headers=HEADERS,
                )
                assert reverse.status_code == 201
                reversal = reverse.json()["transaction"]
                assert reversal["type"] == "stock_in"
                assert reversal["reason"] == "Reversal: Customer returned it"
                assert reversal["referenceType"] == "correction"
                assert reversal["reversedTransactionId"] == transaction_id
                assert reverse.json()["item"]["quantity"]["current"] == 10

                again = await client.post(
                    f"/inventory/transactions/{transaction_id}/reverse",
                    json={"reason": "Twice"},
                    headers=HEADERS,
                )
                assert again.status_code == 400

                unknown = await client.post(
                    "/inventory/transactions/9999/reverse",
                    json={"reason": "Ghost"},
                    headers=HEADERS,
                )
                assert unknown.status_code == 404

                corrections = await client.get(
                    "/inventory/transactions",
                    params={"itemId": item_id, "type": "stock_in"},
                    headers=HEADERS,
                )
                assert corrections.json()["total"] == 2

    _run(body())
    _run(dispose_engines())


def test_analytics_summary(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                created = await client.post(
                    "/inventory",
                    json=_item_payload(quantity={"current": 50}, locations=[]),
                    headers=HEADERS,
                )
                item_id = created.json()["id"]
                for amount in (-20, -10):
                    await client.post(
                        f"/inventory/{item_id}/adjust",
                        json={"adjustment": amount, "reason": "Sale"},
                        headers=HEADERS,
                    )

                resp = await client.get("/inventory/analytics/summary", headers=HEADERS)
                assert resp.status_code == 200
                analytics = resp.json()
                summary = analytics["summary"]
                assert summary["totalItems"] == 1
                assert summary["activeItems"] == 1
                assert summary["stockTurnoverRate"] == 1.0
                assert summary["turnoverBasis"] == "reference_period"
                assert summary["inventoryValue"]["totalQuantity"] == 20
                assert float(summary["inventoryValue"]["totalValue"]) == 80.0
                assert float(summary["inventoryValue"]["totalRetailValue"]) == 200.0
                assert analytics["transactions"]["total"] == 3
                by_type = {entry["type"]: entry for entry in analytics["transactions"]["byType"]}
                assert by_type["stock_out"]["totalQuantity"] == 30
                top = analytics["topMovingItems"][0]
                assert top["itemId"] == item_id
                assert (top["stockIn"], top["stockOut"], top["totalMovement"]) == (50, 30, 80)
                assert analytics["categoryBreakdown"][0]["category"] == "food"

                bad_window = await client.get(
                    "/inventory/analytics/summary",
                    params={"startDate": "2026-02-01T00:00:00Z", "endDate": "2026-01-01T00:00:00Z"},
                    headers=HEADERS,
                )
                assert bad_window.status_code == 400

    _run(body())
    _run(dispose_engines())


def test_alert_routes_and_email(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                missing_contact = await client.get("/inventory/contact", headers=HEADERS)
                assert missing_contact.status_code == 404
                contact = await client.put(
                    "/inventory/contact",
                    json={"email": "owner@example.com", "name": "Owner"},
                    headers=HEADERS,
                )
                assert contact.status_code == 200
                assert contact.json()["notificationsEnabled"] is True

                created = await client.post("/inventory", json=_item_payload(locations=[]), headers=HEADERS)
                item_id = created.json()["id"]
                await client.post(
                    "/inventory",
                    json=_item_payload(sku="CUP-1", barcode=None, quantity={"current": 0}, locations=[]),
                    headers=HEADERS,
                )

                await client.post(
                    f"/inventory/{item_id}/adjust",
                    json={"adjustment": -7, "reason": "Busy morning"},
                    headers=HEADERS,
                )

                alerts = await client.get(f"/inventory/{item_id}/alerts", headers=HEADERS)
                assert alerts.status_code == 200
                assert alerts.json()["alerts"] == [
                    {
                        "type": "low_stock",
                        "message": "Espresso Beans (BEAN-1) is running low. Current: 3, Reorder Point: 5",
                    }
                ]

                low = await client.get("/inventory/alerts/low-stock", headers=HEADERS)
                assert low.json()["count"] == 2
                empty = await client.get("/inventory/alerts/out-of-stock", headers=HEADERS)
                assert [item["sku"] for item in empty.json()["items"]] == ["CUP-1"]

            await app.state.alert_notifier.drain()
            sent = list(app.state.email_provider.sent)

            assert len(sent) == 1
            assert sent[0].recipient == "owner@example.com"
            assert sent[0].subject == "VBMS Inventory Alert - 1 item(s) need attention"

    _run(body())
    _run(dispose_engines())


def test_bulk_import_json_and_csv(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                rows = [
                    {"name": "Beans", "sku": "BEAN-1", "quantity": 10},
                    {"name": "Cups", "sku": "CUP-1", "quantity": 40},
                    {"name": "Beans duplicate", "sku": "BEAN-1"},
                ]
                imported = await client.post("/inventory/import", json={"rows": rows}, headers=HEADERS)
                assert imported.status_code == 200
                report = imported.json()
                assert report["total"] == 3
                assert len(report["success"]) == 2
                assert report["errors"] == [{"row": 3, "error": "Item with SKU BEAN-1 already exists"}]

                csv_text = "Name,SKU,Category,Quantity,Reorder Point,Cost,Selling Price\nLids,LID-1,supplies,80,20,0.02,0.05\n"
                uploaded = await client.post(
                    "/inventory/import/csv",
                    files={"csvFile": ("items.csv", csv_text.encode(), "text/csv")},
                    headers=HEADERS,
                )
                assert uploaded.status_code == 200
                assert uploaded.json()["success"] == [{"row": 1, "item": "Lids", "sku": "LID-1"}]

                empty = await client.post(
                    "/inventory/import/csv",
                    files={"csvFile": ("empty.csv", b"Name,SKU\n", "text/csv")},
                    headers=HEADERS,
                )
                assert empty.status_code == 400

                listed = await client.get("/inventory", params={"status": "all"}, headers=HEADERS)
                assert listed.json()["total"] == 3

    _run(body())
    _run(dispose_engines())


def test_update_and_delete(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                stocked = await client.post("/inventory", json=_item_payload(), headers=HEADERS)
                stocked_id = stocked.json()["id"]
                fresh = await client.post(
                    "/inventory",
                    json=_item_payload(sku="NEW-1", barcode=None, quantity={"current": 0}, locations=[]),
                    headers=HEADERS,
                )
                fresh_id = fresh.json()["id"]

                update = await client.patch(
                    f"/inventory/{stocked_id}",
                    json={"name": "House Blend", "quantity": {"current": 12}, "alerts": {"overstock": True}},
                    headers=HEADERS,
                )
                assert update.status_code == 200
                updated = update.json()
                assert updated["name"] == "House Blend"
                assert updated["quantity"]["current"] == 12
                assert updated["alerts"]["overstock"] is True
                assert updated["version"] > stocked.json()["version"]

                history = await client.get(f"/inventory/{stocked_id}/transactions", headers=HEADERS)
                assert history.json()["transactions"][0]["reason"] == "Manual adjustment via update"

                taken = await client.patch(f"/inventory/{fresh_id}", json={"sku": "BEAN-1"}, headers=HEADERS)
                assert taken.status_code == 409

                soft = await client.delete(f"/inventory/{stocked_id}", headers=HEADERS)
                assert soft.status_code == 200
                assert soft.json() == {
                    "deleted": False,
                    "status": "inactive",
                    "message": "Item marked as inactive due to existing transactions",
                }
                still_there = await client.get(f"/inventory/{stocked_id}", headers=HEADERS)
                assert still_there.json()["status"] == "inactive"

                hard = await client.delete(f"/inventory/{fresh_id}", headers=HEADERS)
                assert hard.json()["deleted"] is True
                gone = await client.get(f"/inventory/{fresh_id}", headers=HEADERS)
                assert gone.status_code == 404

    _run(body())
    _run(dispose_engines())


def test_csv_import_duplicate_of_existing_item_in_second_row(tmp_path) -> None:
    app = _run(_prepare_app(tmp_path))

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                existing = await client.post("/inventory", json=_item_payload(), headers=HEADERS)
                assert existing.status_code == 201

                csv_text = "Name,SKU,Quantity\nCups,CUP-1,40\nBeans again,BEAN-1,3\nLids,LID-1,80\n"
                uploaded = await client.post(
                    "/inventory/import/csv",
                    files={"csvFile": ("items.csv", csv_text.encode(), "text/csv")},
                    headers=HEADERS,
                )
                assert uploaded.status_code == 200
                report = uploaded.json()
                assert report["total"] == 3
                assert [entry["sku"] for entry in report["success"]] == ["CUP-1", "LID-1"]
                assert report["errors"] == [{"row": 2, "error": "Item with SKU BEAN-1 already exists"}]

                beans = await client.get(f"/inventory/{existing.json()['id']}", headers=HEADERS)
                assert beans.json()["quantity"]["current"] == 10

                huge = await client.post(
                    "/inventory",
                    json=_item_payload(sku="HUGE-1", barcode=None, quantity={"current": 10**30}, locations=[]),
                    headers=HEADERS,
                )
                assert huge.status_code == 422

    _run(body())
    _run(dispose_engines())


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield
