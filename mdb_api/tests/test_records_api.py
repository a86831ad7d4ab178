"""Tests for mdb_api/mdb_api/routers/records.py"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest


class TestRecordRoutes:
    @pytest.mark.asyncio
    async def test_insert(self, client) -> None:
        with patch("mdb_api.routers.records.RecordService") as MockService:
            instance = MockService.return_value
            instance.insert_record = AsyncMock(return_value={"_id": 1, "qty": 2})
            resp = await client.post("/api/v1/records/_1_prod_orders", json={"qty": 2})

        assert resp.json() == {"_id": 1, "qty": 2}
        instance.insert_record.assert_awaited_once_with("_1_prod_orders", {"qty": 2})

    @pytest.mark.asyncio
    async def test_list_separates_filters_from_paging(self, client) -> None:
        with patch("mdb_api.routers.records.RecordService") as MockService:
            instance = MockService.return_value
            instance.list_records = AsyncMock(return_value=[])
            resp = await client.get("/api/v1/records/_1_prod_orders", params={"qty": "2", "limit": "5", "offset": "10"})

        assert resp.status_code == 200
        instance.list_records.assert_awaited_once_with("_1_prod_orders", {"qty": "2"}, limit=5, offset=10)

    @pytest.mark.asyncio
    async def test_limit_out_of_range(self, client) -> None:
        resp = await client.get("/api/v1/records/_1_prod_orders", params={"limit": "0"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client) -> None:
        with patch("mdb_api.routers.records.RecordService") as MockService:
            instance = MockService.return_value
            instance.update_record = AsyncMock(return_value={"_id": 3, "qty": 9})
            instance.delete_record = AsyncMock(return_value=None)

            updated = await client.patch("/api/v1/records/_1_prod_orders/3", json={"qty": 9})
            deleted = await client.delete("/api/v1/records/_1_prod_orders/3")

        assert updated.json() == {"_id": 3, "qty": 9}
        instance.update_record.assert_awaited_once_with("_1_prod_orders", 3, {"qty": 9})
        assert deleted.json() == {"table_id": "_1_prod_orders", "_id": 3, "deleted": True}
