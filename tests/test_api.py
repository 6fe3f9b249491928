"""HTTP surface tests over an ASGI transport."""

import json

import pytest

PEOPLE = {
    "name": "people",
    "display_name": "People",
    "fields": [
        {"name": "name", "labels": ["姓名"], "type_hint": "text", "allow_null": False},
        {"name": "age", "labels": ["年龄"], "type_hint": "integer"},
    ],
}


async def create_people(client):
    response = await client.post("/api/v1/tables", json=PEOPLE)
    assert response.status_code == 201
    return response


class TestSystem:
    @pytest.mark.asyncio
    async def test_ping(self, client):
        response = await client.get("/api/ping")
        assert response.status_code == 200
        assert response.json() == {"ping": "pong"}

    @pytest.mark.asyncio
    async def test_health(self, client):
        await create_people(client)
        response = await client.get("/api/v1/health")
        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["tables"] == 1

    @pytest.mark.asyncio
    async def test_consistency(self, client):
        await create_people(client)
        response = await client.get("/api/v1/catalog/consistency")
        assert response.json()["data"] == {"stale_columns": {}, "orphan_tables": [], "consistent": True}


class TestTableRoutes:
    @pytest.mark.asyncio
    async def test_schema_lifecycle(self, client):
        created = (await create_people(client)).json()["data"]
        assert [field["name"] for field in created["fields"]] == ["name", "age"]

        duplicate = await client.post("/api/v1/tables", json=PEOPLE)
        assert duplicate.status_code == 409
        assert duplicate.json()["detail"]["code"] == "table_exists"

        added = await client.post(
            "/api/v1/tables/people/columns", json={"fields": [{"name": "city", "type_hint": "text"}]}
        )
        assert added.status_code == 201

        dropped = await client.delete("/api/v1/tables/people/columns", params={"name": ["age"]})
        assert dropped.json()["data"] == ["age"]

        renamed = await client.put("/api/v1/tables/people/columns/name", json={"old_name": "city", "new_name": "town"})
        assert renamed.status_code == 200

        listed = (await client.get("/api/v1/tables")).json()
        assert listed["count"] == 1
        assert [field["name"] for field in listed["data"][0]["fields"]] == ["name", "town"]

        moved = await client.put("/api/v1/tables/people/name", json={"new_name": "folks"})
        assert moved.status_code == 200
        assert (await client.get("/api/v1/tables/folks")).status_code == 200

        assert (await client.delete("/api/v1/tables/folks")).status_code == 200
        assert (await client.get("/api/v1/tables/folks")).status_code == 404

    @pytest.mark.asyncio
    async def test_update_schema(self, client):
        await create_people(client)
        incoming = {
            "name": "people",
            "fields": [
                {"name": "full_name", "old_name": "name", "allow_null": False},
                {"name": "age", "type_hint": "text"},
            ],
        }
        response = await client.put("/api/v1/tables/people", json=incoming)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "type_change_forbidden"

        incoming["fields"][1]["type_hint"] = "integer"
        response = await client.put("/api/v1/tables/people", json=incoming)
        assert response.status_code == 200
        assert [field["name"] for field in response.json()["data"]["fields"]] == ["full_name", "age"]

    @pytest.mark.asyncio
    async def test_invalid_schema(self, client):
        response = await client.post("/api/v1/tables", json={"name": "bad name", "fields": []})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_identifier"


class TestRowRoutes:
    @pytest.mark.asyncio
    async def test_row_lifecycle(self, client):
        await create_people(client)
        base = "/api/v1/tables/people/rows"

        ids = []
        for name, age in [("alice", 30), ("bob", 25), ("alicia", 41)]:
            response = await client.post(base, json={"name": name, "age": age})
            assert response.status_code == 201
            ids.append(response.json()["data"]["id"])

        page = (await client.get(base, params={"filter.name": "ali", "sort_by": "age", "desc": "true"})).json()["data"]
        assert page["total"] == 2
        assert [row["name"] for row in page["items"]] == ["alicia", "alice"]

        page = (await client.get(base, params={"page": 2, "size": 2})).json()["data"]
        assert (page["total"], page["page"], page["page_size"], len(page["items"])) == (3, 2, 2, 1)

        updated = await client.put(f"{base}/{ids[1]}", json={"age": "26"})
        assert updated.json()["data"]["updated"] is True

        assert (await client.delete(f"{base}/{ids[0]}")).json()["count"] == 1
        assert (await client.post(f"{base}/batch-delete", json={"ids": [ids[1]]})).json()["count"] == 1
        assert (await client.delete(base)).json()["count"] == 1

    @pytest.mark.asyncio
    async def test_row_errors(self, client):
        await create_people(client)

        missing = await client.post("/api/v1/tables/people/rows", json={"age": 3})
        assert missing.status_code == 400
        assert missing.json()["detail"] == {
            "code": "missing_required_field",
            "message": "field name is required",
            "table": "people",
            "column": "name",
        }

        invalid = await client.post("/api/v1/tables/people/rows", json={"name": "x", "age": "old"})
        assert invalid.json()["detail"]["code"] == "invalid_value"

        unknown = await client.get("/api/v1/tables/ghost/rows")
        assert unknown.status_code == 404

    @pytest.mark.asyncio
    async def test_summary(self, client):
        await create_people(client)
        response = await client.get("/api/v1/tables/people/summary", params={"column": "age"})
        assert response.json()["data"] == {"count": 0}

        for age in (1, 2, 3, 4):
            await client.post("/api/v1/tables/people/rows", json={"name": "n", "age": age})
        data = (await client.get("/api/v1/tables/people/summary", params={"column": "age"})).json()["data"]
        assert data["count"] == 4
        assert data["average"] == 2.5

        not_numeric = await client.get("/api/v1/tables/people/summary", params={"column": "name"})
        assert not_numeric.status_code == 400
        assert not_numeric.json()["detail"]["code"] == "unsupported_column_type"


class TestTransferRoutes:
    @pytest.mark.asyncio
    async def test_import_then_export_csv(self, client):
        await create_people(client)
        upload = "Who,年龄,notes\nAnn,31,x\nBob,40,y\n".encode("utf-8")

        rejected = await client.post(
            "/api/v1/tables/people/import",
            files={"file": ("people.csv", upload, "text/csv")},
            data={"aliases": json.dumps({"Who": "name"})},
        )
        assert rejected.status_code == 400
        assert rejected.json()["detail"]["columns"] == ["notes"]

        accepted = await client.post(
            "/api/v1/tables/people/import",
            files={"file": ("people.csv", upload, "text/csv")},
            data={"aliases": json.dumps({"Who": "name"}), "allow_unknown": "true"},
        )
        assert accepted.status_code == 200
        assert accepted.json()["data"] == {"inserted": 2}

        exported = await client.get("/api/v1/tables/people/export", params={"format": "csv", "all": "true", "sort_by": "age"})
        assert exported.status_code == 200
        assert exported.headers["content-type"].startswith("text/csv")
        assert "People.csv" in exported.headers["content-disposition"]
        assert exported.content.decode("utf-8-sig").splitlines() == ["姓名,年龄", "Ann,31", "Bob,40"]

    @pytest.mark.asyncio
    async def test_import_partial_failure(self, client):
        await create_people(client)
        response = await client.post(
            "/api/v1/tables/people/import",
            files={"file": ("people.csv", b"name,age\nAnn,1\nBob,old\n", "text/csv")},
        )
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert (detail["inserted"], detail["row_number"]) == (1, 2)

    @pytest.mark.asyncio
    async def test_import_rejects_other_files(self, client):
        await create_people(client)
        response = await client.post(
            "/api/v1/tables/people/import", files={"file": ("people.txt", b"name\nAnn\n", "text/plain")}
        )
        assert response.status_code == 400

        response = await client.post(
            "/api/v1/tables/people/import",
            files={"file": ("people.csv", b"name\nAnn\n", "text/csv")},
            data={"aliases": "not json"},
        )
        assert response.status_code == 400
