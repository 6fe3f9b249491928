"""Tests for creating and evolving managed tables."""

import pytest

from sheetbase.core.db.introspection import physical_columns, table_exists
from sheetbase.core.exceptions import (
    ColumnNotFoundError,
    DuplicateFieldError,
    EmptyFieldNameError,
    EmptyFieldSetError,
    EmptyNameError,
    InvalidIdentifierError,
    SchemaValidationError,
    TableExistsError,
    TableNotFoundError,
    TypeChangeForbiddenError,
    UnsupportedTypeError,
)
from sheetbase.schemas.table import ColumnDefinition, QueryOptions, TableSchema


async def column_types(store, table):
    async with store.engine.connect() as conn:
        return {column.name: column.declared_type for column in await physical_columns(conn, table)}


class TestCreateTable:
    @pytest.mark.asyncio
    async def test_physical_layout(self, people):
        async with people.engine.connect() as conn:
            columns = await physical_columns(conn, "people", include_housekeeping=True)

        assert [column.name for column in columns] == [
            "id",
            "name",
            "age",
            "score",
            "active",
            "created_at",
            "updated_at",
        ]
        types = {column.name: column.declared_type for column in columns}
        assert types["age"] == "INTEGER"
        assert types["score"] == "REAL"
        assert types["active"] == "INTEGER"
        assert next(column for column in columns if column.name == "name").not_null

    @pytest.mark.asyncio
    async def test_existing_table_is_rejected(self, people, people_schema):
        with pytest.raises(TableExistsError):
            await people.create_schema(people_schema)
        with pytest.raises(TableExistsError):
            await people.create_schema(people_schema.model_copy(update={"name": "PEOPLE"}))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "schema, error",
        [
            (TableSchema(name="", fields=[ColumnDefinition(name="a", type_hint="text")]), EmptyNameError),
            (TableSchema(name="t", fields=[]), EmptyFieldSetError),
            (TableSchema(name="t", fields=[ColumnDefinition(name=" ", type_hint="text")]), EmptyFieldNameError),
            (
                TableSchema(
                    name="t",
                    fields=[ColumnDefinition(name="a", type_hint="text"), ColumnDefinition(name="A", type_hint="int")],
                ),
                DuplicateFieldError,
            ),
            (TableSchema(name="t", fields=[ColumnDefinition(name="a", type_hint="blob")]), UnsupportedTypeError),
            (TableSchema(name="t;drop", fields=[ColumnDefinition(name="a", type_hint="text")]), InvalidIdentifierError),
            (TableSchema(name="t", fields=[ColumnDefinition(name="id", type_hint="text")]), InvalidIdentifierError),
        ],
    )
    async def test_invalid_schema_touches_nothing(self, store, schema, error):
        with pytest.raises(error):
            await store.create_schema(schema)

        assert await store.list_schemas() == []
        async with store.engine.connect() as conn:
            assert not await table_exists(conn, "t")

    @pytest.mark.asyncio
    async def test_defaults_apply(self, store):
        await store.create_schema(
            TableSchema(
                name="tasks",
                fields=[
                    ColumnDefinition(name="title", type_hint="text"),
                    ColumnDefinition(name="status", type_hint="text", default="open"),
                    ColumnDefinition(name="done", type_hint="boolean", default="false"),
                ],
            )
        )
        await store.insert_row("tasks", {"title": "write docs"})

        row = (await store.query("tasks")).items[0]
        assert row["status"] == "open"
        assert row["done"] is False


class TestAddColumns:
    @pytest.mark.asyncio
    async def test_appends_in_order(self, people):
        await people.add_columns("people", [ColumnDefinition(name="email", labels=["Email"], type_hint="text")])

        schema = await people.get_schema("people")
        assert schema.field_names()[-1] == "email"
        assert "email" in await column_types(people, "people")

    @pytest.mark.asyncio
    async def test_duplicate_of_existing(self, people):
        with pytest.raises(DuplicateFieldError):
            await people.add_columns("people", [ColumnDefinition(name="Age", type_hint="integer")])

    @pytest.mark.asyncio
    async def test_required_column_needs_default(self, people):
        await people.insert_row("people", {"name": "Ann"})
        with pytest.raises(SchemaValidationError):
            await people.add_columns("people", [ColumnDefinition(name="level", type_hint="integer", allow_null=False)])

        await people.add_columns(
            "people", [ColumnDefinition(name="level", type_hint="integer", allow_null=False, default="1")]
        )
        assert (await people.query("people")).items[0]["level"] == 1

    @pytest.mark.asyncio
    async def test_unknown_table(self, store):
        with pytest.raises(TableNotFoundError):
            await store.add_columns("ghost", [ColumnDefinition(name="a", type_hint="text")])


class TestDropColumns:
    @pytest.mark.asyncio
    async def test_rebuild_preserves_data_and_types(self, people):
        first = await people.insert_row("people", {"name": "Ann", "age": 31, "score": 9.5, "active": True})
        second = await people.insert_row("people", {"name": "Bob", "age": 40, "score": 7.25})

        dropped = await people.drop_columns("people", ["AGE"])

        assert dropped == ["age"]
        assert (await people.get_schema("people")).field_names() == ["name", "score", "active"]
        types = await column_types(people, "people")
        assert types == {"name": "TEXT", "score": "REAL", "active": "INTEGER"}

        page = await people.query("people", QueryOptions(sort_by="name"))
        assert [row["id"] for row in page.items] == [first, second]
        assert page.items[0] == {"id": first, "name": "Ann", "score": 9.5, "active": True}
        assert page.items[1]["score"] == 7.25
        assert page.items[1]["active"] is None

        # Ids keep counting after the rebuild.
        assert await people.insert_row("people", {"name": "Cy"}) > second

    @pytest.mark.asyncio
    async def test_not_null_survives_rebuild(self, people):
        await people.drop_columns("people", ["score"])
        async with people.engine.connect() as conn:
            columns = {column.name: column for column in await physical_columns(conn, "people")}
        assert columns["name"].not_null

    @pytest.mark.asyncio
    async def test_cannot_drop_every_column(self, people):
        with pytest.raises(EmptyFieldSetError):
            await people.drop_columns("people", ["name", "age", "score", "active"])
        assert len(await column_types(people, "people")) == 4

    @pytest.mark.asyncio
    async def test_nothing_requested(self, people):
        assert await people.drop_columns("people", [" ", ""]) == []


class TestUpdateTable:
    @pytest.mark.asyncio
    async def test_same_schema_is_a_no_op(self, people):
        schema = await people.get_schema("people")
        await people.update_schema("people", schema)
        await people.update_schema("people", schema)

        assert await people.get_schema("people") == schema
        assert list(await column_types(people, "people")) == ["name", "age", "score", "active"]

    @pytest.mark.asyncio
    async def test_rename_add_drop_and_relabel(self, people):
        row_id = await people.insert_row("people", {"name": "Ann", "age": 31, "score": 1.5})
        incoming = TableSchema(
            name="people",
            display_name="Contacts",
            fields=[
                ColumnDefinition(name="full_name", old_name="name", labels=["Name"], allow_null=False),
                ColumnDefinition(name="age", labels=["Age"]),
                ColumnDefinition(name="city", type_hint="text"),
            ],
        )

        updated = await people.update_schema("people", incoming)

        assert updated.field_names() == ["full_name", "age", "city"]
        schema = await people.get_schema("people")
        assert schema.display_name == "Contacts"
        assert schema.fields[0].type_hint == "text"
        assert schema.fields[1].labels == ["Age"]
        assert await column_types(people, "people") == {"full_name": "TEXT", "age": "INTEGER", "city": "TEXT"}
        row = (await people.query("people")).items[0]
        assert row == {"id": row_id, "full_name": "Ann", "age": 31, "city": None}

    @pytest.mark.asyncio
    async def test_swap_column_names(self, store):
        await store.create_schema(
            TableSchema(
                name="pairs",
                fields=[ColumnDefinition(name="a", type_hint="text"), ColumnDefinition(name="b", type_hint="text")],
            )
        )
        await store.insert_row("pairs", {"a": "left", "b": "right"})

        await store.update_schema(
            "pairs",
            TableSchema(
                name="pairs",
                fields=[ColumnDefinition(name="b", old_name="a"), ColumnDefinition(name="a", old_name="b")],
            ),
        )

        row = (await store.query("pairs")).items[0]
        assert row["b"] == "left"
        assert row["a"] == "right"

    @pytest.mark.asyncio
    async def test_type_change_is_forbidden(self, people):
        schema = await people.get_schema("people")
        fields = [field.model_copy(update={"type_hint": "text"}) if field.name == "age" else field for field in schema.fields]

        with pytest.raises(TypeChangeForbiddenError):
            await people.update_schema("people", schema.model_copy(update={"fields": fields}))
        assert (await people.get_schema("people")).fields[1].type_hint == "integer"

    @pytest.mark.asyncio
    async def test_type_hint_case_is_not_a_change(self, people):
        schema = await people.get_schema("people")
        fields = [field.model_copy(update={"type_hint": "INTEGER"}) if field.name == "age" else field for field in schema.fields]
        await people.update_schema("people", schema.model_copy(update={"fields": fields}))
        assert (await people.get_schema("people")).fields[1].type_hint == "integer"

    @pytest.mark.asyncio
    async def test_rename_table(self, people):
        await people.insert_row("people", {"name": "Ann"})
        schema = await people.get_schema("people")

        await people.update_schema("people", schema.model_copy(update={"name": "contacts"}))

        assert [s.name for s in await people.list_schemas()] == ["contacts"]
        assert (await people.query("contacts")).total == 1
        async with people.engine.connect() as conn:
            assert not await table_exists(conn, "people")

    @pytest.mark.asyncio
    async def test_new_field_needs_type(self, people):
        schema = await people.get_schema("people")
        fields = [*schema.fields, ColumnDefinition(name="notes")]
        with pytest.raises(UnsupportedTypeError):
            await people.update_schema("people", schema.model_copy(update={"fields": fields}))

    @pytest.mark.asyncio
    async def test_all_fields_removed(self, people):
        schema = await people.get_schema("people")
        with pytest.raises(EmptyFieldSetError):
            await people.update_schema("people", schema.model_copy(update={"fields": []}))


class TestRenamesAndDrop:
    @pytest.mark.asyncio
    async def test_rename_table(self, people, store):
        await store.create_schema(TableSchema(name="other", fields=[ColumnDefinition(name="x", type_hint="text")]))
        with pytest.raises(TableExistsError):
            await people.rename_table("people", "other")

        await people.rename_table("people", "friends")
        assert (await people.get_schema("friends")).field_names() == ["name", "age", "score", "active"]
        with pytest.raises(TableNotFoundError):
            await people.get_schema("people")

    @pytest.mark.asyncio
    async def test_rename_table_case_only(self, people):
        await people.insert_row("people", {"name": "Ann"})

        await people.rename_table("people", "People")

        assert [schema.name for schema in await people.list_schemas()] == ["People"]
        assert (await people.query("People")).total == 1

        schema = await people.get_schema("People")
        await people.update_schema("People", schema.model_copy(update={"name": "PEOPLE"}))
        assert (await people.query("PEOPLE")).total == 1

    @pytest.mark.asyncio
    async def test_rename_column(self, people):
        await people.insert_row("people", {"name": "Ann", "age": 5})

        await people.rename_column("people", "age", "years")

        assert (await people.get_schema("people")).field_names() == ["name", "years", "score", "active"]
        assert (await people.query("people")).items[0]["years"] == 5
        with pytest.raises(DuplicateFieldError):
            await people.rename_column("people", "years", "Name")
        with pytest.raises(ColumnNotFoundError):
            await people.rename_column("people", "ghost", "spirit")

    @pytest.mark.asyncio
    async def test_drop_table(self, people):
        await people.drop_schema("people")

        assert await people.list_schemas() == []
        async with people.engine.connect() as conn:
            assert not await table_exists(conn, "people")
        with pytest.raises(TableNotFoundError):
            await people.drop_schema("people")
