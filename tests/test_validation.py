"""Tests for compiling API documents into request validators."""

import httpx
import pytest
from fastapi import FastAPI

from api.body import JsonBodyMiddleware
from api.middleware import use_middleware
from api.validation import ValidationInstaller, compile_api_spec


API_DOC = {
    "openapi": "3.1.0",
    "info": {"title": "items", "version": "1.0.0"},
    "paths": {
        "/items/{itemId}": {
            "parameters": [{"$ref": "#/components/parameters/ItemId"}],
            "put": {
                "requestBody": {"$ref": "#/components/requestBodies/Item"},
                "responses": {"204": {"description": "stored"}},
            },
        },
    },
    "components": {
        "schemas": {
            "ItemId": {"type": "integer", "minimum": 1},
            "Label": {"type": "string", "minLength": 1},
            "Item": {
                "type": "object",
                "required": ["label"],
                "properties": {
                    "label": {"$ref": "#/components/schemas/Label", "maxLength": 5},
                },
            },
        },
        "parameters": {
            "ItemId": {
                "name": "itemId",
                "in": "path",
                "required": True,
                "schema": {"$ref": "#/components/schemas/ItemId"},
            },
        },
        "requestBodies": {
            "Item": {
                "required": True,
                "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Item"}}},
            },
        },
    },
}


async def build():
    app = FastAPI()
    use_middleware(app, JsonBodyMiddleware, limit=1024)
    await ValidationInstaller(API_DOC).install(app)

    @app.put("/items/{item_id}", status_code=204)
    async def put_item(item_id: int):
        return None

    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://api.test")


def test_compile_follows_component_refs():
    """Test that referenced parameters and request bodies are compiled."""
    [compiled] = compile_api_spec(API_DOC)
    rule = compiled.operations["PUT"]

    assert [p.name for p in rule.parameters] == ["itemId"]
    assert rule.parameters[0].schema["type"] == "integer"
    assert rule.body_required is True
    assert rule.accepts_json is True


def test_keywords_next_to_ref_are_enforced():
    """Test that a constraint written beside a $ref applies with the target."""
    [compiled] = compile_api_spec(API_DOC)
    validator = compiled.operations["PUT"].body_validator

    assert validator.is_valid({"label": "short"})
    assert not validator.is_valid({"label": "too long"})
    assert not validator.is_valid({"label": ""})


@pytest.mark.asyncio
async def test_sibling_constraint_rejects_request():
    """Test that maxLength beside a $ref is reported by the middleware."""
    client = await build()

    async with client:
        accepted = await client.put("/items/3", json={"label": "short"})
        rejected = await client.put("/items/3", json={"label": "much too long"})

    assert accepted.status_code == 204
    assert rejected.status_code == 400
    assert rejected.json()["errors"][0]["path"] == ".body.label"
    assert rejected.json()["errors"][0]["errorCode"] == "maxLength.openapi.validation"


@pytest.mark.asyncio
async def test_referenced_parameter_schema_is_coerced_and_checked():
    """Test that a path parameter declared through $ref is validated as an integer."""
    client = await build()

    async with client:
        below_minimum = await client.put("/items/0", json={"label": "ok"})
        not_a_number = await client.put("/items/abc", json={"label": "ok"})

    assert below_minimum.status_code == 400
    assert below_minimum.json()["errors"][0]["path"] == ".path.itemId"
    assert not_a_number.status_code == 400
    assert not_a_number.json()["errors"][0]["errorCode"] == "type.openapi.validation"


def test_non_local_ref_is_refused():
    """Test that refs outside the document are rejected at compile time."""
    document = {
        "openapi": "3.1.0",
        "info": {"title": "remote", "version": "1.0.0"},
        "paths": {"/things": {"$ref": "https://elsewhere.example/paths.json#/things"}},
    }

    with pytest.raises(ValueError, match="Only local"):
        compile_api_spec(document)
