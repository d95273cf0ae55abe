"""
FastAPI permission dependency tests using TestClient.
"""

import json

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from crudgate.interface.permissions import Action, AuthUser, CheckResult, Policy
from crudgate.permissions.dependencies import (
    PermissionDependency,
    extract_collection_from_path,
    get_check_result,
    method_to_action,
)

USERS = {
    "editor": AuthUser(id="U1", role_id="role-editor", role="editor"),
    "admin": AuthUser(id="A1", role_id="role-admin", role="admin"),
}


def get_user(request: Request):
    return USERS.get(request.headers.get("X-User", ""))


@pytest.fixture
def client(checker, memory_store):
    memory_store.create(Policy(
        role_id="role-editor", collection="posts", action=Action.read,
        filter=json.dumps({"owner_id": "$USER_ID"}),
    ))

    app = FastAPI()
    permission = PermissionDependency(checker, get_user)
    tags_update = PermissionDependency(checker, get_user, collection="tags", action=Action.update)

    @app.get("/api/v1/{collection}")
    def list_items(collection: str, result: CheckResult = Depends(permission)):
        return {"filter": result.filter}

    @app.delete("/api/v1/{collection}/{item_id}")
    def delete_item(collection: str, item_id: str, result: CheckResult = Depends(permission)):
        return {"deleted": item_id}

    @app.post("/tags/rename")
    def rename_tag(request: Request, result: CheckResult = Depends(tags_update)):
        return {"stored": get_check_result(request) is result}

    @app.get("/health")
    def health(result=Depends(permission)):
        return {"result": result}

    return TestClient(app)


class TestPermissionDependency:

    def test_unauthenticated(self, client):
        response = client.get("/api/v1/posts")
        assert response.status_code == 401

    def test_allowed_returns_resolved_filter(self, client):
        response = client.get("/api/v1/posts", headers={"X-User": "editor"})
        assert response.status_code == 200
        assert response.json() == {"filter": {"owner_id": "U1"}}

    def test_forbidden_carries_reason(self, client):
        response = client.delete("/api/v1/posts/12", headers={"X-User": "editor"})
        assert response.status_code == 403
        assert response.json()["detail"] == "no permission for delete on posts"

    def test_admin(self, client):
        response = client.delete("/api/v1/posts/12", headers={"X-User": "admin"})
        assert response.status_code == 200

    def test_fixed_collection_and_action(self, client, memory_store):
        response = client.post("/tags/rename", headers={"X-User": "editor"})
        assert response.status_code == 403
        assert response.json()["detail"] == "no permission for update on tags"

    def test_fixed_collection_stores_result(self, client):
        response = client.post("/tags/rename", headers={"X-User": "admin"})
        assert response.json() == {"stored": True}

    def test_no_collection_passes(self, client):
        response = client.get("/health", headers={"X-User": "editor"})
        assert response.status_code == 200
        assert response.json() == {"result": None}


class TestHelpers:

    @pytest.mark.parametrize("method,action", [
        ("GET", Action.read), ("HEAD", Action.read), ("POST", Action.create),
        ("PUT", Action.update), ("patch", Action.update), ("DELETE", Action.delete),
        ("OPTIONS", Action.read),
    ])
    def test_method_to_action(self, method, action):
        assert method_to_action(method) == action

    @pytest.mark.parametrize("path,collection", [
        ("/api/v1/posts", "posts"),
        ("/api/v1/posts/42", "posts"),
        ("/api/posts", "posts"),
        ("/api/v1/posts/3fa85f64-5717-4562-b3fc-2c963f66afa6", "posts"),
        ("/items/17", "items"),
        ("/items", "items"),
        ("/health", ""),
        ("/", ""),
    ])
    def test_extract_collection_from_path(self, path, collection):
        assert extract_collection_from_path(path) == collection
