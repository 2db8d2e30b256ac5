import os
import sqlite3
import uuid
from datetime import datetime

from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

# Import the FastAPI app
from podote.main import app  # noqa: E402
from podote.repositories import InMemoryRepository  # noqa: E402
from podote.schemas import MAX_REORDER_ITEMS  # noqa: E402
from podote.service import TodoService, get_todo_service  # noqa: E402

client = TestClient(app)

BASE = "/api/v1/todos"


def new_user() -> dict:
    # The in-memory repository persists within the app instance; a fresh user isolates each test
    return {"X-User-Id": f"user-{uuid.uuid4().hex[:8]}"}


def create_todo(headers, text="Test Task") -> dict:
    res = client.post(f"{BASE}/", json={"content": {"text": text}}, headers=headers)
    assert res.status_code == 201
    return res.json()


def assert_todo_shape(todo: dict):
    for key in ["id", "user_id", "content", "done", "order_key", "is_removed", "created_dt"]:
        assert key in todo
    assert "updated_dt" in todo
    assert "removed_dt" in todo
    assert isinstance(todo["id"], str)
    assert isinstance(todo["done"], bool)
    assert isinstance(todo["order_key"], int)
    datetime.fromisoformat(todo["created_dt"])
    if todo["removed_dt"] is not None:
        datetime.fromisoformat(todo["removed_dt"])


class TestHealth:
    def test_health_check(self):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")


class TestActingUser:
    def test_missing_user_header_is_401(self):
        res = client.get(f"{BASE}/")
        assert res.status_code == 401
        assert res.json()["detail"] == "Missing X-User-Id header"

    def test_blank_user_header_is_401(self):
        res = client.get(f"{BASE}/", headers={"X-User-Id": "   "})
        assert res.status_code == 401


class TestTodosCRUD:
    def test_create_todo(self):
        headers = new_user()
        todo = create_todo(headers, "Buy milk")
        assert_todo_shape(todo)
        assert todo["content"] == {"text": "Buy milk"}
        assert todo["user_id"] == headers["X-User-Id"]
        assert todo["order_key"] == 1
        assert todo["done"] is False
        assert todo["updated_dt"] is None

    def test_get_todo_and_not_found(self):
        headers = new_user()
        tid = create_todo(headers, "Read book")["id"]

        res_get = client.get(f"{BASE}/{tid}", headers=headers)
        assert res_get.status_code == 200
        assert res_get.json()["id"] == tid

        # Absence is a null body, not an error
        res_missing = client.get(f"{BASE}/999999", headers=headers)
        assert res_missing.status_code == 200
        assert res_missing.json() is None

    def test_list_is_rank_descending(self):
        headers = new_user()
        ids = [create_todo(headers, f"Task {i}")["id"] for i in range(3)]
        res = client.get(f"{BASE}/", headers=headers)
        assert res.status_code == 200
        items = res.json()
        assert [t["id"] for t in items] == list(reversed(ids))
        assert [t["order_key"] for t in items] == [3, 2, 1]

    def test_update_content_and_done(self):
        headers = new_user()
        tid = create_todo(headers)["id"]

        res_content = client.patch(f"{BASE}/{tid}/content", json={"content": ["any", {"json": 1}]}, headers=headers)
        assert res_content.status_code == 200
        assert res_content.json()["content"] == ["any", {"json": 1}]
        assert res_content.json()["updated_dt"] is not None

        res_done = client.patch(f"{BASE}/{tid}/done", json={"done": True}, headers=headers)
        assert res_done.status_code == 200
        assert res_done.json()["done"] is True

        res_missing = client.patch(f"{BASE}/nope/done", json={"done": True}, headers=headers)
        assert res_missing.status_code == 200
        assert res_missing.json() is None


class TestReorder:
    def test_reorder_scenario(self):
        headers = new_user()
        id1, id2, id3 = [create_todo(headers, f"T{i}")["id"] for i in range(1, 4)]
        payload = {
            "items": [
                {"id": id3, "order_key": 10},
                {"id": id1, "order_key": 5},
                {"id": id2, "order_key": 1},
            ]
        }
        res = client.put(f"{BASE}/order", json=payload, headers=headers)
        assert res.status_code == 200
        assert [(t["id"], t["order_key"]) for t in res.json()] == [(id3, 10), (id1, 5), (id2, 1)]

        listed = client.get(f"{BASE}/", headers=headers).json()
        assert [t["id"] for t in listed] == [id3, id1, id2]

    def test_empty_reorder_returns_current_order(self):
        headers = new_user()
        create_todo(headers)
        before = client.get(f"{BASE}/", headers=headers).json()
        res = client.put(f"{BASE}/order", json={"items": []}, headers=headers)
        assert res.status_code == 200
        assert res.json() == before

    def test_duplicate_ranks_rejected(self):
        headers = new_user()
        id1, id2 = [create_todo(headers)["id"] for _ in range(2)]
        payload = {"items": [{"id": id1, "order_key": 4}, {"id": id2, "order_key": 4}]}
        res = client.put(f"{BASE}/order", json=payload, headers=headers)
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)

    def test_normalize(self):
        headers = new_user()
        id1, id2 = [create_todo(headers)["id"] for _ in range(2)]
        client.put(
            f"{BASE}/order",
            json={"items": [{"id": id1, "order_key": 50}, {"id": id2, "order_key": 7}]},
            headers=headers,
        )
        res = client.post(f"{BASE}/normalize", headers=headers)
        assert res.status_code == 200
        assert [(t["id"], t["order_key"]) for t in res.json()] == [(id1, 2), (id2, 1)]


class TestTrash:
    def test_remove_restore_purge_flow(self):
        headers = new_user()
        id1, id2 = [create_todo(headers, f"T{i}")["id"] for i in range(2)]

        res_remove = client.post(f"{BASE}/{id1}/remove", headers=headers)
        assert res_remove.status_code == 200
        removed = res_remove.json()
        assert_todo_shape(removed)
        assert removed["is_removed"] is True
        assert removed["removed_dt"] is not None

        active_ids = [t["id"] for t in client.get(f"{BASE}/", headers=headers).json()]
        assert id1 not in active_ids
        trash = client.get(f"{BASE}/trash", headers=headers).json()
        assert [t["id"] for t in trash] == [id1]
        assert client.get(f"{BASE}/trash/{id1}", headers=headers).json()["id"] == id1

        res_restore = client.post(f"{BASE}/trash/{id1}/restore", headers=headers)
        assert res_restore.status_code == 200
        restored = res_restore.json()
        assert restored["removed_dt"] is None
        assert restored["order_key"] == 1

        client.post(f"{BASE}/{id1}/remove", headers=headers)
        client.post(f"{BASE}/{id2}/remove", headers=headers)
        res_purge = client.delete(f"{BASE}/trash/{id1}", headers=headers)
        assert res_purge.status_code == 200
        assert [t["id"] for t in res_purge.json()] == [id2]

        res_empty = client.delete(f"{BASE}/trash", headers=headers)
        assert res_empty.status_code == 200
        assert res_empty.json() == []
        assert client.get(f"{BASE}/trash", headers=headers).json() == []

    def test_other_users_cannot_touch_todos(self):
        owner = new_user()
        intruder = new_user()
        tid = create_todo(owner, "private")["id"]

        assert client.get(f"{BASE}/{tid}", headers=intruder).json() is None
        assert client.post(f"{BASE}/{tid}/remove", headers=intruder).json() is None
        assert client.get(f"{BASE}/", headers=intruder).json() == []

        assert client.get(f"{BASE}/{tid}", headers=owner).json()["is_removed"] is False


class TestValidationErrors:
    def test_create_requires_content(self):
        res = client.post(f"{BASE}/", json={}, headers=new_user())
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)

    def test_done_must_be_boolean(self):
        headers = new_user()
        tid = create_todo(headers)["id"]
        res = client.patch(f"{BASE}/{tid}/done", json={"done": "maybe"}, headers=headers)
        assert res.status_code == 422
        assert res.json().get("error") == "ValidationError"


class TestReorderBounds:
    def test_rank_beyond_64_bits_rejected(self):
        headers = new_user()
        tid = create_todo(headers)["id"]
        payload = {"items": [{"id": tid, "order_key": 2**70}]}
        res = client.put(f"{BASE}/order", json=payload, headers=headers)
        assert res.status_code == 422
        assert res.json().get("error") == "ValidationError"
        assert client.get(f"{BASE}/{tid}", headers=headers).json()["order_key"] == 1

    def test_largest_64_bit_rank_accepted(self):
        headers = new_user()
        tid = create_todo(headers)["id"]
        payload = {"items": [{"id": tid, "order_key": 2**63 - 1}]}
        res = client.put(f"{BASE}/order", json=payload, headers=headers)
        assert res.status_code == 200
        assert res.json()[0]["order_key"] == 2**63 - 1

    def test_oversized_batch_rejected(self):
        headers = new_user()
        items = [{"id": f"id-{i}", "order_key": i} for i in range(MAX_REORDER_ITEMS + 1)]
        res = client.put(f"{BASE}/order", json={"items": items}, headers=headers)
        assert res.status_code == 422
        assert res.json().get("error") == "ValidationError"


class BrokenRepository(InMemoryRepository):
    """Every read fails the way a lost database connection does."""

    def find_active(self, user_id):
        raise sqlite3.OperationalError("unable to open database file")


class TestStorageFailure:
    def test_storage_error_is_503(self):
        app.dependency_overrides[get_todo_service] = lambda: TodoService(BrokenRepository())
        try:
            res = client.get(f"{BASE}/", headers=new_user())
        finally:
            app.dependency_overrides.clear()
        assert res.status_code == 503
        assert res.json() == {"error": "StorageError", "message": "Storage backend failure"}
