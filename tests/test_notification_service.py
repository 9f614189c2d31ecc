from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from services import notification_service
from services.notification_service import extract_workspace_id


class TestExtractWorkspaceId:
    def test_top_level_camel_case(self):
        assert extract_workspace_id({"workspaceId": "67567c6a8c7d8b8e9f1a2b3c"}) == "67567c6a8c7d8b8e9f1a2b3c"

    def test_nested_in_data(self):
        assert extract_workspace_id({"data": {"workspace_id": "ws-9"}}) == "ws-9"

    def test_nested_document_with_underscore_id(self):
        notification = {"data": {"workspaceId": {"_id": "ws-3", "project": "project123"}}}
        assert extract_workspace_id(notification) == "ws-3"

    def test_document_with_id(self):
        assert extract_workspace_id({"workspace_id": {"id": "ws-4"}}) == "ws-4"

    def test_top_level_wins_over_data(self):
        assert extract_workspace_id({"workspace_id": "top", "data": {"workspace_id": "nested"}}) == "top"

    def test_empty_top_level_falls_back_to_data(self):
        assert extract_workspace_id({"workspace_id": "  ", "data": {"workspaceId": "ws-5"}}) == "ws-5"

    def test_non_string_ids_are_stringified(self):
        assert extract_workspace_id({"data": {"workspace_id": 42}}) == "42"

    def test_document_reference_id(self):
        reference = SimpleNamespace(id="ws-8", path="workspaces/ws-8")
        assert extract_workspace_id({"data": {"workspaceId": reference}}) == "ws-8"

    @pytest.mark.parametrize("value", [
        ["ws-1"],
        ("ws-1",),
        4.2,
        True,
        object(),
        SimpleNamespace(id=17),
        {"id": ["ws-1"]},
    ])
    def test_unsupported_id_types_are_ignored(self, value):
        assert extract_workspace_id({"workspace_id": value}) is None

    def test_unsupported_top_level_falls_back_to_data(self):
        notification = {"workspaceId": ["ws-1"], "data": {"workspace_id": "ws-6"}}
        assert extract_workspace_id(notification) == "ws-6"

    @pytest.mark.parametrize("notification", [
        {},
        {"data": None},
        {"data": "ws-1"},
        {"data": {"workspaceId": {}}},
        {"workspaceId": None},
    ])
    def test_missing(self, notification):
        assert extract_workspace_id(notification) is None


class TestNotificationStore:
    def _seed(self, fake_db):
        now = datetime.now(timezone.utc)
        notifications = fake_db.collection("notifications")
        notifications.document("n-old").set({
            "user_uid": "u1", "type": "payment", "title": "Old", "body": "...",
            "data": {"workspaceId": {"_id": "ws-1"}}, "read": True, "created_at": now - timedelta(days=1),
        })
        notifications.document("n-new").set({
            "user_uid": "u1", "type": "message", "title": "New", "body": "...",
            "workspace_id": "ws-2", "read": False, "created_at": now,
        })
        notifications.document("n-other").set({
            "user_uid": "u2", "type": "system", "title": "Other", "body": "...",
            "read": False, "created_at": now,
        })

    def test_list_newest_first_with_workspace(self, fake_db):
        self._seed(fake_db)

        result = notification_service.list_notifications("u1")

        assert [n.id for n in result] == ["n-new", "n-old"]
        assert [n.workspace_id for n in result] == ["ws-2", "ws-1"]

    def test_unread_only(self, fake_db):
        self._seed(fake_db)
        assert [n.id for n in notification_service.list_notifications("u1", unread_only=True)] == ["n-new"]
        assert notification_service.unread_count("u1") == 1

    def test_mark_read(self, fake_db):
        self._seed(fake_db)

        result = notification_service.mark_read("n-new", "u1")

        assert result.read is True
        assert result.read_at is not None
        assert notification_service.unread_count("u1") == 0

    def test_cannot_mark_foreign_notification(self, fake_db):
        self._seed(fake_db)
        with pytest.raises(HTTPException) as exc:
            notification_service.mark_read("n-other", "u1")
        assert exc.value.status_code == 403

    def test_mark_all_read(self, fake_db):
        self._seed(fake_db)
        assert notification_service.mark_all_read("u1") == 1
        assert notification_service.unread_count("u1") == 0
        assert notification_service.unread_count("u2") == 1

    def test_create_notification(self, fake_db):
        doc_id = notification_service.create_notification("u3", "system", "Hi", "Body", {"workspace_id": "ws-7"})

        stored = fake_db.collection("notifications").document(doc_id).get().to_dict()
        assert stored["user_uid"] == "u3"
        assert stored["read"] is False
        assert notification_service.list_notifications("u3")[0].workspace_id == "ws-7"
