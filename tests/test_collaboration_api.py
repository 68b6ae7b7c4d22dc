"""
Collaboration API Tests — comments and watchers.

Comments and watchers never touch request content, so none of these calls
may bump request_version or invalidate an open approval round.
"""

import pytest

from ceodesk.models import db as _db
from ceodesk.models.notification import NotificationLog
from ceodesk.models.settings import OrgSettings

REQUESTS = "/api/v1/requests"


@pytest.fixture
def request_id(client, manager, auth_headers):
    res = client.post(REQUESTS, json={"title": "Office move"}, headers=auth_headers(manager))
    return res.get_json()["id"]


def _comment(client, headers, request_id, body):
    return client.post(f"{REQUESTS}/{request_id}/comments", json={"body": body}, headers=headers)


def _watch(client, headers, request_id, watcher_id, role=None):
    body = {"watcher_id": watcher_id}
    if role:
        body["watcher_role"] = role
    return client.post(f"{REQUESTS}/{request_id}/watchers", json=body, headers=headers)


class TestComments:

    def test_requester_comments(self, client, manager, auth_headers, request_id):
        res = _comment(client, auth_headers(manager), request_id, "Quote attached")
        assert res.status_code == 201
        data = res.get_json()
        assert data["author_id"] == manager.id
        assert data["mentions"] == []

        items = client.get(f"{REQUESTS}/{request_id}/comments", headers=auth_headers(manager)).get_json()["items"]
        assert [c["body"] for c in items] == ["Quote attached"]

    def test_body_is_escaped(self, client, manager, auth_headers, request_id):
        res = _comment(client, auth_headers(manager), request_id, "<script>alert(1)</script>")
        assert res.get_json()["body"] == "&lt;script&gt;alert(1)&lt;/script&gt;"

    def test_ceo_can_comment(self, client, ceo, auth_headers, request_id):
        assert _comment(client, auth_headers(ceo), request_id, "Looks fine").status_code == 201

    def test_unrelated_manager_blocked(self, client, other_manager, auth_headers, request_id):
        h = auth_headers(other_manager)
        assert _comment(client, h, request_id, "Hi").status_code == 403
        assert client.get(f"{REQUESTS}/{request_id}/comments", headers=h).status_code == 403

    def test_watcher_can_comment(self, client, manager, other_manager, auth_headers, request_id):
        _watch(client, auth_headers(manager), request_id, other_manager.id)
        assert _comment(client, auth_headers(other_manager), request_id, "Following").status_code == 201

    def test_mention_records_notification(self, client, manager, ceo, auth_headers, request_id):
        res = _comment(client, auth_headers(manager), request_id, f"@{ceo.id} can you weigh in?")
        assert res.status_code == 201
        assert res.get_json()["mentions"] == [ceo.id]

        rows = NotificationLog.query.filter_by(user_id=ceo.id, notification_type="mention").all()
        assert len(rows) == 1
        assert rows[0].entity_id == request_id
        assert rows[0].payload["comment_id"] == res.get_json()["id"]

    def test_mention_outside_org(self, client, manager, outsider, auth_headers, request_id):
        res = _comment(client, auth_headers(manager), request_id, f"@{outsider.id} hello")
        assert res.status_code == 422
        assert res.get_json()["details"]["unknown_mentions"] == [outsider.id]

    def test_mention_cap(self, client, org, manager, ceo, admin, auth_headers, request_id):
        _db.session.add(OrgSettings(org_id=org.id, max_mentions_per_comment=1))
        _db.session.commit()
        res = _comment(client, auth_headers(manager), request_id, f"@{ceo.id} @{admin.id}")
        assert res.status_code == 422

    def test_empty_body(self, client, manager, auth_headers, request_id):
        res = _comment(client, auth_headers(manager), request_id, "   ")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_comment_does_not_invalidate(self, client, manager, ceo, auth_headers, request_id):
        h = auth_headers(manager)
        client.patch(f"{REQUESTS}/{request_id}", json={"target_status": "SUBMITTED"}, headers=h)
        client.patch(f"{REQUESTS}/{request_id}", json={"target_status": "IN_REVIEW"}, headers=h)

        _comment(client, h, request_id, "Extra context in thread")
        _watch(client, h, request_id, ceo.id)

        detail = client.get(f"{REQUESTS}/{request_id}", headers=h).get_json()
        assert detail["request_version"] == 1
        assert detail["approvals"][0]["is_valid"] is True
        assert detail["active_approval_id"] is not None


class TestWatchers:

    def test_add_and_list(self, client, manager, ceo, auth_headers, request_id):
        h = auth_headers(manager)
        res = _watch(client, h, request_id, ceo.id)
        assert res.status_code == 201
        assert res.get_json()["watcher_role"] == "OBSERVER"

        items = client.get(f"{REQUESTS}/{request_id}/watchers", headers=h).get_json()["items"]
        assert [w["watcher_id"] for w in items] == [ceo.id]

    def test_re_adding_updates_role(self, client, manager, ceo, auth_headers, request_id):
        h = auth_headers(manager)
        _watch(client, h, request_id, ceo.id)
        res = _watch(client, h, request_id, ceo.id, role="ESCALATION_CONTACT")
        assert res.status_code == 200
        assert res.get_json()["watcher_role"] == "ESCALATION_CONTACT"
        assert len(client.get(f"{REQUESTS}/{request_id}/watchers", headers=h).get_json()["items"]) == 1

    def test_invalid_role(self, client, manager, ceo, auth_headers, request_id):
        res = _watch(client, auth_headers(manager), request_id, ceo.id, role="OWNER")
        assert res.status_code == 422

    def test_watcher_must_be_org_member(self, client, manager, outsider, auth_headers, request_id):
        res = _watch(client, auth_headers(manager), request_id, outsider.id)
        assert res.status_code == 422

    def test_only_requester_or_elevated_manage(self, client, other_manager, ceo, auth_headers, request_id):
        assert _watch(client, auth_headers(other_manager), request_id, other_manager.id).status_code == 403
        assert _watch(client, auth_headers(ceo), request_id, other_manager.id).status_code == 201

    def test_remove(self, client, manager, ceo, auth_headers, request_id):
        h = auth_headers(manager)
        _watch(client, h, request_id, ceo.id)

        res = client.delete(f"{REQUESTS}/{request_id}/watchers/{ceo.id}", headers=h)
        assert res.status_code == 200
        assert client.get(f"{REQUESTS}/{request_id}/watchers", headers=h).get_json()["items"] == []

        res = client.delete(f"{REQUESTS}/{request_id}/watchers/{ceo.id}", headers=h)
        assert res.status_code == 404

    def test_watcher_id_required(self, client, manager, auth_headers, request_id):
        res = client.post(f"{REQUESTS}/{request_id}/watchers", json={}, headers=auth_headers(manager))
        assert res.status_code == 400
