from devhelp.extensions import feed

from conftest import PASSWORD, request_fields


def _create_request(c, **kw):
    resp = c.post("/requests", json=request_fields(**kw))
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


class TestAuthRoutes:
    """Register / login / me / logout."""

    def test_register_developer_and_login(self, app):
        c = app.test_client()
        resp = c.post("/auth/register", json={
            "name": "New Dev",
            "email": "new.dev@devhelp.io",
            "password": PASSWORD,
            "user_type": "developer",
            "skills": ["Python", "Django"],
        })
        assert resp.status_code == 201
        assert resp.get_json()["data"]["developer_profile"]["skills"] == ["Python", "Django"]

        resp = c.post("/auth/login", json={"email": "new.dev@devhelp.io", "password": PASSWORD})
        assert resp.status_code == 200
        me = c.get("/auth/me").get_json()["data"]
        assert me["user_type"] == "developer"
        assert me["developer_profile"]["online"] is True

    def test_register_validation(self, app):
        resp = app.test_client().post("/auth/register", json={"name": "", "email": "nope", "password": "short"})
        body = resp.get_json()
        assert resp.status_code == 400
        assert body["code"] == "validation"
        assert {"name", "email", "password"} <= set(body["fields"])

    def test_duplicate_email(self, app, api_people):
        resp = app.test_client().post("/auth/register", json={
            "name": "Carol Again", "email": api_people.client.email, "password": PASSWORD,
        })
        assert resp.status_code == 400
        assert "email" in resp.get_json()["fields"]

    def test_bad_password(self, app, api_people):
        resp = app.test_client().post("/auth/login", json={"email": api_people.client.email, "password": "wrong-pass1"})
        assert resp.status_code == 401

    def test_anonymous_gets_json_401(self, app):
        resp = app.test_client().get("/requests/mine")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "unauthenticated"

    def test_failed_login_message(self, app, api_people):
        resp = app.test_client().post("/auth/login", json={"email": api_people.client.email, "password": "wrong-pass1"})
        assert resp.get_json()["error"] == "Invalid email or password."

    def test_edit_own_profile(self, login, api_people):
        dev1 = login(api_people.dev1.email)
        resp = dev1.patch("/auth/me", json={"bio": "Query plans are my thing", "hourly_rate": 75})
        assert resp.status_code == 200
        me = resp.get_json()["data"]
        assert me["description"] == "Query plans are my thing"
        assert me["developer_profile"]["hourly_rate"] == 75.0

        bad = dev1.patch("/auth/me", json={"is_staff": True})
        assert bad.status_code == 400
        assert bad.get_json()["fields"] == ["is_staff"]

    def test_logout(self, login, api_people):
        c = login(api_people.client.email)
        assert c.post("/auth/logout").status_code == 200
        assert c.get("/auth/me").status_code == 401


class TestWorkflowRoutes:
    """The request -> application -> approval flow over HTTP."""

    def test_happy_path(self, login, api_people):
        client = login(api_people.client.email)
        dev1 = login(api_people.dev1.email)
        dev2 = login(api_people.dev2.email)

        req = _create_request(client)
        a1 = dev1.post(f"/requests/{req['id']}/applications", json={"message": "Me!", "proposed_rate": 50})
        assert a1.status_code == 201
        a2 = dev2.post(f"/requests/{req['id']}/applications", json={"proposed_rate": 40})
        a1_id = a1.get_json()["data"]["id"]

        again = dev1.post(f"/requests/{req['id']}/applications", json={"proposed_rate": 55})
        assert again.status_code == 200
        assert again.get_json()["data"]["is_update"] is True

        listed = client.get(f"/requests/{req['id']}/applications").get_json()["data"]
        assert len(listed) == 2

        resp = client.post(f"/applications/{a1_id}/approve")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["request"]["status"] == "approved"

        status = dev2.get(f"/requests/{req['id']}/applications/status").get_json()["data"]
        assert status == "rejected_by_client"

        second = client.post(f"/applications/{a2.get_json()['data']['id']}/approve")
        assert second.status_code == 409
        assert second.get_json()["code"] == "conflict"

    def test_error_codes_map_to_http(self, login, api_people):
        client = login(api_people.client.email)
        other = login(api_people.other.email)
        dev1 = login(api_people.dev1.email)

        assert client.post("/requests", json={"title": ""}).status_code == 400
        req = _create_request(client)
        assert other.patch(f"/requests/{req['id']}", json={"title": "x"}).status_code == 403
        assert client.get("/requests/does-not-exist").status_code == 404
        assert client.post(f"/requests/{req['id']}/cancel", json={}).status_code == 200
        assert client.post(f"/requests/{req['id']}/cancel", json={}).status_code == 409
        assert dev1.post(f"/requests/{req['id']}/applications", json={}).status_code == 409

    def test_options_and_recommendations(self, login, api_people):
        client = login(api_people.client.email)
        opts = client.get("/requests/options").get_json()["data"]
        assert "Database" in opts["technical_areas"]
        assert opts["urgency_levels"] == ["low", "medium", "high", "critical"]

        req = _create_request(client)
        recs = client.get(f"/requests/{req['id']}/recommended-developers?expand=1").get_json()["data"]
        assert {r["developer_id"] for r in recs} == {api_people.dev1.id, api_people.dev2.id}

    def test_staff_delete(self, login, api_people):
        client = login(api_people.client.email)
        staff = login(api_people.staff.email)
        req = _create_request(client)
        assert client.delete(f"/requests/{req['id']}").status_code == 403
        assert staff.delete(f"/requests/{req['id']}").status_code == 200
        assert client.get(f"/requests/{req['id']}").status_code == 404


class TestNotificationAndChatRoutes:
    """Feeds over plain GET."""

    def test_notifications_flow(self, login, api_people):
        client = login(api_people.client.email)
        dev1 = login(api_people.dev1.email)
        req = _create_request(client)
        dev1.post(f"/requests/{req['id']}/applications", json={"proposed_rate": 30})

        assert client.get("/notifications/unread-count").get_json()["data"] == 1
        notes = client.get("/notifications").get_json()["data"]
        assert notes[0]["notification_type"] == "new_application"

        assert dev1.post(f"/notifications/{notes[0]['id']}/read").status_code == 403
        assert client.post(f"/notifications/{notes[0]['id']}/read").status_code == 200
        assert client.post("/notifications/read-all").get_json()["data"] == 0
        assert client.get("/notifications?unread=1").get_json()["data"] == []

    def test_chat_flow(self, login, api_people):
        client = login(api_people.client.email)
        dev1 = login(api_people.dev1.email)
        req = _create_request(client)
        dev1.post(f"/requests/{req['id']}/applications", json={"proposed_rate": 30})

        resp = client.post(f"/chat/{req['id']}/messages", json={"receiver_id": api_people.dev1.id, "message": "hi"})
        assert resp.status_code == 201
        assert client.post(f"/chat/{req['id']}/messages",
                           json={"receiver_id": api_people.dev1.id, "message": ""}).status_code == 400

        msgs = dev1.get(f"/chat/{req['id']}/messages").get_json()["data"]
        assert [m["message"] for m in msgs] == ["hi"]
        assert dev1.post(f"/chat/{req['id']}/read").get_json()["data"] == 1


class TestRealtimeStream:
    """Server-Sent Events endpoint."""

    def test_stream_headers_and_cleanup(self, login, api_people):
        client = login(api_people.client.email)
        resp = client.get("/realtime/stream?topic=notifications", buffered=False)

        assert resp.status_code == 200
        assert resp.mimetype == "text/event-stream"
        assert resp.headers["Cache-Control"] == "no-cache"
        first = next(resp.iter_encoded()).decode()
        assert first.startswith("event: ready")
        assert feed.subscriber_count("notifications") == 1

        resp.close()
        assert feed.subscriber_count("notifications") == 0

    def test_stream_guards(self, login, api_people):
        client = login(api_people.client.email)
        dev2 = login(api_people.dev2.email)
        req = _create_request(client)

        bogus = client.get("/realtime/stream?topic=bogus")
        assert bogus.status_code == 400
        assert bogus.get_json()["error"] == "topic must be one of: notifications, chat, applications"
        assert client.get(f"/realtime/stream?topic=notifications&id={api_people.dev1.id}").status_code == 403
        assert client.get("/realtime/stream?topic=chat&id=missing").status_code == 404
        assert dev2.get(f"/realtime/stream?topic=chat&id={req['id']}").status_code == 403
        assert dev2.get(f"/realtime/stream?topic=applications&id={req['id']}").status_code == 403

    def test_unknown_endpoint_is_json(self, app):
        resp = app.test_client().get("/nope")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "not_found"


class TestDeveloperDirectory:
    """Browsing developers over HTTP."""

    def test_search_and_detail(self, login, api_people):
        client = login(api_people.client.email)

        page = client.get("/developers?q=react&page_size=5").get_json()["data"]
        assert [d["id"] for d in page["items"]] == [api_people.dev2.id]
        assert page["page_size"] == 5

        detail = client.get(f"/developers/{api_people.dev1.id}")
        assert detail.status_code == 200
        assert detail.get_json()["data"]["skills"] == ["PostgreSQL"]
        assert client.get(f"/developers/{api_people.client.id}").status_code == 404

    def test_paging_errors(self, login, api_people):
        client = login(api_people.client.email)
        assert client.get("/developers?page=0").status_code == 400
        assert client.get("/developers?page=abc").status_code == 200

    def test_directory_requires_login(self, app):
        assert app.test_client().get("/developers").status_code == 401
