import pytest
from sqlalchemy import exc as sa_exc

from devhelp.extensions import db
from devhelp.models import HelpRequest, HelpRequestMatch, Notification
from devhelp.services import application_store, request_store

from conftest import apply, request_fields


def _status(app_id):
    return db.session.get(HelpRequestMatch, app_id).status


class TestSubmit:
    """Developers applying to a request."""

    def test_new_application_starts_pending(self, people, open_request):
        res = application_store.submit(people.as_dev1, open_request["id"], people.dev1.id,
                                       message="Happy to help", proposed_rate=45, proposed_duration=60)
        assert res.success
        assert res.data["status"] == "pending"
        assert res.data["is_update"] is False
        assert res.data["proposed_rate"] == 45.0
        assert 0.0 <= res.data["match_score"] <= 1.0

    def test_first_application_moves_request_to_matching(self, people, open_request):
        apply(people, open_request["id"], people.as_dev1)
        assert db.session.get(HelpRequest, open_request["id"]).status == "matching"

    def test_resubmission_updates_in_place(self, people, open_request):
        first = apply(people, open_request["id"], people.as_dev1, proposed_rate=40)
        again = apply(people, open_request["id"], people.as_dev1, message="Updated offer", proposed_rate=60)

        assert again["id"] == first["id"]
        assert again["is_update"] is True
        assert again["proposed_rate"] == 60.0
        assert again["proposed_message"] == "Updated offer"
        assert HelpRequestMatch.query.filter_by(request_id=open_request["id"]).count() == 1

    def test_racing_first_submission_becomes_update(self, people, open_request, monkeypatch):
        first = apply(people, open_request["id"], people.as_dev1, proposed_rate=40)
        real_lookup = application_store._find_application
        calls = []

        def stale_lookup(request_id, developer_id):
            calls.append(request_id)
            # the first lookup misses the row, as a concurrent request would
            return None if len(calls) == 1 else real_lookup(request_id, developer_id)

        monkeypatch.setattr(application_store, "_find_application", stale_lookup)
        again = apply(people, open_request["id"], people.as_dev1, proposed_rate=55)

        assert again["id"] == first["id"]
        assert again["is_update"] is True
        assert again["proposed_rate"] == 55.0
        assert HelpRequestMatch.query.filter_by(request_id=open_request["id"]).count() == 1
        assert Notification.query.filter_by(user_id=people.client.id).count() == 1

    def test_notification_fan_out(self, people, open_request):
        app = apply(people, open_request["id"], people.as_dev1)

        notes = Notification.query.filter_by(user_id=people.client.id).all()
        assert len(notes) == 1
        note = notes[0]
        assert note.notification_type == "new_application"
        assert note.action_data["application_id"] == app["id"]
        assert note.action_data["developer_name"] == "Dana Dev"
        assert note.action_data["request_title"] == "Fix slow query"

    def test_resubmission_does_not_notify_again(self, people, open_request):
        apply(people, open_request["id"], people.as_dev1)
        apply(people, open_request["id"], people.as_dev1, proposed_rate=70)
        assert Notification.query.filter_by(user_id=people.client.id).count() == 1

    @pytest.mark.parametrize("raw, stored", [
        (1500, 999.99),
        ("999.999", 999.99),
        (12.345, 12.35),
        (0, 0.0),
        ("1e30", 999.99),
        (1e40, 999.99),
    ])
    def test_rate_is_rounded_and_clamped(self, people, open_request, raw, stored):
        app = apply(people, open_request["id"], people.as_dev1, proposed_rate=raw)
        assert app["proposed_rate"] == stored

    def test_negative_rate_is_refused(self, people, open_request):
        res = application_store.submit(people.as_dev1, open_request["id"], people.dev1.id, proposed_rate=-5)
        assert res.code == "validation"
        assert res.fields == ["proposed_rate"]

    def test_infinite_duration_is_refused(self, people, open_request):
        res = application_store.submit(people.as_dev1, open_request["id"], people.dev1.id,
                                       proposed_duration=float("inf"))
        assert res.code == "validation"
        assert res.fields == ["proposed_duration"]

    def test_non_numeric_rate_is_refused(self, people, open_request):
        res = application_store.submit(people.as_dev1, open_request["id"], people.dev1.id, proposed_rate="lots")
        assert res.code == "validation"

    def test_cannot_apply_for_someone_else(self, people, open_request):
        res = application_store.submit(people.as_dev1, open_request["id"], people.dev2.id)
        assert res.code == "permission"

    def test_closed_request_rejects_applications(self, people, open_request):
        request_store.cancel(people.as_client, open_request["id"])
        res = application_store.submit(people.as_dev1, open_request["id"], people.dev1.id)
        assert res.code == "conflict"

    def test_missing_profile_gets_default_score(self, people, open_request):
        app = apply(people, open_request["id"], people.as_dev3)
        assert app["match_score"] == pytest.approx(0.8)


class TestListing:
    """Reading applications back."""

    def test_list_for_request_includes_public_profile(self, people, open_request):
        apply(people, open_request["id"], people.as_dev1)
        res = application_store.list_for_request(people.as_client, open_request["id"])

        assert res.success
        dev = res.data[0]["developer"]
        assert dev["name"] == "Dana Dev"
        assert "PostgreSQL" in dev["skills"]
        assert dev["is_placeholder"] is False

    def test_missing_developer_gets_placeholder(self, people, open_request):
        app = apply(people, open_request["id"], people.as_dev1)
        # profile row removed out from under the application
        db.session.execute(
            HelpRequestMatch.__table__.update()
            .where(HelpRequestMatch.id == app["id"])
            .values(developer_id="ghost")
        )
        db.session.commit()
        db.session.expire_all()

        res = application_store.list_for_request(people.as_client, open_request["id"])
        dev = res.data[0]["developer"]
        assert dev["name"] == "Unknown Developer"
        assert dev["skills"] == []
        assert dev["is_placeholder"] is True

    def test_list_for_request_owner_only(self, people, open_request):
        res = application_store.list_for_request(people.as_dev1, open_request["id"])
        assert res.code == "permission"

    def test_list_for_developer_embeds_request(self, people, open_request):
        apply(people, open_request["id"], people.as_dev1)
        res = application_store.list_for_developer(people.as_dev1, people.dev1.id)
        assert res.data[0]["request"]["id"] == open_request["id"]

    def test_check_status(self, people, open_request):
        rid = open_request["id"]
        assert application_store.check_status(people.as_dev1, rid, people.dev1.id).data is None
        apply(people, rid, people.as_dev1)
        assert application_store.check_status(people.as_dev1, rid, people.dev1.id).data == "pending"
        assert application_store.check_status(people.as_client, rid, people.dev1.id).data == "pending"
        assert application_store.check_status(people.as_dev2, rid, people.dev1.id).code == "permission"


class TestApprove:
    """Approving one application and the cascade that follows."""

    def test_happy_path(self, people, open_request):
        app = apply(people, open_request["id"], people.as_dev1)

        res = application_store.approve(people.as_client, app["id"])

        assert res.success
        assert _status(app["id"]) == "approved_by_client"
        req = db.session.get(HelpRequest, open_request["id"])
        assert req.status == "approved"
        assert req.selected_developer_id == people.dev1.id

    def test_cascade_rejects_pending_siblings(self, people, open_request):
        rid = open_request["id"]
        a1 = apply(people, rid, people.as_dev1)
        a2 = apply(people, rid, people.as_dev2)
        a3 = apply(people, rid, people.as_dev3)

        res = application_store.approve(people.as_client, a2["id"])

        assert res.success
        assert _status(a2["id"]) == "approved_by_client"
        assert _status(a1["id"]) == "rejected_by_client"
        assert _status(a3["id"]) == "rejected_by_client"
        assert sorted(res.data["rejected_application_ids"]) == sorted([a1["id"], a3["id"]])

    def test_single_approval(self, people, open_request):
        rid = open_request["id"]
        a1 = apply(people, rid, people.as_dev1)
        a2 = apply(people, rid, people.as_dev2)
        application_store.approve(people.as_client, a1["id"])

        res = application_store.approve(people.as_client, a2["id"])

        assert res.code == "conflict"
        approved = HelpRequestMatch.query.filter_by(request_id=rid, status="approved_by_client").count()
        assert approved == 1

    def test_cascade_leaves_non_pending_untouched(self, people, open_request):
        rid = open_request["id"]
        a1 = apply(people, rid, people.as_dev1)
        a2 = apply(people, rid, people.as_dev2)
        application_store.reject(people.as_client, a2["id"])
        before = db.session.get(HelpRequestMatch, a2["id"]).updated_at

        res = application_store.approve(people.as_client, a1["id"])

        assert res.data["rejected_application_ids"] == []
        assert db.session.get(HelpRequestMatch, a2["id"]).updated_at == before

    def test_rerun_is_idempotent(self, people, open_request):
        rid = open_request["id"]
        a1 = apply(people, rid, people.as_dev1)
        application_store.approve(people.as_client, a1["id"])

        res = application_store.approve(people.as_client, a1["id"])

        assert res.success
        assert res.data["already_approved"] is True
        assert res.data["rejected_application_ids"] == []
        approved_notes = Notification.query.filter_by(
            user_id=people.dev1.id, notification_type="application_approved").count()
        assert approved_notes == 1

    def test_rerun_finishes_an_incomplete_cascade(self, people, open_request):
        rid = open_request["id"]
        a1 = apply(people, rid, people.as_dev1)
        a2 = apply(people, rid, people.as_dev2)
        # approved but cascade never ran
        db.session.get(HelpRequestMatch, a1["id"]).status = "approved_by_client"
        db.session.commit()

        res = application_store.approve(people.as_client, a1["id"])

        assert res.success
        assert _status(a2["id"]) == "rejected_by_client"
        assert db.session.get(HelpRequest, rid).selected_developer_id == people.dev1.id

    def test_only_owner_can_approve(self, people, open_request):
        a1 = apply(people, open_request["id"], people.as_dev1)
        res = application_store.approve(people.as_other_client, a1["id"])
        assert res.code == "permission"
        assert _status(a1["id"]) == "pending"

    def test_terminal_request(self, people, open_request):
        a1 = apply(people, open_request["id"], people.as_dev1)
        db.session.get(HelpRequest, open_request["id"]).status = "completed"
        db.session.commit()

        res = application_store.approve(people.as_client, a1["id"])
        assert res.code == "already_terminal"

    def test_unknown_application(self, people):
        assert application_store.approve(people.as_client, "missing").code == "not_found"

    def test_notifications_for_approved_and_rejected(self, people, open_request):
        rid = open_request["id"]
        a1 = apply(people, rid, people.as_dev1)
        apply(people, rid, people.as_dev2)
        application_store.approve(people.as_client, a1["id"])

        assert Notification.query.filter_by(
            user_id=people.dev1.id, notification_type="application_approved").count() == 1
        assert Notification.query.filter_by(
            user_id=people.dev2.id, notification_type="application_rejected").count() == 1

    def test_database_enforces_one_approval(self, people, open_request):
        rid = open_request["id"]
        db.session.add_all([
            HelpRequestMatch(request_id=rid, developer_id=people.dev1.id, status="approved_by_client"),
            HelpRequestMatch(request_id=rid, developer_id=people.dev2.id, status="approved_by_client"),
        ])
        with pytest.raises(sa_exc.IntegrityError):
            db.session.commit()
        db.session.rollback()


class TestReject:
    """Rejecting a single application."""

    def test_reject_leaves_request_and_siblings(self, people, open_request):
        rid = open_request["id"]
        a1 = apply(people, rid, people.as_dev1)
        a2 = apply(people, rid, people.as_dev2)

        res = application_store.reject(people.as_client, a1["id"], reason="Need a frontend dev")

        assert res.data["status"] == "rejected_by_client"
        assert _status(a2["id"]) == "pending"
        assert db.session.get(HelpRequest, rid).status == "matching"
        note = Notification.query.filter_by(user_id=people.dev1.id).one()
        assert note.action_data["reason"] == "Need a frontend dev"

    def test_only_the_owner_can_reject(self, people, open_request):
        a1 = apply(people, open_request["id"], people.as_dev1)
        res = application_store.reject(people.as_other_client, a1["id"])
        assert res.code == "permission"
        assert db.session.get(HelpRequestMatch, a1["id"]).status == "pending"

    def test_reject_twice_is_conflict(self, people, open_request):
        a1 = apply(people, open_request["id"], people.as_dev1)
        application_store.reject(people.as_client, a1["id"])
        assert application_store.reject(people.as_client, a1["id"]).code == "conflict"

    def test_rejected_application_cannot_be_resubmitted(self, people, open_request):
        a1 = apply(people, open_request["id"], people.as_dev1)
        application_store.reject(people.as_client, a1["id"])
        res = application_store.submit(people.as_dev1, open_request["id"], people.dev1.id, proposed_rate=10)
        assert res.code == "conflict"


class TestSubscribe:
    """Live application changes for one request."""

    def test_insert_and_update_are_delivered(self, people, open_request):
        rid = open_request["id"]
        seen = []
        sub = application_store.subscribe(rid, lambda event, row: seen.append((event, row["status"])))

        a1 = apply(people, rid, people.as_dev1)
        application_store.reject(people.as_client, a1["id"])
        sub.unsubscribe()
        apply(people, rid, people.as_dev2)

        assert seen == [("INSERT", "pending"), ("UPDATE", "rejected_by_client")]

    def test_other_requests_are_filtered_out(self, people, open_request):
        other = request_store.create(people.as_client, request_fields(title="Other")).data
        seen = []
        with_sub = application_store.subscribe(open_request["id"], lambda event, row: seen.append(row))
        apply(people, other["id"], people.as_dev1)
        with_sub()
        assert seen == []
