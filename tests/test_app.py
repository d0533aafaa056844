"""
Route-level tests with the Flask test client.
"""

import json

import pytest

from conftest import EXEC_UPLOAD, MEMBER_UPLOAD
from models import PhaseEnum, VoteValueEnum
from progression import create_new
from upload import parse_upload


class TestAccess:

    def test_anonymous_redirected_to_login(self, client):
        resp = client.get("/vote")
        assert resp.status_code == 302
        assert "/login" in resp.headers["Location"]

    def test_unapproved_user_sent_to_pending(self, make_user, login):
        client = login(make_user(approved=False))
        resp = client.get("/vote")
        assert "/pending" in resp.headers["Location"]

    def test_non_admin_blocked_from_admin(self, make_user, login):
        client = login(make_user())
        resp = client.get("/admin", follow_redirects=True)
        assert b"only accessible to administrators" in resp.data

    def test_register_then_pending(self, client, store):
        resp = client.post("/register", data={"email": "New@Example.org", "password": "secret"})
        assert "/pending" in resp.headers["Location"]
        assert store.get_profile_by_email("new@example.org").is_approved is False

    def test_login(self, client, make_user):
        user = make_user(password="hunter2")
        resp = client.post("/login", data={"email": user.email, "password": "hunter2"})
        assert resp.headers["Location"].endswith("/")
        resp = client.post("/login", data={"email": user.email, "password": "wrong"})
        assert b"Invalid credentials" in resp.data


class TestVoting:

    def test_no_active_event_is_neutral(self, make_user, login):
        resp = login(make_user()).get("/vote")
        assert resp.status_code == 200
        assert b"No Active Event" in resp.data

    def test_cast_and_duplicate(self, store, make_user, login, member_event):
        client = login(make_user())
        candidate = store.list_candidates(member_event.event.id)[0]
        form = {"candidate_id": candidate.id, "phase": "opinion", "value": "yes"}

        resp = client.post("/vote/cast", data=form, follow_redirects=True)
        assert b"Vote submitted successfully!" in resp.data
        assert b"already voted for this candidate" in resp.data  # page now shows voted state

        resp = client.post("/vote/cast", data=form, follow_redirects=True)
        assert b"You have already voted for this candidate in this phase." in resp.data
        assert len(store.fetch_all_votes(member_event.event.id)) == 1

    def test_vote_for_stale_candidate(self, store, make_user, login, member_event):
        client = login(make_user())
        stale = store.list_candidates(member_event.event.id)[0]
        member_event.advance()
        resp = client.post("/vote/cast", data={"candidate_id": stale.id, "phase": "opinion",
                                               "value": "yes"}, follow_redirects=True)
        assert b"moved on to another candidate" in resp.data
        assert store.fetch_all_votes(member_event.event.id) == []

    def test_position_vote(self, store, make_user, login, exec_event):
        client = login(make_user())
        resp = client.get("/vote")
        assert b"President" in resp.data and b"Position 1 of 2" in resp.data
        eli = store.list_candidates(exec_event.event.id)[1]
        resp = client.post("/vote/position", data={"position": "President", "candidate_id": eli.id},
                           follow_redirects=True)
        assert b"Vote for President submitted." in resp.data

    def test_state_endpoint(self, make_user, login, member_event):
        client = login(make_user())
        data = client.get("/api/event/state").get_json()
        assert data["event_id"] == member_event.event.id
        assert (data["phase"], data["current_candidate_index"], data["is_ended"]) == ("opinion", 0, False)
        assert data["poll_interval"] == 3


class TestAdmin:

    def test_upload_creates_event(self, store, make_user, login):
        client = login(make_user(admin=True))
        resp = client.post("/admin/upload", data={"json": json.dumps(MEMBER_UPLOAD),
                                                  "event_name": "Spring",
                                                  "approval_threshold": "80"},
                           follow_redirects=True)
        assert b"uploaded successfully" in resp.data
        event = store.get_active_event()
        assert (event.name, event.approval_threshold) == ("Spring", 80)

    def test_upload_malformed_json(self, store, make_user, login):
        client = login(make_user(admin=True))
        resp = client.post("/admin/upload", data={"json": "{nope", "event_name": "Spring"},
                           follow_redirects=True)
        assert b"Upload failed: Invalid JSON" in resp.data
        assert store.get_active_event() is None

    @pytest.mark.parametrize("threshold", ["150", "-5"])
    def test_upload_rejects_out_of_range_threshold(self, store, make_user, login, threshold):
        client = login(make_user(admin=True))
        resp = client.post("/admin/upload", data={"json": json.dumps(MEMBER_UPLOAD),
                                                  "event_name": "Spring",
                                                  "approval_threshold": threshold},
                           follow_redirects=True)
        assert b"Upload failed: Approval threshold must be between 0 and 100." in resp.data
        assert store.get_active_event() is None

    def test_threshold_updates_event_on_screen(self, store, make_user, login, member_event):
        client = login(make_user(admin=True))
        first_id = member_event.event.id
        second = create_new(store, parse_upload(json.dumps(MEMBER_UPLOAD), "Second"))
        store.update_event(first_id, is_ended=False)

        client.post("/admin/event/threshold", data={"event_id": first_id, "approval_threshold": "60"})
        assert store.get_event(first_id).approval_threshold == 60
        assert store.get_event(second.event.id).approval_threshold == 85

    def test_threshold_out_of_range(self, store, make_user, login, member_event):
        client = login(make_user(admin=True))
        event_id = member_event.event.id
        resp = client.post("/admin/event/threshold", data={"event_id": event_id,
                                                           "approval_threshold": "150"},
                           follow_redirects=True)
        assert b"between 0 and 100" in resp.data
        assert store.get_event(event_id).approval_threshold == 85

    def test_preview(self, make_user, login):
        client = login(make_user(admin=True))
        resp = client.post("/admin/upload/preview", data={"json": json.dumps(EXEC_UPLOAD),
                                                          "event_name": "Exec"})
        assert b"5 candidates ready to upload" in resp.data
        assert b"Treasurer" in resp.data

    def test_next_past_last_candidate(self, store, make_user, login, member_event):
        client = login(make_user(admin=True))
        for _ in range(2):
            client.post("/admin/event/next")
        resp = client.post("/admin/event/next", follow_redirects=True)
        assert b"No more candidates." in resp.data
        assert store.get_active_event().current_candidate_index == 2

    def test_promote_needs_confirmation(self, store, make_user, login, member_event):
        client = login(make_user(admin=True))
        resp = client.post("/admin/event/promote", follow_redirects=True)
        assert b"cannot be undone" in resp.data
        client.post("/admin/event/promote", data={"confirm": "yes"})
        assert store.get_active_event().phase == PhaseEnum.final

    def test_approve_user(self, store, make_user, login):
        pending = make_user(approved=False)
        client = login(make_user(admin=True))
        client.post(f"/admin/users/{pending.id}/approve")
        assert store.get_profile(pending.id).can_vote is True

    def test_end_and_delete(self, store, make_user, login, member_event):
        client = login(make_user(admin=True))
        event_id = member_event.event.id
        client.post("/admin/event/end")
        assert store.get_event(event_id).is_ended is True
        client.post(f"/admin/events/{event_id}/delete")
        assert store.get_event(event_id) is None

    def test_display_only_in_final_phase(self, make_user, login, member_event):
        client = login(make_user(admin=True))
        assert b"only available during the final vote phase" in client.get("/admin/display").data
        member_event.promote_phase(confirmed=True)
        resp = client.get("/admin/display?i=-1")
        assert b"Cam Liu" in resp.data and b"3 of 3" in resp.data


class TestResults:

    def test_ranked_with_approval(self, store, make_user, login, member_event):
        event_id = member_event.event.id
        a, b, _ = store.list_candidates(event_id)
        member_event.promote_phase(confirmed=True)
        for i in range(10):
            voter = make_user()
            store.insert_vote(voter.id, event_id, a.id, PhaseEnum.final,
                              VoteValueEnum.yes if i < 9 else VoteValueEnum.no)
            store.insert_vote(voter.id, event_id, b.id, PhaseEnum.final,
                              VoteValueEnum.yes if i < 7 else VoteValueEnum.no)

        resp = login(make_user()).get("/results")
        page = resp.data.decode()
        assert "Total Votes Cast: 20" in page
        assert "Approved: 1" in page
        assert page.index("#1 - Alex Rivera") < page.index("#2 - Bea Okafor")
        assert "Yes: 9 (90%)" in page
