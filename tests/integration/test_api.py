"""
Integration Tests for the HTTP API
"""
from datetime import timedelta

from app.models.enums import LoanStatus, ResourceStatus
from app.utils.timezone import now_local


class TestHealthAndAuth:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_signup_login_me(self, client):
        payload = {
            "user_fname": "Laura",
            "user_lname": "Gomez",
            "user_email": "laura.gomez@example.edu",
            "password": "secret123",
            "student_code": "20231234",
        }
        response = client.post("/api/auth/signup", json=payload)
        assert response.status_code == 201
        assert response.json()["user"]["role"] == "student"

        response = client.post("/api/auth/login", json={"user_email": payload["user_email"], "password": "secret123"})
        assert response.status_code == 200
        token = response.json()["access_token"]

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["email"] == payload["user_email"]

    def test_duplicate_signup(self, client, student):
        response = client.post("/api/auth/signup", json={
            "user_fname": "A", "user_lname": "B", "user_email": student.user_email, "password": "secret123",
        })
        assert response.status_code == 400

    def test_wrong_password(self, client, student):
        response = client.post("/api/auth/login", json={"user_email": student.user_email, "password": "nope-nope"})
        assert response.status_code == 401

    def test_missing_token(self, client):
        assert client.get("/api/loans/mine").status_code == 401


class TestCatalogApi:

    def test_admin_creates_category_and_resource(self, client, admin_headers, auth_headers):
        response = client.post("/api/catalog/categories", headers=admin_headers, json={
            "name": "Balls",
            "base_wellness_hours": 1,
            "hourly_factor": 0.5,
            "is_low_risk": True,
            "requires_approval": False,
        })
        assert response.status_code == 201
        category_id = int(response.json()["id"])

        response = client.post("/api/catalog/resources", headers=admin_headers, json={
            "category_id": category_id, "name": "Football #1",
        })
        assert response.status_code == 201
        assert response.json()["status"] == "available"

        listed = client.get("/api/catalog/resources", headers=auth_headers, params={"search": "Football"})
        assert [r["name"] for r in listed.json()] == ["Football #1"]

    def test_students_cannot_create(self, client, auth_headers):
        response = client.post("/api/catalog/categories", headers=auth_headers, json={"name": "Nope"})
        assert response.status_code == 403

    def test_status_of_held_resource_cannot_change(self, client, admin_headers, auth_headers, resource):
        client.post("/api/loans/", headers=auth_headers, json={"resource_id": resource.resource_id})
        response = client.patch(
            f"/api/catalog/resources/{resource.resource_id}/status",
            headers=admin_headers, json={"status": "maintenance"},
        )
        assert response.status_code == 409
        assert response.json()["reason"] == "invalid_transition"


class TestLoanApi:
    """Full lifecycle through the HTTP surface"""

    def test_request_deliver_return(self, client, auth_headers, admin_headers, resource, other_student, headers_for):
        response = client.post("/api/loans/", headers=auth_headers, json={"resource_id": resource.resource_id})
        assert response.status_code == 201
        body = response.json()
        assert body["queued"] is False
        assert body["eligibility"] == "auto_approve"
        assert body["loan"]["status"] == LoanStatus.APPROVED.value
        loan_id = body["loan"]["id"]

        queued = client.post("/api/loans/", headers=headers_for(other_student), json={"resource_id": resource.resource_id})
        assert queued.status_code == 201
        assert queued.json()["queued"] is True
        assert queued.json()["queueEntry"]["position"] == 1

        response = client.post(f"/api/loans/{loan_id}/deliver", headers=admin_headers, json={})
        assert response.status_code == 200
        assert response.json()["status"] == LoanStatus.ACTIVE.value
        assert response.json()["resource"]["status"] == ResourceStatus.BORROWED.value

        response = client.post(f"/api/loans/{loan_id}/return", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == LoanStatus.RETURNED.value

        hours = client.get("/api/wellness/hours/me", headers=auth_headers).json()
        assert hours["totalAwarded"] >= 2.0
        assert hours["balance"] == hours["totalAwarded"]

        mine = client.get("/api/queue/mine", headers=headers_for(other_student)).json()
        assert mine[0]["status"] == "notified"

        claimed = client.post(f"/api/queue/entries/{mine[0]['id']}/enroll", headers=headers_for(other_student))
        assert claimed.status_code == 201
        assert claimed.json()["loan"]["userId"] == str(other_student.user_id)

    def test_invalid_transition_is_409(self, client, auth_headers, admin_headers, resource):
        loan_id = client.post("/api/loans/", headers=auth_headers, json={"resource_id": resource.resource_id}).json()["loan"]["id"]
        response = client.post(f"/api/loans/{loan_id}/return", headers=admin_headers)
        assert response.status_code == 409
        assert response.json()["reason"] == "invalid_transition"

    def test_second_request_for_same_resource_is_409(self, client, auth_headers, resource_factory, approval_category):
        resource = resource_factory(category=approval_category)
        first = client.post("/api/loans/", headers=auth_headers, json={"resource_id": resource.resource_id})
        assert first.status_code == 201
        again = client.post("/api/loans/", headers=auth_headers, json={"resource_id": resource.resource_id})
        assert again.status_code == 409
        assert again.json()["reason"] == "invalid_transition"

    def test_limit_is_409(self, client, auth_headers, resource_factory, low_risk_category, policy):
        for _ in range(policy.system_max_active_loans):
            r = resource_factory(category=low_risk_category)
            assert client.post("/api/loans/", headers=auth_headers, json={"resource_id": r.resource_id}).status_code == 201
        extra = resource_factory(category=low_risk_category)
        response = client.post("/api/loans/", headers=auth_headers, json={"resource_id": extra.resource_id})
        assert response.status_code == 409
        assert response.json()["reason"] == "loan_limit_exceeded"

    def test_admin_routes_require_admin(self, client, auth_headers, resource):
        loan_id = client.post("/api/loans/", headers=auth_headers, json={"resource_id": resource.resource_id}).json()["loan"]["id"]
        assert client.post(f"/api/loans/{loan_id}/deliver", headers=auth_headers, json={}).status_code == 403

    def test_loan_of_another_student_is_hidden(self, client, auth_headers, resource, other_student, headers_for):
        loan_id = client.post("/api/loans/", headers=auth_headers, json={"resource_id": resource.resource_id}).json()["loan"]["id"]
        assert client.get(f"/api/loans/{loan_id}", headers=headers_for(other_student)).status_code == 404

    def test_cancel_pending(self, client, auth_headers, resource_factory, approval_category):
        resource = resource_factory(category=approval_category)
        loan_id = client.post("/api/loans/", headers=auth_headers, json={"resource_id": resource.resource_id}).json()["loan"]["id"]
        assert client.delete(f"/api/loans/{loan_id}", headers=auth_headers).status_code == 204
        assert client.get("/api/loans/mine", headers=auth_headers).json() == []

    def test_rating_validation(self, client, auth_headers, resource):
        loan_id = client.post("/api/loans/", headers=auth_headers, json={"resource_id": resource.resource_id}).json()["loan"]["id"]
        response = client.post(f"/api/loans/{loan_id}/rating", headers=auth_headers, json={"rating": 9})
        assert response.status_code == 422


class TestQueueApi:

    def test_join_and_leave(self, client, auth_headers, resource):
        response = client.post("/api/queue/", headers=auth_headers, json={"resource_id": resource.resource_id})
        assert response.status_code == 201
        again = client.post("/api/queue/", headers=auth_headers, json={"resource_id": resource.resource_id})
        assert again.status_code == 409
        assert again.json()["reason"] == "already_queued"

        assert client.delete(f"/api/queue/{resource.resource_id}", headers=auth_headers).status_code == 204
        missing = client.delete(f"/api/queue/{resource.resource_id}", headers=auth_headers)
        assert missing.status_code == 404
        assert missing.json()["reason"] == "not_queued"

    def test_admin_notify_head(self, client, auth_headers, admin_headers, resource):
        client.post("/api/queue/", headers=auth_headers, json={"resource_id": resource.resource_id})
        response = client.post(f"/api/queue/resources/{resource.resource_id}/notify", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "notified"

        listed = client.get(f"/api/queue/resources/{resource.resource_id}", headers=admin_headers).json()
        assert [e["status"] for e in listed] == ["notified"]


class TestEventApi:

    def _create_event(self, client, admin_headers, **overrides):
        start = now_local() + timedelta(days=2)
        payload = {
            "title": "Mindfulness workshop",
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(hours=2)).isoformat(),
            "wellness_hours": 3,
            "max_participants": 1,
        }
        payload.update(overrides)
        response = client.post("/api/events/", headers=admin_headers, json=payload)
        assert response.status_code == 201
        return response.json()

    def test_enroll_waitlist_and_attendance(self, client, admin_headers, auth_headers, other_student, headers_for):
        event = self._create_event(client, admin_headers)

        first = client.post(f"/api/events/{event['id']}/enroll", headers=auth_headers)
        assert first.status_code == 201
        assert first.json()["waitlisted"] is False
        enrollment_id = first.json()["enrollment"]["id"]

        second = client.post(f"/api/events/{event['id']}/enroll", headers=headers_for(other_student))
        assert second.json()["waitlisted"] is True
        assert second.json()["waitlistEntry"]["position"] == 1

        again = client.post(f"/api/events/{event['id']}/enroll", headers=auth_headers)
        assert again.status_code == 409
        assert again.json()["reason"] == "already_enrolled"

        marked = client.put(f"/api/events/enrollments/{enrollment_id}/attendance", headers=admin_headers, json={"attended": True})
        assert marked.status_code == 200
        assert marked.json()["attended"] is True
        assert client.get("/api/wellness/hours/me", headers=auth_headers).json()["totalAwarded"] == 3.0

        client.put(f"/api/events/enrollments/{enrollment_id}/attendance", headers=admin_headers, json={"attended": False})
        assert client.get("/api/wellness/hours/me", headers=auth_headers).json()["totalAwarded"] == 0.0

    def test_event_detail_counts_enrollments(self, client, admin_headers, auth_headers):
        event = self._create_event(client, admin_headers, max_participants=None)
        client.post(f"/api/events/{event['id']}/enroll", headers=auth_headers)
        detail = client.get(f"/api/events/{event['id']}", headers=auth_headers).json()
        assert detail["enrollmentCount"] == 1


class TestSanctionApi:

    def test_critical_sanction_blocks_and_appeal_flow(self, client, admin_headers, auth_headers, student):
        response = client.post("/api/sanctions/", headers=admin_headers, json={
            "user_id": student.user_id, "severity": "critical", "reason": "Lost a projector",
        })
        assert response.status_code == 201
        sanction_id = response.json()["id"]
        assert client.get("/api/auth/me", headers=auth_headers).json()["isBlocked"] is True

        appeal = client.post(f"/api/sanctions/{sanction_id}/appeal", headers=auth_headers, json={"notes": "It was found"})
        assert appeal.json()["status"] == "appealed"

        decision = client.post(f"/api/sanctions/{sanction_id}/appeal/decision", headers=admin_headers, json={"approved": True})
        assert decision.json()["status"] == "voided"
        assert client.get("/api/auth/me", headers=auth_headers).json()["isBlocked"] is False

    def test_invalid_severity(self, client, admin_headers, student):
        response = client.post("/api/sanctions/", headers=admin_headers, json={
            "user_id": student.user_id, "severity": "extreme", "reason": "x",
        })
        assert response.status_code == 422


class TestNotificationApi:

    def test_list_and_mark_read(self, client, auth_headers, resource):
        client.post("/api/loans/", headers=auth_headers, json={"resource_id": resource.resource_id})
        notifications = client.get("/api/notifications/", headers=auth_headers).json()
        assert notifications[0]["type"] == "loan_approved"
        assert notifications[0]["isRead"] is False

        marked = client.post(f"/api/notifications/{notifications[0]['id']}/read", headers=auth_headers)
        assert marked.json()["isRead"] is True
        assert client.get("/api/notifications/", headers=auth_headers, params={"unread_only": True}).json() == []
