# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Integration tests for the field station HTTP API.
"""

from datetime import date, timedelta

from pdao.middleware.error_handler import NetworkFailureException
from pdao.models.enums import ClaimOutcome
from pdao.services.backend import ClaimResponse


class TestScanSessionRoutes:
    """Test the scanner endpoints."""

    def test_full_claim_flow(self, client, mock_backend, sample_members):
        """Open, decode, read the outcome, close."""
        mock_backend.list_benefit_participants.return_value = [{"user_id": 1}]
        mock_backend.scan_member.return_value = sample_members[0]
        mock_backend.claim_benefit.return_value = ClaimResponse(ClaimOutcome.CREATED, "ok", {"id": 3})

        response = client.post('/api/scan-sessions', json={"target_type": "benefit", "target_id": "10"})
        assert response.status_code == 201
        assert response.json["state"] == "idle"
        assert "decode" in response.json["_links"]

        response = client.post('/api/scan-sessions/current/decode', json={"payload": "PWD-0001"})
        assert response.status_code == 200
        assert response.json["accepted"] is True
        assert response.json["state"] == "success"
        assert response.json["member"]["full_name"] == "Ana Reyes"
        assert "decode" not in response.json["_links"]
        assert "scan-again" in response.json["_links"]

        response = client.post('/api/scan-sessions/current/decode', json={"payload": "PWD-0001"})
        assert response.json["accepted"] is False
        assert mock_backend.claim_benefit.call_count == 1

        response = client.delete('/api/scan-sessions/current')
        assert response.status_code == 204

        response = client.get('/api/scan-sessions/current')
        assert response.status_code == 404

    def test_conflict_outcome(self, client, mock_backend, sample_members):
        """Already redeemed is reported in the session view."""
        mock_backend.scan_member.return_value = sample_members[1]
        mock_backend.record_attendance.return_value = ClaimResponse(
            ClaimOutcome.ALREADY_RECORDED, "Attendance already exists for this user and event."
        )

        client.post('/api/scan-sessions', json={"target_type": "event", "target_id": "7"})
        response = client.post('/api/scan-sessions/current/decode', json={"payload": "PWD-0002"})

        assert response.json["state"] == "conflict"
        assert response.json["message"].startswith("Already redeemed")

    def test_retry_and_scan_again(self, client, mock_backend, sample_members):
        """Retry resubmits; scan-again re-enables decoding."""
        mock_backend.scan_member.return_value = sample_members[1]
        mock_backend.record_attendance.side_effect = [
            NetworkFailureException("Network unavailable."),
            ClaimResponse(ClaimOutcome.CREATED, "ok", {"id": 1}),
        ]

        client.post('/api/scan-sessions', json={"target_type": "event", "target_id": "7"})
        response = client.post('/api/scan-sessions/current/decode', json={"payload": "PWD-0002"})
        assert response.json["state"] == "claim_error"
        assert "retry" in response.json["_links"]

        response = client.post('/api/scan-sessions/current/retry')
        assert response.json["state"] == "success"

        response = client.post('/api/scan-sessions/current/retry')
        assert response.status_code == 409

        response = client.post('/api/scan-sessions/current/scan-again')
        assert response.json["state"] == "idle"
        assert response.json["scanning_enabled"] is True

    def test_confirm_mode(self, client, mock_backend, sample_members):
        """With auto-claim off the operator confirms."""
        mock_backend.scan_member.return_value = sample_members[1]
        mock_backend.record_attendance.return_value = ClaimResponse(ClaimOutcome.CREATED, "ok", None)

        client.post('/api/scan-sessions', json={"target_type": "event", "target_id": "7", "auto_claim": False})
        response = client.post('/api/scan-sessions/current/decode', json={"payload": "PWD-0002"})
        assert response.json["state"] == "eligible"
        assert "confirm" in response.json["_links"]

        response = client.post('/api/scan-sessions/current/confirm')
        assert response.json["state"] == "success"

    def test_invalid_target_type(self, client):
        """Unknown target types are rejected with HAL validation errors."""
        response = client.post('/api/scan-sessions', json={"target_type": "raffle", "target_id": "1"})

        assert response.status_code == 400
        assert response.json["type"].endswith("/validation-error")
        assert response.json["errors"]


class TestBenefitRoutes:
    """Test snapshot endpoints."""

    def test_create_benefit(self, client, mock_backend):
        """A valid snapshot is created with its budget."""
        mock_backend.create_benefit.return_value = {"id": 42}

        response = client.post('/api/benefits', json={
            "name": "Cash Aid",
            "type": "cash",
            "per_participant_amount": 1000,
            "selected_members": ["1", "2"],
        })

        assert response.status_code == 201
        assert response.json["id"] == 42
        assert response.json["budget_amount"] == 2000.0
        assert response.json["locked_member_count"] == 2
        assert "add-participants" in response.json["_links"]

    def test_create_benefit_without_members(self, client, mock_backend):
        """An empty roster never reaches the backend."""
        response = client.post('/api/benefits', json={
            "name": "Cash Aid", "type": "cash", "per_participant_amount": 1000, "selected_members": [],
        })

        assert response.status_code == 400
        assert {"message": "Select at least one member"} in response.json["errors"]
        mock_backend.create_benefit.assert_not_called()

    def test_remove_claimed_participant(self, client, mock_backend):
        """Claimants cannot be removed."""
        mock_backend.list_benefit_participants.return_value = [{"user_id": 1}]
        mock_backend.list_benefit_claims.return_value = [{"user_id": 1}]

        response = client.delete('/api/benefits/10/participants', json={"user_ids": ["1"]})

        assert response.status_code == 400
        mock_backend.remove_participants.assert_not_called()

    def test_add_participants(self, client, mock_backend):
        """New participants are passed to the backend."""
        mock_backend.add_participants.return_value = {"message": "ok"}

        response = client.post('/api/benefits/10/participants', json={"user_ids": ["4"]})

        assert response.status_code == 200
        assert response.json["added"] == ["4"]
        mock_backend.add_participants.assert_called_once_with("10", ["4"])

    def test_new_benefit_is_listed_right_away(self, client, mock_backend):
        """Creating a benefit makes the next list request fetch again."""
        mock_backend.list_benefits.return_value = [{"id": 1, "name": "Rice", "type": "relief"}]
        assert client.get('/api/benefits').json["total"] == 1

        mock_backend.create_benefit.return_value = {"id": 2}
        response = client.post('/api/benefits', json={
            "name": "Cash Aid", "type": "cash", "per_participant_amount": 500, "selected_members": ["1"],
        })
        assert response.status_code == 201

        mock_backend.list_benefits.return_value = [
            {"id": 1, "name": "Rice", "type": "relief"},
            {"id": 2, "name": "Cash Aid", "type": "cash"},
        ]
        response = client.get('/api/benefits')

        assert response.json["total"] == 2
        assert response.json["stale"] is False
        assert mock_backend.list_benefits.call_count == 2

    def test_claim_status(self, client, mock_backend):
        """A member's claim status is read live from the backend."""
        mock_backend.check_user_claim.return_value = True

        response = client.get('/api/benefits/10/claims/4')

        assert response.status_code == 200
        assert response.json["claimed"] is True
        assert response.json["_links"]["self"]["href"] == "http://station.test/api/benefits/10/claims/4"
        mock_backend.check_user_claim.assert_called_once_with("10", "4")

    def test_benefit_links_offer_claim_status(self, client, mock_backend):
        """Benefit resources link to the templated claim status."""
        mock_backend.add_participants.return_value = {"message": "ok"}

        response = client.post('/api/benefits/10/participants', json={"user_ids": ["4"]})

        link = response.json["_links"]["claim-status"]
        assert link["href"] == "http://station.test/api/benefits/10/claims/{user_id}"
        assert link["templated"] is True

    def test_candidates(self, client, mock_backend, sample_members):
        """Candidates come ranked by priority."""
        mock_backend.list_members.return_value = sample_members

        response = client.get('/api/benefits/candidates')

        assert response.status_code == 200
        items = response.json["_embedded"]["items"]
        assert [item["id"] for item in items] == ["1", "2", "4"]
        assert items[0]["priority"]["percentage_score"] == 78


class TestListRoutes:
    """Test cached list endpoints."""

    def test_members_are_cached(self, client, mock_backend, sample_members):
        """A second request inside the interval is served from cache."""
        mock_backend.list_members.return_value = sample_members

        first = client.get('/api/members')
        second = client.get('/api/members')

        assert first.status_code == 200
        assert second.json["total"] == 4
        assert second.json["stale"] is False
        assert mock_backend.list_members.call_count == 1

    def test_refresh_bypasses_cache(self, client, mock_backend, sample_members):
        """refresh=true always fetches."""
        mock_backend.list_members.return_value = sample_members

        client.get('/api/members')
        client.get('/api/members?refresh=true')

        assert mock_backend.list_members.call_count == 2

    def test_stale_data_served_on_failure(self, client, mock_backend, sample_members):
        """A failed refresh keeps the last good list."""
        mock_backend.list_members.return_value = sample_members
        client.get('/api/members')
        mock_backend.list_members.side_effect = NetworkFailureException("Network unavailable.")

        response = client.get('/api/members?refresh=true')

        assert response.status_code == 200
        assert response.json["total"] == 4
        assert response.json["stale"] is True
        assert response.json["last_error"] == "Network unavailable."

    def test_no_data_is_network_failure(self, client, mock_backend):
        """Without any data the failure is surfaced."""
        mock_backend.list_events.side_effect = NetworkFailureException("Network unavailable.")

        response = client.get('/api/events')

        assert response.status_code == 503
        assert response.json["type"].endswith("/network-failure")

    def test_events_have_status(self, client, mock_backend):
        """Status is derived from the event date."""
        today = date.today()
        mock_backend.list_events.return_value = [
            {"id": 1, "title": "Past", "event_date": (today - timedelta(days=1)).isoformat()},
            {"id": 2, "title": "Today", "event_date": today.isoformat(), "target_barangay": "Poblacion"},
        ]

        response = client.get('/api/events')

        statuses = {item["id"]: item["status"] for item in response.json["_embedded"]["items"]}
        assert statuses == {"1": "completed", "2": "ongoing"}
        assert response.json["barangay_counts"] == {"Unspecified": 1, "Poblacion": 1}

    def test_bad_event_sort(self, client, mock_backend):
        """Unsupported sort options are validation errors."""
        mock_backend.list_events.return_value = []

        response = client.get('/api/events?sort=alphabetical')

        assert response.status_code == 400

    def test_event_attendances(self, client, mock_backend):
        """Attendance lists are per event."""
        mock_backend.list_event_attendances.return_value = [{"user_id": 1, "status": "present"}]

        response = client.get('/api/events/7/attendances')

        assert response.json["total"] == 1
        assert response.json["_embedded"]["items"][0]["user_id"] == "1"
        assert response.json["_embedded"]["items"][0]["status"] == "present"
        mock_backend.list_event_attendances.assert_called_once_with("7")

    def test_attendance_check(self, client, mock_backend):
        """Members missing from the backend answer count as absent."""
        mock_backend.bulk_check_attendance.return_value = {"1": True}

        response = client.post('/api/events/7/attendances/check', json={"user_ids": ["1", "2"]})

        assert response.status_code == 200
        assert response.json["present"] == {"1": True, "2": False}
        mock_backend.bulk_check_attendance.assert_called_once_with("7", ["1", "2"])

    def test_benefit_records(self, client, mock_backend):
        """Claim records are normalized; records without a member are dropped."""
        mock_backend.list_benefit_records.return_value = [
            {"id": 5, "benefit_id": 10, "user_id": 1, "amount_received": "1500.00"},
            {"id": 6, "benefit_id": 10},
        ]

        response = client.get('/api/benefit-records')

        assert response.json["total"] == 1
        assert response.json["_embedded"]["items"][0]["amount"] == 1500.0


class TestHealth:
    """Test the health endpoint."""

    def test_healthy(self, client):
        """A reachable backend is healthy."""
        response = client.get('/api/healthz')

        assert response.status_code == 200
        assert response.json["status"] == "healthy"
        assert response.json["checks"]["cache"]["available"] is True

    def test_degraded(self, client, mock_backend):
        """An unreachable backend degrades the station."""
        mock_backend.ping.return_value = False

        response = client.get('/api/healthz')

        assert response.status_code == 503
        assert response.json["status"] == "degraded"


class TestErrorHandling:
    """Test HAL problem responses."""

    def test_unknown_route(self, client):
        """Unknown paths answer with a problem document."""
        response = client.get('/api/does-not-exist')

        assert response.status_code == 404
        assert response.json["type"].endswith("/resource-not-found")

    def test_unexpected_error(self, client, mock_backend):
        """Programming errors become 500 problems with the class name outside production."""
        mock_backend.ping.side_effect = RuntimeError("boom")

        response = client.get('/api/healthz')

        assert response.status_code == 500
        assert response.json["detail"] == "RuntimeError: boom"

    def test_backend_auth_failure(self, client, mock_backend):
        """An expired station token is reported as such."""
        from pdao.middleware.error_handler import AuthenticationException

        mock_backend.get_current_user.side_effect = AuthenticationException("Station session expired. Sign in again.")

        response = client.get('/api/me')

        assert response.status_code == 401
        assert response.json["detail"] == "Station session expired. Sign in again."


class TestAppFactory:
    """Test application assembly."""

    def test_route_tags_are_documented(self, app):
        """Tags come from the routes and blueprints that declare them."""
        names = {tag["name"] for tag in app.api_doc["tags"]}

        assert {"Health", "Scanner", "Benefits", "Lists"} <= names
