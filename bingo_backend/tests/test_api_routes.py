"""
Unit tests for the API endpoints.
Service functions are replaced with fakes; these tests cover request parsing,
auth, response shapes and the mapping of service errors to HTTP status codes.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from bingo_backend.api.main import app
from bingo_backend.database.db import get_db_session
from bingo_backend.services import (
    auth_service,
    user_service,
    team_service,
    bingo_service,
    gameplay_service,
    proof_service,
    resolution_service,
    storage_service,
)
from bingo_backend.services.errors import (
    AlreadyStartedError,
    CommentRequiredError,
    DuplicateCardError,
    EmptyCellNotCompletableError,
    ForbiddenError,
    NotFoundError,
    ProofAlreadyReviewedError,
    ResolutionsIncompleteError,
    SelfReviewError,
)


# ============================================================================
# Test Fixtures and Helpers
# ============================================================================

def make_client_with_auth(monkeypatch, user_id=1, username="alice"):
    """Helper to create authenticated test client."""
    def fake_verify_token(token):
        return {"user_id": user_id}

    async def fake_get_user_by_id(session, uid):
        return {
            "id": user_id,
            "username": username,
            "email": f"{username}@example.com",
            "created_at": "2026-01-01T00:00:00",
        }

    monkeypatch.setattr(auth_service, "verify_token", fake_verify_token, raising=True)
    monkeypatch.setattr(user_service, "get_user_by_id", fake_get_user_by_id, raising=True)

    return TestClient(app), {"Authorization": "Bearer dummy"}


def fake_raising(exc):
    async def _fake(*args, **kwargs):
        raise exc
    return _fake


def fake_returning(value):
    async def _fake(*args, **kwargs):
        return value
    return _fake


CELL = {
    "id": 10,
    "card_id": 3,
    "row_num": 1,
    "col_num": 1,
    "resolution_text": "Run a marathon together",
    "is_joker": True,
    "is_empty": False,
    "source_type": "team_resolution",
    "source_resolution_id": None,
    "state": "to_complete",
}

PROOF = {
    "id": 5,
    "cell_id": 10,
    "file_url": "uploads/proofs/10/1-abc.png",
    "file_type": "image/png",
    "status": "pending",
    "reviewed_by_user_id": None,
    "reviewed_by_username": None,
    "review_comment": None,
    "uploaded_at": "2026-01-02T00:00:00",
    "reviewed_at": None,
}


# ============================================================================
# Auth
# ============================================================================

class TestAuth:
    """Tests for authentication on protected endpoints."""

    def test_missing_token_rejected(self):
        client = TestClient(app)
        response = client.get("/api/teams")
        assert response.status_code in (401, 403)

    def test_invalid_token_rejected(self, monkeypatch):
        monkeypatch.setattr(auth_service, "verify_token", lambda token: None, raising=True)
        client = TestClient(app)
        response = client.get("/api/teams", headers={"Authorization": "Bearer bad"})
        assert response.status_code == 401

    def test_unknown_user_rejected(self, monkeypatch):
        async def fake_get_user_by_id(session, uid):
            return None

        monkeypatch.setattr(auth_service, "verify_token", lambda token: {"user_id": 99}, raising=True)
        monkeypatch.setattr(user_service, "get_user_by_id", fake_get_user_by_id, raising=True)
        client = TestClient(app)
        response = client.get("/api/teams", headers={"Authorization": "Bearer dummy"})
        assert response.status_code == 401


# ============================================================================
# Teams
# ============================================================================

class TestTeamEndpoints:
    """Tests for team formation endpoints."""

    def test_create_team(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        captured = {}

        async def fake_create_team(session, name, leader_id):
            captured.update(name=name, leader_id=leader_id)
            return {
                "id": 1,
                "name": name,
                "leader_user_id": leader_id,
                "team_resolution_text": None,
                "status": "forming",
                "created_at": "2026-01-01T00:00:00",
            }

        monkeypatch.setattr(team_service, "create_team", fake_create_team, raising=True)

        response = client.post("/api/teams", json={"name": "Goal Getters"}, headers=headers)

        assert response.status_code == 201
        assert response.json()["status"] == "forming"
        assert captured == {"name": "Goal Getters", "leader_id": 1}

    def test_team_details_forbidden(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            team_service, "get_team_details", fake_raising(ForbiddenError("Not a team member")), raising=True
        )

        response = client.get("/api/teams/1", headers=headers)

        assert response.status_code == 403
        assert response.json()["detail"] == "Not a team member"

    def test_join_bad_invitation(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            team_service, "join_team", fake_raising(NotFoundError("Invalid or expired invitation")), raising=True
        )

        response = client.post("/api/teams/join", json={"invite_code": "abc"}, headers=headers)

        assert response.status_code == 404

    def test_set_team_resolution_after_start(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            team_service, "set_team_resolution", fake_raising(AlreadyStartedError()), raising=True
        )

        response = client.put(
            "/api/teams/1/resolution", json={"resolution_text": "Climb"}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Game already started"

    @pytest.mark.parametrize("created,expected_status", [(True, 201), (False, 200)])
    def test_provided_resolution_upsert_status(self, monkeypatch, created, expected_status):
        """A new resolution answers 201; overwriting an existing one answers 200."""
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_upsert(session, team_id, from_user_id, to_user_id, text):
            return (
                {
                    "id": 4,
                    "team_id": team_id,
                    "from_user_id": from_user_id,
                    "to_user_id": to_user_id,
                    "text": text,
                },
                created,
            )

        monkeypatch.setattr(team_service, "upsert_provided_resolution", fake_upsert, raising=True)

        response = client.post(
            "/api/teams/1/provided-resolutions",
            json={"to_user_id": 2, "text": "Learn Spanish"},
            headers=headers,
        )

        assert response.status_code == expected_status
        assert response.json()["text"] == "Learn Spanish"
        assert response.json()["from_user_id"] == 1

    def test_provided_resolution_blank_text_rejected(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        response = client.post(
            "/api/teams/1/provided-resolutions",
            json={"to_user_id": 2, "text": ""},
            headers=headers,
        )

        assert response.status_code == 422


# ============================================================================
# Bingo game
# ============================================================================

class TestGameEndpoints:
    """Tests for starting the game and reading cards."""

    def test_start_success(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            bingo_service,
            "start_game",
            fake_returning({"team_id": 1, "status": "started", "cards_generated": 3}),
            raising=True,
        )

        response = client.post("/api/teams/1/start-bingo", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"team_id": 1, "status": "started", "cards_generated": 3}

    def test_start_incomplete_includes_details(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            bingo_service, "start_game", fake_raising(ResolutionsIncompleteError(7, 1, 2)), raising=True
        )

        response = client.post("/api/teams/1/start-bingo", headers=headers)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["details"] == "Member 7 has only created 1 of 2 required resolutions"
        assert "All team members" in detail["error"]

    def test_start_forbidden_for_non_leader(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            bingo_service,
            "start_game",
            fake_raising(ForbiddenError("Only team leader can start the game")),
            raising=True,
        )

        response = client.post("/api/teams/1/start-bingo", headers=headers)

        assert response.status_code == 403

    def test_start_duplicate_card_conflict(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            bingo_service, "start_game", fake_raising(DuplicateCardError(1, 2)), raising=True
        )

        response = client.post("/api/teams/1/start-bingo", headers=headers)

        assert response.status_code == 409

    def test_start_unexpected_error(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            bingo_service, "start_game", fake_raising(RuntimeError("db down")), raising=True
        )

        response = client.post("/api/teams/1/start-bingo", headers=headers)

        assert response.status_code == 500
        assert response.json()["detail"] == "Error starting bingo game"

    def test_my_card(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_require_member(session, team_id, user_id):
            return None

        monkeypatch.setattr(team_service, "require_team_member", fake_require_member, raising=True)
        monkeypatch.setattr(
            bingo_service,
            "get_card",
            fake_returning({"id": 3, "team_id": 1, "user_id": 1, "grid_size": 1, "cells": [CELL]}),
            raising=True,
        )

        response = client.get("/api/teams/1/my-card", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["grid_size"] == 1
        assert data["cells"][0]["is_joker"] is True

    def test_my_card_before_start(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        async def fake_require_member(session, team_id, user_id):
            return None

        monkeypatch.setattr(team_service, "require_team_member", fake_require_member, raising=True)
        monkeypatch.setattr(
            bingo_service,
            "get_card",
            fake_raising(NotFoundError("Bingo card not found. Game may not have started yet.")),
            raising=True,
        )

        response = client.get("/api/teams/1/my-card", headers=headers)

        assert response.status_code == 404

    def test_team_cards(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        summary = {
            "id": 3,
            "team_id": 1,
            "user_id": 2,
            "username": "bob",
            "grid_size": 5,
            "completed_cells": 4,
            "playable_cells": 12,
        }
        monkeypatch.setattr(bingo_service, "get_team_cards", fake_returning([summary]), raising=True)

        response = client.get("/api/teams/1/cards", headers=headers)

        assert response.status_code == 200
        assert response.json() == [summary]

    def test_teammate_card_forbidden(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            bingo_service,
            "get_card_for_viewer",
            fake_raising(ForbiddenError("Not a team member")),
            raising=True,
        )

        response = client.get("/api/teams/1/cards/2", headers=headers)

        assert response.status_code == 403


# ============================================================================
# Cells
# ============================================================================

class TestCellEndpoints:
    """Tests for cell state updates."""

    def test_update_state(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        captured = {}

        async def fake_set_cell_state(session, cell_id, requester_id, new_state):
            captured.update(cell_id=cell_id, requester_id=requester_id, new_state=new_state)
            return {"id": cell_id, "card_id": 3, "state": new_state}

        monkeypatch.setattr(gameplay_service, "set_cell_state", fake_set_cell_state, raising=True)

        response = client.put("/api/cells/10/state", json={"state": "completed"}, headers=headers)

        assert response.status_code == 200
        assert response.json() == {"id": 10, "card_id": 3, "state": "completed"}
        assert captured == {"cell_id": 10, "requester_id": 1, "new_state": "completed"}

    def test_empty_cell_rejected(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            gameplay_service, "set_cell_state", fake_raising(EmptyCellNotCompletableError()), raising=True
        )

        response = client.put("/api/cells/10/state", json={"state": "completed"}, headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Empty cells cannot be marked as completed"

    def test_other_users_cell_forbidden(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            gameplay_service,
            "set_cell_state",
            fake_raising(ForbiddenError("You can only update your own card")),
            raising=True,
        )

        response = client.put("/api/cells/10/state", json={"state": "completed"}, headers=headers)

        assert response.status_code == 403


# ============================================================================
# Proofs
# ============================================================================

class TestProofEndpoints:
    """Tests for proof upload and review."""

    def test_upload_proof(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        captured = {}

        async def fake_submit(session, cell_id, requester_id, file_bytes, content_type, filename):
            captured.update(
                cell_id=cell_id, file_bytes=file_bytes, content_type=content_type, filename=filename
            )
            return PROOF

        monkeypatch.setattr(proof_service, "submit_proof", fake_submit, raising=True)

        response = client.post(
            "/api/cells/10/proofs",
            files={"proof": ("run.png", b"png-bytes", "image/png")},
            headers=headers,
        )

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        assert captured == {
            "cell_id": 10,
            "file_bytes": b"png-bytes",
            "content_type": "image/png",
            "filename": "run.png",
        }

    def test_upload_removes_file_when_commit_fails(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        deleted = []
        session = MagicMock()
        session.commit = AsyncMock(side_effect=RuntimeError("connection lost"))

        async def override_get_db_session():
            yield session

        monkeypatch.setattr(proof_service, "submit_proof", fake_returning(PROOF), raising=True)
        monkeypatch.setattr(storage_service, "delete_file", deleted.append, raising=True)
        app.dependency_overrides[get_db_session] = override_get_db_session
        try:
            response = client.post(
                "/api/cells/10/proofs",
                files={"proof": ("run.png", b"png-bytes", "image/png")},
                headers=headers,
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert deleted == [PROOF["file_url"]]

    def test_upload_requires_file(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)

        response = client.post("/api/cells/10/proofs", headers=headers)

        assert response.status_code == 422

    def test_list_proofs(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(proof_service, "get_cell_proofs", fake_returning([PROOF]), raising=True)

        response = client.get("/api/cells/10/proofs", headers=headers)

        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [5]

    def test_approve(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_id=2, username="bob")
        approved = {**PROOF, "status": "approved", "reviewed_by_user_id": 2}
        monkeypatch.setattr(proof_service, "approve_proof", fake_returning(approved), raising=True)

        response = client.put("/api/proofs/5/approve", headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "approved"

    def test_self_review_rejected(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(proof_service, "approve_proof", fake_raising(SelfReviewError()), raising=True)

        response = client.put("/api/proofs/5/approve", headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot review your own proof"

    def test_already_reviewed_conflict(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_id=2, username="bob")
        monkeypatch.setattr(
            proof_service, "approve_proof", fake_raising(ProofAlreadyReviewedError("approved")), raising=True
        )

        response = client.put("/api/proofs/5/approve", headers=headers)

        assert response.status_code == 409

    def test_decline_passes_comment(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_id=2, username="bob")
        captured = {}

        async def fake_decline(session, proof_id, requester_id, comment):
            captured.update(proof_id=proof_id, requester_id=requester_id, comment=comment)
            return {**PROOF, "status": "declined", "review_comment": comment}

        monkeypatch.setattr(proof_service, "decline_proof", fake_decline, raising=True)

        response = client.put("/api/proofs/5/decline", json={"comment": "Blurry"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["review_comment"] == "Blurry"
        assert captured == {"proof_id": 5, "requester_id": 2, "comment": "Blurry"}

    def test_decline_without_body(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_id=2, username="bob")
        captured = {}

        async def fake_decline(session, proof_id, requester_id, comment):
            captured["comment"] = comment
            raise CommentRequiredError()

        monkeypatch.setattr(proof_service, "decline_proof", fake_decline, raising=True)

        response = client.put("/api/proofs/5/decline", headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Comment is required when declining proof"
        assert captured == {"comment": None}


# ============================================================================
# Personal resolutions
# ============================================================================

class TestPersonalResolutionEndpoints:
    """Tests for personal resolution CRUD endpoints."""

    def test_create(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            resolution_service,
            "create_resolution",
            fake_returning({"id": 1, "text": "Read more", "created_at": None, "updated_at": None}),
            raising=True,
        )

        response = client.post("/api/resolutions", json={"text": "Read more"}, headers=headers)

        assert response.status_code == 201
        assert response.json()["text"] == "Read more"

    def test_other_users_resolution_not_found(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            resolution_service,
            "update_resolution",
            fake_raising(NotFoundError("Resolution not found")),
            raising=True,
        )

        response = client.put("/api/resolutions/9", json={"text": "Mine now"}, headers=headers)

        assert response.status_code == 404

    def test_delete(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(resolution_service, "delete_resolution", fake_returning(None), raising=True)

        response = client.delete("/api/resolutions/9", headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
