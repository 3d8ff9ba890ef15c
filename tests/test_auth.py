"""
Tests for the bearer token gate
===============================

1. Missing, malformed and near-miss tokens are rejected with 401
2. The exact configured token is accepted
3. With no secret configured every protected route is closed
"""
import pytest
from fastapi.testclient import TestClient

from api.config import Settings
from server.auth import verify_bearer_token
from server.exceptions import UnauthorizedError
from server.main import create_app

from conftest import API_SECRET


class TestVerifyBearerToken:

    def test_exact_token_passes(self):
        verify_bearer_token(f"Bearer {API_SECRET}", API_SECRET)

    @pytest.mark.parametrize(
        "header",
        [
            None,
            "",
            API_SECRET,
            f"Basic {API_SECRET}",
            f"bearer {API_SECRET}",
            "Bearer ",
            f"Bearer {API_SECRET[:-1]}",
            f"Bearer {API_SECRET}x",
            f"Bearer {API_SECRET[:-1]}X",
            f"Bearer  {API_SECRET}",
            f"Bearer {API_SECRET} ",
            f"Bearer    {API_SECRET}   ",
        ],
    )
    def test_rejected_headers(self, header):
        with pytest.raises(UnauthorizedError):
            verify_bearer_token(header, API_SECRET)

    def test_no_secret_rejects_everything(self):
        with pytest.raises(UnauthorizedError):
            verify_bearer_token("Bearer anything", None)
        with pytest.raises(UnauthorizedError):
            verify_bearer_token("Bearer ", "")


class TestProtectedRoutes:

    def test_no_header_is_401(self, client):
        response = client.get("/public/test/list")
        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_last_character_differs_is_401(self, client):
        wrong = API_SECRET[:-1] + ("x" if API_SECRET[-1] != "x" else "y")
        response = client.get("/public/test/list", headers={"Authorization": f"Bearer {wrong}"})
        assert response.status_code == 401

    def test_wrong_scheme_is_401(self, client):
        response = client.get("/public/test/list", headers={"Authorization": f"Token {API_SECRET}"})
        assert response.status_code == 401

    def test_padded_token_is_401(self, client):
        response = client.get("/public/test/list", headers={"Authorization": f"Bearer    {API_SECRET}   "})
        assert response.status_code == 401

    def test_exact_token_succeeds(self, client, auth_headers):
        response = client.get("/public/test/list", headers=auth_headers)
        assert response.status_code == 200

    def test_unconfigured_secret_closes_routes(self, tmp_path):
        settings = Settings(
            database_path=tmp_path / "nosecret.db",
            upload_path=tmp_path / "nosecret-uploads",
        )
        with TestClient(create_app(settings)) as c:
            response = c.get("/public/test/list", headers={"Authorization": "Bearer "})
            assert response.status_code == 401
            response = c.post("/public/test/run", json={}, headers={"Authorization": "Bearer x"})
            assert response.status_code == 401

    def test_unprotected_routes_need_no_token(self, client):
        assert client.post("/test/new", json={"name": "run1", "params": "{}"}).status_code == 200
        assert client.get("/api/health").json() == {"status": "healthy"}
