"""Tests for the owner-only /shares management endpoints."""


class TestCreateShare:
    """Tests for POST /shares."""

    async def test_create(self, client, owner, snippet, auth_headers):
        response = await client.post(
            "/shares",
            json={"snippet_id": snippet.id, "max_views": 10, "password": "open-sesame"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["share_url"] == f"http://testserver/share/{data['token']}"
        assert data["require_password"] is True
        assert data["remaining_views"] == 10
        assert data["is_active"] is True
        assert "password_hash" not in data
        assert "password" not in data

    async def test_share_url_honours_forwarded_headers(self, client, owner, snippet, auth_headers):
        headers = {**auth_headers(owner), "X-Forwarded-Proto": "https", "X-Forwarded-Host": "snip.example.com"}

        response = await client.post("/shares", json={"snippet_id": snippet.id}, headers=headers)

        assert response.json()["share_url"].startswith("https://snip.example.com/share/")

    async def test_requires_authentication(self, client, snippet):
        response = await client.post("/shares", json={"snippet_id": snippet.id})

        assert response.status_code == 401

    async def test_cannot_share_someone_elses_snippet(self, client, snippet, make_user, auth_headers):
        stranger = await make_user()

        response = await client.post("/shares", json={"snippet_id": snippet.id}, headers=auth_headers(stranger))

        assert response.status_code == 403

    async def test_unknown_snippet(self, client, owner, auth_headers):
        response = await client.post("/shares", json={"snippet_id": 424242}, headers=auth_headers(owner))

        assert response.status_code == 404

    async def test_invalid_payloads(self, client, owner, snippet, auth_headers):
        headers = auth_headers(owner)
        payloads = [
            {"snippet_id": snippet.id, "max_views": 0},
            {"snippet_id": snippet.id, "max_views": 10001},
            {"snippet_id": snippet.id, "expires_in_hours": 1, "expires_in_days": 1},
            {"snippet_id": snippet.id, "allowed_emails": ["not-an-email"]},
            {"snippet_id": snippet.id, "share_type": "delete"},
        ]
        for payload in payloads:
            response = await client.post("/shares", json=payload, headers=headers)
            assert response.status_code == 422, payload

    async def test_past_expiry(self, client, owner, snippet, auth_headers):
        response = await client.post(
            "/shares",
            json={"snippet_id": snippet.id, "expires_at": "2000-01-01T00:00:00Z"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 400


class TestReadShares:
    """Tests for GET /shares, /shares/statistics and /shares/{id}."""

    async def test_list(self, client, owner, snippet, make_share, auth_headers):
        for _ in range(3):
            await make_share(owner, snippet)

        response = await client.get("/shares", params={"page": 1, "limit": 2}, headers=auth_headers(owner))

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert len(data["shares"]) == 2

    async def test_statistics(self, client, owner, snippet, make_share, auth_headers):
        await make_share(owner, snippet, password="open-sesame")

        response = await client.get("/shares/statistics", headers=auth_headers(owner))

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["password_protected"] == 1
        assert data["by_type"]["view"] == 1

    async def test_get_own_and_foreign(self, client, owner, snippet, make_share, make_user, auth_headers):
        link = await make_share(owner, snippet)
        stranger = await make_user()

        own = await client.get(f"/shares/{link.id}", headers=auth_headers(owner))
        foreign = await client.get(f"/shares/{link.id}", headers=auth_headers(stranger))
        missing = await client.get("/shares/00000000-0000-0000-0000-000000000000", headers=auth_headers(owner))

        assert own.status_code == 200
        assert own.json()["id"] == link.id
        assert foreign.status_code == 403
        assert missing.status_code == 404


class TestMutateShares:
    """Tests for PATCH, revoke, regenerate-token and DELETE."""

    async def test_patch(self, client, owner, snippet, make_share, auth_headers):
        link = await make_share(owner, snippet, max_views=5, password="open-sesame")

        response = await client.patch(
            f"/shares/{link.id}",
            json={"max_views": None, "password": "", "share_type": "review", "download_enabled": False},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["max_views"] is None
        assert data["require_password"] is False
        assert data["share_type"] == "review"
        assert data["download_enabled"] is False

    async def test_patch_max_views_below_current(self, client, db_session, owner, snippet, make_share, auth_headers):
        link = await make_share(owner, snippet, max_views=5)
        link.current_views = 3
        await db_session.commit()

        response = await client.patch(f"/shares/{link.id}", json={"max_views": 2}, headers=auth_headers(owner))

        assert response.status_code == 400

    async def test_revoke_then_patch_conflicts(self, client, owner, snippet, make_share, auth_headers):
        link = await make_share(owner, snippet)
        headers = auth_headers(owner)

        revoked = await client.post(f"/shares/{link.id}/revoke", headers=headers)
        revoked_again = await client.post(f"/shares/{link.id}/revoke", headers=headers)
        patched = await client.patch(f"/shares/{link.id}", json={"max_views": 3}, headers=headers)
        rotated = await client.post(f"/shares/{link.id}/regenerate-token", headers=headers)

        assert revoked.status_code == 200
        assert revoked.json()["is_active"] is False
        assert revoked_again.status_code == 200
        assert revoked_again.json()["revoked_at"] == revoked.json()["revoked_at"]
        assert patched.status_code == 409
        assert rotated.status_code == 409

    async def test_regenerate_token(self, client, owner, snippet, make_share, auth_headers):
        link = await make_share(owner, snippet)
        old_token = link.token

        response = await client.post(f"/shares/{link.id}/regenerate-token", headers=auth_headers(owner))

        assert response.status_code == 200
        new_token = response.json()["token"]
        assert new_token != old_token
        assert (await client.get(f"/share/{old_token}")).status_code == 404
        assert (await client.get(f"/share/{new_token}")).status_code == 200

    async def test_delete(self, client, owner, snippet, make_share, make_user, auth_headers):
        link = await make_share(owner, snippet)
        stranger = await make_user()

        forbidden = await client.delete(f"/shares/{link.id}", headers=auth_headers(stranger))
        deleted = await client.delete(f"/shares/{link.id}", headers=auth_headers(owner))
        after = await client.get(f"/shares/{link.id}", headers=auth_headers(owner))

        assert forbidden.status_code == 403
        assert deleted.status_code == 204
        assert after.status_code == 404
        assert (await client.get(f"/share/{link.token}")).status_code == 404
