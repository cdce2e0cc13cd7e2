"""
HTTP API tests: routing, dependencies and error bodies
"""
import pytest
from httpx import AsyncClient, ASGITransport

from helporbit.main import app
from helporbit.api.v1.endpoints import invitations as invitation_endpoints

from conftest import FakeEmailService, auth_headers_for


API = "/api/v1"


def api_client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def sent_emails(monkeypatch):
    fake = FakeEmailService()
    monkeypatch.setattr(invitation_endpoints.invitation_service, "email_service", fake)
    return fake


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        async with api_client() as ac:
            response = await ac.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestOrganizationApi:

    @pytest.mark.asyncio
    async def test_create_and_list(self, client, owner_user):
        headers = auth_headers_for(owner_user)

        async with api_client() as ac:
            created = await ac.post(
                f"{API}/organizations",
                json={"name": "Orbit Labs", "slug": "Orbit-Labs", "description": "Support team"},
                headers=headers,
            )
            listed = await ac.get(f"{API}/organizations", headers=headers)

        assert created.status_code == 201
        data = created.json()
        assert data["slug"] == "orbit-labs"
        assert data["metadata"] == {"description": "Support team"}

        assert listed.status_code == 200
        assert [(org["slug"], org["role"]) for org in listed.json()] == [("orbit-labs", "owner")]

    @pytest.mark.asyncio
    async def test_duplicate_slug(self, client, owner_user, admin_user):
        owner_headers = auth_headers_for(owner_user)
        admin_headers = auth_headers_for(admin_user)

        async with api_client() as ac:
            await ac.post(f"{API}/organizations", json={"name": "Acme", "slug": "acme"}, headers=owner_headers)
            response = await ac.post(
                f"{API}/organizations", json={"name": "Acme Two", "slug": "ACME"}, headers=admin_headers
            )

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "slug-taken"

    @pytest.mark.asyncio
    async def test_invalid_slug_rejected(self, client, owner_user):
        async with api_client() as ac:
            response = await ac.post(
                f"{API}/organizations",
                json={"name": "Acme", "slug": "not a slug!"},
                headers=auth_headers_for(owner_user),
            )

        assert response.status_code == 422
        assert "slug" in response.json()["errors"]

    @pytest.mark.asyncio
    async def test_public_info_without_login(self, client, organization):
        async with api_client() as ac:
            response = await ac.get(f"{API}/organizations/info/ACME")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Acme Inc"
        assert data["domain"] == "acme.com"
        assert data["is_public"] is True
        assert data["primary_color"] == "#6b7280"

    @pytest.mark.asyncio
    async def test_unknown_slug_info(self, client):
        async with api_client() as ac:
            response = await ac.get(f"{API}/organizations/info/missing")

        assert response.status_code == 404
        assert response.json()["code"] == "not-found"

    @pytest.mark.asyncio
    async def test_search(self, client, organization):
        async with api_client() as ac:
            response = await ac.get(f"{API}/organizations/search", params={"q": "acm"})

        assert response.status_code == 200
        assert [org["slug"] for org in response.json()] == ["acme"]

    @pytest.mark.asyncio
    async def test_non_member_forbidden(self, client, owner, organization, outsider_user):
        async with api_client() as ac:
            response = await ac.get(f"{API}/organizations/{organization.id}", headers=auth_headers_for(outsider_user))

        assert response.status_code == 403
        body = response.json()
        assert body == {
            "success": False,
            "error": "You are not a member of this organization",
            "code": "permission-denied",
        }

    @pytest.mark.asyncio
    async def test_delete_requires_owner(self, client, owner, admin, organization, owner_user, admin_user):
        organization_id = organization.id
        owner_headers = auth_headers_for(owner_user)
        admin_headers = auth_headers_for(admin_user)

        async with api_client() as ac:
            forbidden = await ac.delete(f"{API}/organizations/{organization_id}", headers=admin_headers)
            deleted = await ac.delete(f"{API}/organizations/{organization_id}", headers=owner_headers)
            gone = await ac.get(f"{API}/organizations/{organization_id}", headers=owner_headers)

        assert forbidden.status_code == 403
        assert deleted.status_code == 200
        assert gone.status_code == 403

    @pytest.mark.asyncio
    async def test_activate_organization(self, client, member, organization, member_user):
        async with api_client() as ac:
            response = await ac.post(
                f"{API}/organizations/{organization.id}/activate", headers=auth_headers_for(member_user)
            )

        assert response.status_code == 200
        assert response.json()["active_organization_id"] == organization.id

    @pytest.mark.asyncio
    async def test_sole_owner_cannot_leave(self, client, owner, organization, owner_user):
        async with api_client() as ac:
            response = await ac.post(
                f"{API}/organizations/{organization.id}/leave", headers=auth_headers_for(owner_user)
            )

        assert response.status_code == 409
        assert response.json()["code"] == "last-owner"

    @pytest.mark.asyncio
    async def test_logo_kept_unless_cleared(self, client, owner, organization, owner_user):
        url = f"{API}/organizations/{organization.id}"
        headers = auth_headers_for(owner_user)

        async with api_client() as ac:
            with_logo = await ac.patch(url, json={"logo": "https://cdn.example.com/acme.png"}, headers=headers)
            renamed = await ac.patch(url, json={"name": "Acme Corp"}, headers=headers)
            cleared = await ac.patch(url, json={"logo": None}, headers=headers)

        assert with_logo.json()["logo"] == "https://cdn.example.com/acme.png"
        assert renamed.json()["logo"] == "https://cdn.example.com/acme.png"
        assert cleared.status_code == 200
        assert cleared.json()["logo"] is None
        assert cleared.json()["name"] == "Acme Corp"

    @pytest.mark.asyncio
    async def test_primary_color_must_be_hex(self, client, owner, organization, owner_user):
        headers = auth_headers_for(owner_user)

        async with api_client() as ac:
            created = await ac.post(
                f"{API}/organizations",
                json={"name": "Styled", "slug": "styled", "metadata": {"primaryColor": "red;}</style><script>"}},
                headers=headers,
            )
            updated = await ac.patch(
                f"{API}/organizations/{organization.id}",
                json={"metadata": {"primaryColor": "url(https://evil.example/x)"}},
                headers=headers,
            )
            accepted = await ac.patch(
                f"{API}/organizations/{organization.id}",
                json={"metadata": {"primaryColor": "#DC2626"}},
                headers=headers,
            )

        assert created.status_code == 422
        assert "metadata" in created.json()["errors"]
        assert updated.status_code == 422
        assert accepted.status_code == 200
        assert accepted.json()["metadata"]["primaryColor"] == "#DC2626"


class TestMemberApi:

    @pytest.mark.asyncio
    async def test_active_member_permissions(self, client, owner, member, organization, member_user):
        async with api_client() as ac:
            response = await ac.get(
                f"{API}/organizations/{organization.id}/members/me", headers=auth_headers_for(member_user)
            )

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "member"
        assert data["user"]["email"] == "member@example.com"
        assert data["permissions"]["ticket"] == ["create", "read", "update", "comment"]
        assert "invitation" not in data["permissions"]
        assert data["assignable_roles"] == []

    @pytest.mark.asyncio
    async def test_list_members(self, client, owner, member, guest, organization, owner_user):
        async with api_client() as ac:
            response = await ac.get(
                f"{API}/organizations/{organization.id}/members",
                params={"role": ["owner", "guest"]},
                headers=auth_headers_for(owner_user),
            )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {m["role"] for m in data["members"]} == {"owner", "guest"}

    @pytest.mark.asyncio
    async def test_change_role(self, client, owner, member, organization, owner_user):
        async with api_client() as ac:
            response = await ac.patch(
                f"{API}/organizations/{organization.id}/members/{member.id}/role",
                json={"role": "admin"},
                headers=auth_headers_for(owner_user),
            )

        assert response.status_code == 200
        assert response.json()["role"] == "admin"

    @pytest.mark.asyncio
    async def test_remove_by_email(self, client, owner, member, organization, owner_user):
        async with api_client() as ac:
            response = await ac.delete(
                f"{API}/organizations/{organization.id}/members/member@example.com",
                headers=auth_headers_for(owner_user),
            )

        assert response.status_code == 200
        assert response.json()["user"]["email"] == "member@example.com"

    @pytest.mark.asyncio
    async def test_member_cannot_remove(self, client, owner, member, guest, organization, member_user):
        async with api_client() as ac:
            response = await ac.delete(
                f"{API}/organizations/{organization.id}/members/{guest.id}",
                headers=auth_headers_for(member_user),
            )

        assert response.status_code == 403


class TestInvitationApi:

    @pytest.mark.asyncio
    async def test_invite_and_accept(self, client, owner, organization, owner_user, outsider_user, sent_emails):
        organization_id = organization.id
        owner_headers = auth_headers_for(owner_user)
        invitee_headers = auth_headers_for(outsider_user)

        async with api_client() as ac:
            created = await ac.post(
                f"{API}/organizations/{organization_id}/invitations",
                json={"email": "Outsider@Example.com", "role": "admin"},
                headers=owner_headers,
            )
            invitation_id = created.json()["id"]
            mine = await ac.get(f"{API}/invitations/me", headers=invitee_headers)
            accepted = await ac.post(f"{API}/invitations/{invitation_id}/accept", headers=invitee_headers)
            again = await ac.post(f"{API}/invitations/{invitation_id}/accept", headers=invitee_headers)
            membership = await ac.get(f"{API}/organizations/{organization_id}/members/me", headers=invitee_headers)

        assert created.status_code == 201
        assert created.json()["email"] == "outsider@example.com"
        assert created.json()["status"] == "pending"
        assert created.json()["is_expired"] is False
        assert len(sent_emails.sent) == 1
        assert sent_emails.sent[0]["to_email"] == "outsider@example.com"

        assert mine.json()["count"] == 1

        assert accepted.status_code == 200
        assert accepted.json()["invitation"]["status"] == "accepted"
        assert accepted.json()["member"]["role"] == "admin"

        assert again.status_code == 409
        assert again.json()["code"] == "already-processed"

        assert membership.status_code == 200
        assert membership.json()["role"] == "admin"

    @pytest.mark.asyncio
    async def test_member_cannot_invite(self, client, owner, member, organization, member_user, sent_emails):
        async with api_client() as ac:
            response = await ac.post(
                f"{API}/organizations/{organization.id}/invitations",
                json={"email": "friend@example.com"},
                headers=auth_headers_for(member_user),
            )

        assert response.status_code == 403
        assert sent_emails.sent == []

    @pytest.mark.asyncio
    async def test_wrong_user_cannot_accept(
        self, client, owner, organization, owner_user, member_user, sent_emails
    ):
        async with api_client() as ac:
            created = await ac.post(
                f"{API}/organizations/{organization.id}/invitations",
                json={"email": "someone@example.com"},
                headers=auth_headers_for(owner_user),
            )
            response = await ac.post(
                f"{API}/invitations/{created.json()['id']}/accept", headers=auth_headers_for(member_user)
            )

        assert response.status_code == 403
        assert response.json()["code"] == "wrong-user"

    @pytest.mark.asyncio
    async def test_view_requires_login(self, client, owner, organization, owner_user, sent_emails):
        async with api_client() as ac:
            created = await ac.post(
                f"{API}/organizations/{organization.id}/invitations",
                json={"email": "someone@example.com"},
                headers=auth_headers_for(owner_user),
            )
            invitation_id = created.json()["id"]
            response = await ac.get(f"{API}/invitations/{invitation_id}/view", params={"slug": "acme"})

        assert response.status_code == 200
        error = response.json()["error"]
        assert error["type"] == "needs-login"
        assert error["action"]["href"] == (
            f"/login?from=%2Forg%2Facme%2Faccept-invitation%2F{invitation_id}"
        )

    @pytest.mark.asyncio
    async def test_unknown_invitation(self, client, outsider_user):
        async with api_client() as ac:
            response = await ac.post(f"{API}/invitations/missing/accept", headers=auth_headers_for(outsider_user))

        assert response.status_code == 404
        assert response.json()["code"] == "not-found"


class TestTicketApi:

    @pytest.mark.asyncio
    async def test_ticket_lifecycle(self, client, owner, member, organization, owner_user, member_user):
        base = f"{API}/organizations/{organization.id}/tickets"
        member_id = member.id
        owner_headers = auth_headers_for(owner_user)
        member_headers = auth_headers_for(member_user)

        async with api_client() as ac:
            created = await ac.post(
                base,
                json={
                    "title": "  Printer on fire ",
                    "description": "The office printer is on fire again",
                    "priority": "urgent",
                    "tags": ["hardware", "office"],
                },
                headers=member_headers,
            )
            ticket_id = created.json()["id"]
            assigned = await ac.patch(
                f"{base}/{ticket_id}/assign", json={"assignee_id": member_id}, headers=owner_headers
            )
            resolved = await ac.patch(f"{base}/{ticket_id}/status", json={"status": "resolved"}, headers=member_headers)
            stats = await ac.get(f"{base}/stats", headers=member_headers)

        assert created.status_code == 201
        data = created.json()
        assert data["title"] == "  Printer on fire "
        assert data["status"] == "open"
        assert data["tags"] == ["hardware", "office"]
        assert data["requester"]["email"] == "member@example.com"

        assert assigned.status_code == 200
        assert assigned.json()["assignee"]["user"]["email"] == "member@example.com"

        assert resolved.status_code == 200
        assert resolved.json()["resolved_at"] is not None

        assert stats.status_code == 200
        assert stats.json()["total"] == 1
        assert stats.json()["open"] == 0
        assert stats.json()["urgent"] == 0

    @pytest.mark.asyncio
    async def test_validation_error_body(self, client, owner, organization, owner_user):
        async with api_client() as ac:
            response = await ac.post(
                f"{API}/organizations/{organization.id}/tickets",
                json={"title": "ab", "description": "Too short title here"},
                headers=auth_headers_for(owner_user),
            )

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "validation-error"
        assert "title" in body["errors"]

    @pytest.mark.asyncio
    async def test_guest_cannot_create(self, client, owner, guest, organization, guest_user):
        async with api_client() as ac:
            response = await ac.post(
                f"{API}/organizations/{organization.id}/tickets",
                json={"title": "Guest ticket", "description": "Guests only get to read"},
                headers=auth_headers_for(guest_user),
            )

        assert response.status_code == 403
        assert response.json()["code"] == "permission-denied"

    @pytest.mark.asyncio
    async def test_outsider_cannot_list(self, client, owner, organization, outsider_user):
        async with api_client() as ac:
            response = await ac.get(
                f"{API}/organizations/{organization.id}/tickets", headers=auth_headers_for(outsider_user)
            )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_internal_comments_hidden_from_guests(
        self, client, owner, guest, organization, owner_user, guest_user
    ):
        base = f"{API}/organizations/{organization.id}/tickets"
        owner_headers = auth_headers_for(owner_user)
        guest_headers = auth_headers_for(guest_user)

        async with api_client() as ac:
            created = await ac.post(
                base,
                json={"title": "Billing question", "description": "Why was I charged twice?"},
                headers=owner_headers,
            )
            ticket_id = created.json()["id"]
            await ac.post(
                f"{base}/{ticket_id}/comments", json={"content": "Looking into it"}, headers=owner_headers
            )
            await ac.post(
                f"{base}/{ticket_id}/comments",
                json={"content": "Refund approved", "is_internal": True},
                headers=owner_headers,
            )
            owner_view = await ac.get(f"{base}/{ticket_id}/comments", headers=owner_headers)
            guest_view = await ac.get(f"{base}/{ticket_id}/comments", headers=guest_headers)

        assert [c["content"] for c in owner_view.json()] == ["Looking into it", "Refund approved"]
        assert [c["content"] for c in guest_view.json()] == ["Looking into it"]

    @pytest.mark.asyncio
    async def test_dashboard(self, client, owner, organization, owner_user):
        headers = auth_headers_for(owner_user)
        organization_id = organization.id

        async with api_client() as ac:
            for title in ("First ticket", "Second ticket", "Third ticket"):
                await ac.post(
                    f"{API}/organizations/{organization_id}/tickets",
                    json={"title": title, "description": "Something is not working"},
                    headers=headers,
                )
            response = await ac.get(
                f"{API}/organizations/{organization_id}/dashboard", params={"recent": 2}, headers=headers
            )

        assert response.status_code == 200
        data = response.json()
        assert data["stats"]["total"] == 3
        assert data["stats"]["open"] == 3
        assert len(data["recent_tickets"]) == 2
        assert data["recent_tickets"][0]["customer"] == "Olivia Owner"
