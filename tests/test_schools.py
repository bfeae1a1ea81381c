"""
Tests for school administration and the school profile.
"""

from conftest import bearer, login

SCHOOLS = "/api/v1/superadmin/schools"


def superadmin(client) -> dict:
    return bearer(login(client, "super@school.edu")["accessToken"])


class TestSuperadminSchools:
    """Tests for /superadmin/schools."""

    def test_create_school(self, client):
        response = client.post(
            SCHOOLS,
            json={"code": " NORTH-HIGH ", "name": "North High", "currencyCode": "inr"},
            headers=superadmin(client),
        )

        assert response.status_code == 201
        school = response.json()["data"]
        assert school["code"] == "NORTH-HIGH"
        assert school["currencyCode"] == "INR"
        assert school["status"] == "ACTIVE"
        assert school["timezone"] == "UTC"

    def test_duplicate_code(self, client):
        response = client.post(
            SCHOOLS,
            json={"code": "DEMO-SCHOOL", "name": "Again"},
            headers=superadmin(client),
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_VALUE"

    def test_list_schools(self, client):
        headers = superadmin(client)

        data = client.get(SCHOOLS, params={"limit": 1}, headers=headers).json()["data"]

        assert len(data["items"]) == 1
        assert data["pagination"]["total"] == 2
        assert data["pagination"]["totalPages"] == 2

    def test_search_schools(self, client):
        data = client.get(SCHOOLS, params={"search": "other"}, headers=superadmin(client)).json()["data"]

        assert [s["code"] for s in data["items"]] == ["OTHER-SCHOOL"]

    def test_suspend_school(self, client, seeded):
        headers = superadmin(client)

        response = client.patch(
            f"{SCHOOLS}/{seeded.other_school_id}/status",
            json={"status": "SUSPENDED"},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "SUSPENDED"
        suspended = client.get(SCHOOLS, params={"status": "SUSPENDED"}, headers=headers).json()["data"]
        assert [s["id"] for s in suspended["items"]] == [str(seeded.other_school_id)]

    def test_unknown_school_status(self, client):
        response = client.patch(
            f"{SCHOOLS}/00000000-0000-0000-0000-000000000001/status",
            json={"status": "ACTIVE"},
            headers=superadmin(client),
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SCHOOL_NOT_FOUND"

    def test_school_admin_is_forbidden(self, client):
        headers = bearer(login(client, "admin@school.edu")["accessToken"])

        response = client.get(SCHOOLS, headers=headers)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"


class TestSchoolProfile:
    """Tests for /school/profile."""

    def test_own_school(self, client, seeded):
        headers = bearer(login(client, "hr@school.edu")["accessToken"])

        response = client.get("/api/v1/school/profile", headers=headers)

        assert response.status_code == 200
        assert response.json()["data"]["id"] == str(seeded.school_id)
        assert response.json()["data"]["code"] == "DEMO-SCHOOL"

    def test_other_school_forbidden(self, client, seeded):
        headers = bearer(login(client, "hr@school.edu")["accessToken"])

        response = client.get(
            "/api/v1/school/profile",
            params={"schoolId": str(seeded.other_school_id)},
            headers=headers,
        )

        assert response.status_code == 403

    def test_superadmin_needs_school_id(self, client, seeded):
        headers = superadmin(client)

        missing = client.get("/api/v1/school/profile", headers=headers)
        named = client.get(
            "/api/v1/school/profile",
            params={"schoolId": str(seeded.other_school_id)},
            headers=headers,
        )

        assert missing.status_code == 403
        assert missing.json()["error"]["code"] == "SCHOOL_CONTEXT_REQUIRED"
        assert named.json()["data"]["code"] == "OTHER-SCHOOL"
