"""
Tests for the HTTP layer in main.py
"""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from errors import StoreFailure
from main import create_app


@pytest.fixture
def app(temp_db):
    return create_app(db_path=temp_db)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.mark.api
class TestIdentifyEndpoint:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"message": "Bitespeed API is up"}

    def test_requires_email_or_phone(self, client):
        response = client.post("/identify", json={})
        assert response.status_code == 400
        assert response.json()["detail"] == "Either email or phoneNumber must be provided"

    def test_empty_strings_count_as_missing(self, client):
        response = client.post("/identify", json={"email": "", "phoneNumber": ""})
        assert response.status_code == 400

    def test_non_string_phone_is_rejected(self, client):
        response = client.post("/identify", json={"email": "a@x.com", "phoneNumber": 123456})
        assert response.status_code == 400
        assert response.json()["error"] == "Validation error"

    def test_new_identity(self, client):
        response = client.post("/identify", json={"email": "lorraine@hillvalley.edu", "phoneNumber": "123456"})
        assert response.status_code == 200

        contact = response.json()["contact"]
        assert contact["emails"] == ["lorraine@hillvalley.edu"]
        assert contact["phoneNumbers"] == ["123456"]
        assert contact["secondaryContactIds"] == []
        assert isinstance(contact["primaryContactId"], int)

    def test_merges_two_identities(self, client):
        first = client.post("/identify", json={"email": "george@hillvalley.edu", "phoneNumber": "919191"}).json()
        second = client.post("/identify", json={"email": "biffsucks@hillvalley.edu", "phoneNumber": "717171"}).json()

        response = client.post("/identify", json={"email": "george@hillvalley.edu", "phoneNumber": "717171"})
        assert response.status_code == 200

        contact = response.json()["contact"]
        assert contact["primaryContactId"] == first["contact"]["primaryContactId"]
        assert contact["emails"] == ["george@hillvalley.edu", "biffsucks@hillvalley.edu"]
        assert contact["phoneNumbers"] == ["919191", "717171"]
        assert contact["secondaryContactIds"][0] == second["contact"]["primaryContactId"]

    def test_store_failure_is_503(self, client, app):
        with patch.object(
            app.state.store,
            "find_by_email_or_phone",
            side_effect=StoreFailure("find_by_email_or_phone"),
        ):
            response = client.post("/identify", json={"email": "a@x.com"})

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "store_failure"


@pytest.mark.api
class TestAddContactEndpoint:

    def test_add_contact(self, client):
        response = client.post("/add-contact", json={
            "id": 11,
            "email": "a@x.com",
            "phoneNumber": "1",
            "createdAt": "2023-04-01T00:00:00Z",
        })
        assert response.status_code == 200
        assert response.json() == {"message": "Contact added successfully", "contact_id": 11}

    def test_duplicate_id_conflicts(self, client):
        client.post("/add-contact", json={"id": 11, "email": "a@x.com"})
        response = client.post("/add-contact", json={"id": 11, "email": "b@x.com"})
        assert response.status_code == 409

    def test_rejects_unknown_precedence(self, client):
        response = client.post("/add-contact", json={"email": "a@x.com", "linkPrecedence": "tertiary"})
        assert response.status_code == 400


@pytest.mark.api
class TestHealthEndpoints:

    def test_health_counts(self, client):
        client.post("/identify", json={"email": "a@x.com", "phoneNumber": "1"})
        client.post("/identify", json={"email": "b@x.com", "phoneNumber": "1"})

        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["totalContacts"] == 2
        assert body["primaryContacts"] == 1
        assert body["secondaryContacts"] == 1

    def test_health_reports_store_failure(self, client, app):
        with patch.object(app.state.store, "count", side_effect=StoreFailure("count")):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_detailed_health_is_degraded_by_orphans(self, client):
        added = client.post("/add-contact", json={
            "email": "a@x.com",
            "phoneNumber": "1",
            "linkedId": 404,
            "linkPrecedence": "secondary",
        }).json()

        body = client.get("/health/detailed").json()
        assert body["status"] == "degraded"
        assert body["integrity"]["orphanedSecondaryIds"] == [added["contact_id"]]
        assert body["statistics"]["totalIdentities"] == 0

    def test_detailed_health_when_clean(self, client):
        client.post("/identify", json={"email": "a@x.com", "phoneNumber": "1"})
        client.post("/identify", json={"email": "a@x.com", "phoneNumber": "2"})

        body = client.get("/health/detailed").json()
        assert body["status"] == "healthy"
        assert body["integrity"]["isValid"] is True
        assert body["statistics"]["totalIdentities"] == 1
        assert body["statistics"]["largestIdentityChain"] == 2
        assert body["integrity"]["linkableGroups"] == 1
        assert body["integrity"]["isolatedContacts"] == 0

    def test_database_health(self, client):
        client.post("/identify", json={"email": "a@x.com", "phoneNumber": "1"})
        orphan = client.post("/add-contact", json={
            "email": "b@x.com",
            "linkedId": 404,
            "linkPrecedence": "secondary",
            "createdAt": "2030-01-01T00:00:00Z",
        }).json()

        body = client.get("/health/database").json()
        assert body["status"] == "degraded"
        assert body["totalContacts"] == 2
        assert body["primaryContacts"] == 1
        assert body["orphanedSecondaryContacts"] == 1
        assert body["deletedContacts"] == 0
        assert body["lastCreatedAt"].startswith("2030-01-01T00:00:00")
        assert body["integrity"]["orphanedSecondaryIds"] == [orphan["contact_id"]]


@pytest.mark.api
class TestIntegrityEndpoint:

    def test_repair_then_nothing_left(self, client):
        client.post("/add-contact", json={
            "email": "a@x.com",
            "linkedId": 404,
            "linkPrecedence": "secondary",
        })

        first = client.post("/integrity/repair").json()
        assert first["totalFixes"] == 1
        assert len(first["orphansPromoted"]) == 1
        assert first["errors"] == []

        second = client.post("/integrity/repair").json()
        assert second["totalFixes"] == 0


@pytest.mark.api
class TestDebugMatchEndpoint:

    def test_exact_match(self, client):
        created = client.post("/identify", json={"email": "a@x.com", "phoneNumber": "1"}).json()

        body = client.get("/debug/match", params={"email": "a@x.com", "phoneNumber": "1"}).json()
        assert body["contactId"] == created["contact"]["primaryContactId"]
        assert body["score"] == 100
        assert body["isExactMatch"] is True

    def test_no_match(self, client):
        body = client.get("/debug/match", params={"email": "nobody@x.com"}).json()
        assert body["contactId"] is None
        assert body["score"] == 0

    def test_requires_a_parameter(self, client):
        assert client.get("/debug/match").status_code == 400


@pytest.mark.api
class TestDevelopmentEndpoints:

    @pytest.fixture
    def dev_client(self, temp_db):
        with TestClient(create_app(db_path=temp_db, dev_routes=True)) as test_client:
            yield test_client

    def test_hidden_by_default(self, client):
        assert client.post("/database/seed").status_code == 404
        assert client.delete("/database/contacts").status_code == 404

    def test_seed_then_clean(self, dev_client):
        seeded = dev_client.post("/database/seed").json()
        assert len(seeded["contactIds"]) == 4

        merged = dev_client.post("/identify", json={"email": "mcfly@hillvalley.edu", "phoneNumber": "123456"})
        contact = merged.json()["contact"]
        assert contact["primaryContactId"] == seeded["contactIds"][0]
        assert contact["emails"] == ["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"]

        cleaned = dev_client.delete("/database/contacts").json()
        assert cleaned["deleted"] == 4
        assert dev_client.get("/health").json()["totalContacts"] == 0

        # Numbering restarts after a purge
        reseeded = dev_client.post("/database/seed").json()
        assert reseeded["contactIds"][0] == 1
