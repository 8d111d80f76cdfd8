"""Integration tests for consent and institution endpoints."""

from datetime import timedelta

from integrations.exceptions import OpenFinanceAuthError
from models import ConsentStatus, Institution
from tests.fixtures import TEST_USER_ID, create_consent


class TestInstitutions:
    def test_lists_only_active(self, client, db, institution):
        db.add(Institution(code="001", name="Banco Inativo", authorization_url="a", token_url="t", is_active=False))
        db.commit()

        response = client.get("/api/open-finance/institutions")

        assert response.status_code == 200
        assert [i["code"] for i in response.json()] == ["999"]


class TestConsentLifecycle:
    def test_initiate_then_callback(self, client, institution):
        response = client.post(
            "/api/open-finance/consents",
            json={"user_id": TEST_USER_ID, "institution_id": institution.id, "scopes": ["accounts"]},
        )
        assert response.status_code == 201
        body = response.json()
        consent = body["consent"]
        assert consent["status"] == "PENDING"
        assert consent["scopes"] == ["accounts"]
        assert "access_token" not in consent
        state = body["authorization_url"].split("state=")[1].split("&")[0]

        callback = client.post(
            f"/api/open-finance/consents/{consent['id']}/callback",
            json={"code": "abc", "state": state},
        )

        assert callback.status_code == 200
        assert callback.json()["status"] == "ACTIVE"
        assert callback.json()["effective_status"] == "ACTIVE"

    def test_callback_with_wrong_state_is_conflict(self, client, institution):
        consent_id = client.post(
            "/api/open-finance/consents",
            json={"user_id": TEST_USER_ID, "institution_id": institution.id},
        ).json()["consent"]["id"]

        response = client.post(
            f"/api/open-finance/consents/{consent_id}/callback",
            json={"code": "abc", "state": "forged"},
        )
        assert response.status_code == 409

    def test_initiate_unknown_institution(self, client):
        response = client.post(
            "/api/open-finance/consents", json={"user_id": TEST_USER_ID, "institution_id": "nope"}
        )
        assert response.status_code == 404

    def test_initiate_duplicate_active_consent(self, client, institution, consent):
        response = client.post(
            "/api/open-finance/consents",
            json={"user_id": TEST_USER_ID, "institution_id": institution.id},
        )
        assert response.status_code == 409

    def test_list_and_get(self, client, consent):
        listed = client.get("/api/open-finance/consents", params={"user_id": TEST_USER_ID})
        assert [c["id"] for c in listed.json()] == [consent.id]

        single = client.get(f"/api/open-finance/consents/{consent.id}")
        assert single.status_code == 200
        assert single.json()["institution_id"] == consent.institution_id

    def test_get_missing(self, client):
        assert client.get("/api/open-finance/consents/missing").status_code == 404

    def test_expired_consent_reports_effective_status(self, client, db, institution, token_cipher):
        expired = create_consent(db, institution, token_cipher, expires_in=timedelta(minutes=-1))

        body = client.get(f"/api/open-finance/consents/{expired.id}").json()

        assert body["status"] == "ACTIVE"
        assert body["effective_status"] == "EXPIRED"


class TestRefreshAndRevoke:
    def test_refresh(self, client, consent, mock_oauth_client):
        response = client.post(f"/api/open-finance/consents/{consent.id}/refresh")

        assert response.status_code == 200
        assert response.json()["status"] == "ACTIVE"
        assert response.json()["last_refreshed_at"] is not None
        assert mock_oauth_client.refresh_calls == ["refresh-token"]

    def test_rejected_refresh_is_bad_gateway_and_expires(self, client, db, consent, mock_oauth_client):
        mock_oauth_client.refresh_results["refresh-token"] = OpenFinanceAuthError(
            "invalid_grant", status_code=400
        )

        response = client.post(f"/api/open-finance/consents/{consent.id}/refresh")

        assert response.status_code == 502
        db.refresh(consent)
        assert consent.status == ConsentStatus.EXPIRED.value

    def test_revoke(self, client, db, consent, connected_account):
        response = client.delete(f"/api/open-finance/consents/{consent.id}")

        assert response.status_code == 200
        assert response.json()["status"] == "REVOKED"
        db.refresh(connected_account)
        assert connected_account.is_enabled is False

    def test_revoke_missing(self, client):
        assert client.delete("/api/open-finance/consents/missing").status_code == 404
