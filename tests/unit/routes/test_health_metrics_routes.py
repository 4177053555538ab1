import pytest


@pytest.mark.unit
def test_healthz_reports_checks(client):
    resp = client.get("/healthz")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "ok"
    assert body["checks"]["database"] == "ok"
    assert body["checks"]["streaming_provider"] == "ok"


@pytest.mark.unit
def test_healthz_flags_missing_streaming_provider(app, client):
    app.extensions["metadata_service"].sp = None

    body = client.get("/healthz").get_json()

    assert body["status"] == "ok"
    assert body["checks"]["streaming_provider"] == "unavailable"


@pytest.mark.unit
def test_readyz(client):
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ready", "database": "ok"}


@pytest.mark.unit
def test_metrics_endpoint_exposes_counters(client):
    resp = client.get("/metrics")

    assert resp.status_code == 200
    text = resp.get_data(as_text=True)
    assert "tunesync_parties_started_total" in text
    assert "tunesync_recommendation_failures_total" in text


@pytest.mark.unit
def test_request_id_is_echoed(client):
    resp = client.get("/healthz", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"
    assert client.get("/healthz").headers.get("X-Request-ID")


@pytest.mark.unit
def test_unauthenticated_api_calls_get_json_401(client):
    resp = client.get("/api/ratings/liked")

    assert resp.status_code == 401
    assert resp.get_json() == {"error": "authentication_required"}


@pytest.mark.unit
def test_inactive_users_are_not_loaded(app, factories, db_session):
    sleeper = factories.UserFactory(username="sleeper", is_active=False)
    db_session.commit()

    resp = app.test_client(user=sleeper).get("/api/playlists")

    assert resp.status_code == 401
