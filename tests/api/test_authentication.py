def test_valid_api_key(test_client, customer, auth_headers):
    """Accepts valid API key."""
    response = test_client.get("/wallet/balance", headers=auth_headers(customer))
    assert response.status_code == 200


def test_invalid_api_key(test_client, customer):
    """Rejects invalid API key."""
    response = test_client.get(
        "/wallet/balance", headers={"X-API-Key": "wrong-key", "X-Account-Id": customer}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid API key"


def test_missing_api_key(test_client, customer):
    """Rejects missing API key."""
    response = test_client.get("/wallet/balance", headers={"X-Account-Id": customer})
    assert response.status_code == 422


def test_case_sensitive_key(test_client, customer):
    """Key validation is case-sensitive."""
    response = test_client.get(
        "/wallet/balance", headers={"X-API-Key": "TEST-API-KEY", "X-Account-Id": customer}
    )
    assert response.status_code == 401


def test_missing_account_header(test_client, auth_headers):
    """Acting account is required for account-scoped endpoints."""
    response = test_client.get("/wallet/balance", headers=auth_headers())
    assert response.status_code == 422


def test_ride_and_driver_endpoints_require_auth(test_client):
    assert test_client.get("/rides").status_code == 422
    assert test_client.post("/drivers/offline").status_code == 422


def test_health_endpoint_no_auth(test_client):
    """Health endpoint does not require auth."""
    response = test_client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"


def test_metrics_endpoint_no_auth(test_client, customer, driver, geo_index):
    geo_index.set_online(driver, 22.5646, 88.3511)

    response = test_client.get("/metrics")

    assert response.status_code == 200
    assert "ridehail_drivers_online 1.0" in response.text
    assert "ridehail_rides_waiting 0.0" in response.text
