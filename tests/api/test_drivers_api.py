from tests.factories import DROPOFF, ESPLANADE, PICKUP


def test_go_online_and_offline(test_client, auth_headers, driver, get_account):
    online = test_client.post(
        "/drivers/online",
        json={"lat": ESPLANADE[0], "lon": ESPLANADE[1]},
        headers=auth_headers(driver),
    )
    assert online.status_code == 200
    assert online.json()["status"] == "online"
    assert online.json()["availability"]["is_live"] is True
    assert get_account(driver).driver_status == "online"

    offline = test_client.post("/drivers/offline", headers=auth_headers(driver))
    assert offline.status_code == 200
    assert offline.json()["status"] == "offline"
    assert get_account(driver).driver_status == "offline"


def test_invalid_position(test_client, auth_headers, driver):
    response = test_client.post(
        "/drivers/online", json={"lat": 100, "lon": 0}, headers=auth_headers(driver)
    )
    assert response.status_code == 422


def test_driver_endpoints_reject_customers(test_client, auth_headers, customer):
    response = test_client.post(
        "/drivers/online",
        json={"lat": ESPLANADE[0], "lon": ESPLANADE[1]},
        headers=auth_headers(customer),
    )
    assert response.status_code == 403
    assert response.json()["error"] == "Driver access required"


def test_location_update(test_client, auth_headers, driver):
    test_client.post(
        "/drivers/online",
        json={"lat": ESPLANADE[0], "lon": ESPLANADE[1]},
        headers=auth_headers(driver),
    )

    response = test_client.post(
        "/drivers/location", json={"lat": 22.55, "lon": 88.345}, headers=auth_headers(driver)
    )
    assert response.status_code == 200
    assert response.json()["lat"] == 22.55


def test_accept_and_drive_ride(
    test_client, auth_headers, manual_lifecycle, customer, driver, balance_of
):
    ride = manual_lifecycle.request_ride(customer, PICKUP, DROPOFF)

    accepted = test_client.post(
        f"/drivers/rides/{ride.ride_id}/accept", headers=auth_headers(driver)
    )
    assert accepted.status_code == 200
    assert accepted.json()["ride"]["driver_id"] == driver

    active = test_client.get("/drivers/active-ride", headers=auth_headers(driver))
    assert active.json()["ride"]["ride_id"] == ride.ride_id

    assert (
        test_client.post(
            f"/drivers/rides/{ride.ride_id}/start", headers=auth_headers(driver)
        ).status_code
        == 200
    )
    completed = test_client.post(
        f"/drivers/rides/{ride.ride_id}/complete", headers=auth_headers(driver)
    )
    assert completed.status_code == 200
    assert balance_of(driver) == 100

    earnings = test_client.get("/drivers/earnings", headers=auth_headers(driver))
    assert earnings.status_code == 200
    assert earnings.json()["today"] == 100
    assert earnings.json()["rides_today"] == 1

    idle = test_client.get("/drivers/active-ride", headers=auth_headers(driver))
    assert idle.json() == {"ride": None}


def test_accept_taken_ride_conflicts(
    test_client, auth_headers, manual_lifecycle, customer, driver, make_driver
):
    make_driver("driver_2")
    ride = manual_lifecycle.request_ride(customer, PICKUP, DROPOFF)
    test_client.post(f"/drivers/rides/{ride.ride_id}/accept", headers=auth_headers("driver_2"))

    response = test_client.post(
        f"/drivers/rides/{ride.ride_id}/accept", headers=auth_headers(driver)
    )
    assert response.status_code == 409
    assert response.json()["details"] == {"ride_id": ride.ride_id}
