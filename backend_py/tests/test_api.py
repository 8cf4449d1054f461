import json
import time
from datetime import timedelta

from test_auth import sign_init_data


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_requires_credentials(client):
    resp = client.get("/api/user/balance")
    assert resp.status_code == 401
    assert "error" in resp.json()


def test_anon_key_needs_anon_user_id(client):
    resp = client.get("/api/user/balance", headers={"Authorization": "Bearer test-anon-key", "X-User-ID": "tg_1"})
    assert resp.status_code == 401


def test_init_user(client, anon_headers):
    resp = client.post("/api/user/init", headers=anon_headers)

    assert resp.status_code == 200
    assert resp.json()["user"] == {
        "id": "anon_device_1",
        "energy": 0,
        "boost_level": 0,
        "boost_expires_at": None,
    }


def test_ad_watch_flow(client, anon_headers, clock):
    resp = client.post("/api/ads/complete", json={"ad_id": "ad_1"}, headers=anon_headers)
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "reward": 10,
        "new_balance": 10,
        "multiplier": 1.0,
        "daily_watches_remaining": 199,
    }

    clock.now += timedelta(seconds=10)
    resp = client.post("/api/ads/complete", json={"ad_id": "ad_2"}, headers=anon_headers)
    assert resp.status_code == 429
    assert resp.json() == {"error": "Cooldown active", "cooldown_remaining": 20}

    clock.now += timedelta(seconds=20)
    resp = client.post("/api/ads/complete", json={"ad_id": "ad_2"}, headers=anon_headers)
    assert resp.status_code == 200
    assert resp.json()["new_balance"] == 20

    balance = client.get("/api/user/balance", headers=anon_headers).json()
    assert balance["energy"] == 20


def test_ad_watch_without_ad_id(client, anon_headers):
    resp = client.post("/api/ads/complete", json={}, headers=anon_headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid request"}


def test_partner_claim_ignores_client_amount(client, anon_headers):
    body = {"partner_id": "telegram_cladhunter_official", "reward_amount": 99999, "partner_name": "x"}

    resp = client.post("/api/rewards/claim", json=body, headers=anon_headers)
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "reward": 1000,
        "new_balance": 1000,
        "partner_name": "Cladhunter Official",
    }

    resp = client.post("/api/rewards/claim", json=body, headers=anon_headers)
    assert resp.status_code == 409
    assert resp.json() == {"error": "Reward already claimed"}

    status = client.get("/api/rewards/status", headers=anon_headers).json()
    assert status == {"claimed_partners": ["telegram_cladhunter_official"], "available_rewards": 3}


def test_unknown_partner(client, anon_headers):
    resp = client.post("/api/rewards/claim", json={"partner_id": "missing"}, headers=anon_headers)
    assert resp.status_code == 404


def test_partners_list(client):
    partners = client.get("/api/rewards/partners").json()
    assert {p["id"] for p in partners} == {
        "telegram_cladhunter_official",
        "telegram_crypto_insights",
        "x_cladhunter",
        "youtube_crypto_tutorials",
    }


def test_boost_order_flow(client, anon_headers, clock):
    resp = client.post("/api/orders/create", json={"boost_level": 2}, headers=anon_headers)
    assert resp.status_code == 200
    created = resp.json()
    assert created["address"] == "UQ_test_merchant"
    assert created["amount"] == 0.7
    assert created["boost_name"] == "Silver"
    assert created["duration_days"] == 14
    order_id = created["order_id"]

    order = client.get(f"/api/orders/{order_id}", headers=anon_headers).json()
    assert order["status"] == "pending"

    resp = client.post(f"/api/orders/{order_id}/confirm", json={"tx_hash": "tx_1"}, headers=anon_headers)
    assert resp.status_code == 200
    confirmed = resp.json()
    assert confirmed["boost_level"] == 2
    assert confirmed["multiplier"] == 1.5

    resp = client.post(f"/api/orders/{order_id}/confirm", headers=anon_headers)
    assert resp.status_code == 409
    assert resp.json() == {"error": "Order already processed"}

    resp = client.post("/api/ads/complete", json={"ad_id": "ad_1"}, headers=anon_headers)
    assert resp.json()["reward"] == 15

    clock.now += timedelta(days=15)
    balance = client.get("/api/user/balance", headers=anon_headers).json()
    assert balance["boost_level"] == 0
    assert balance["multiplier"] == 1.0


def test_invalid_boost_level(client, anon_headers):
    resp = client.post("/api/orders/create", json={"boost_level": 0}, headers=anon_headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid boost_level"}


def test_order_of_another_user(client, anon_headers):
    order_id = client.post("/api/orders/create", json={"boost_level": 1}, headers=anon_headers).json()["order_id"]
    other = {**anon_headers, "X-User-ID": "anon_device_2"}

    assert client.get(f"/api/orders/{order_id}", headers=other).status_code == 403
    assert client.get("/api/orders/order_missing", headers=other).status_code == 404


def test_stats(client, anon_headers):
    client.post("/api/user/init", headers=anon_headers)
    client.post("/api/ads/complete", json={"ad_id": "ad_1"}, headers=anon_headers)

    stats = client.get("/api/stats", headers=anon_headers).json()

    assert stats["total_energy"] == 10
    assert stats["total_watches"] == 1
    assert stats["total_sessions"] == 1
    assert stats["today_watches"] == 1
    assert stats["watch_history"][0]["ad_id"] == "ad_1"


def test_config(client):
    config = client.get("/api/config").json()
    assert [b["level"] for b in config["boosts"]] == [0, 1, 2, 3, 4]
    assert config["daily_view_limit"] == 200
    assert config["merchant_address"] == "UQ_test_merchant"


def test_telegram_login(client):
    init_data = sign_init_data({"auth_date": str(int(time.time())), "user": json.dumps({"id": 555})})

    resp = client.post("/api/auth/telegram", json={"initData": init_data})
    assert resp.status_code == 200
    body = resp.json()
    assert body["user_id"] == "tg_555"

    headers = {"Authorization": f"Bearer {body['token']}"}
    resp = client.post("/api/user/init", headers=headers)
    assert resp.json()["user"]["id"] == "tg_555"


def test_telegram_login_bad_signature(client):
    init_data = sign_init_data({"auth_date": str(int(time.time())), "user": json.dumps({"id": 555})}, bot_token="1:X")
    resp = client.post("/api/auth/telegram", json={"initData": init_data})
    assert resp.status_code == 401
