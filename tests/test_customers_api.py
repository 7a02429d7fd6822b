import asyncio

from bson import ObjectId

API = "/api/v1"


def _create(client, headers, name="Acme Corp", email="billing@acme.io", **extra):
    r = client.post(f"{API}/customers", json={"name": name, "email": email, **extra}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_admin_key_required(client, make_user):
    assert client.get(f"{API}/customers").status_code == 403
    assert client.get(f"{API}/customers", headers={"X-ADMIN-API-KEY": "wrong"}).status_code == 403

    user = make_user()
    assert client.get(f"{API}/customers", headers=user["headers"]).status_code == 403


def test_admin_role_grants_access(client, db, make_user):
    admin = make_user(email="root@example.com")
    asyncio.run(db.users.update_one({"_id": ObjectId(admin["id"])}, {"$set": {"role": "admin"}}))

    assert client.get(f"{API}/customers", headers=admin["headers"]).status_code == 200

    customer = _create(client, admin["headers"])
    log = client.get(f"{API}/customers/{customer['id']}/audit-log", headers=admin["headers"]).json()
    assert log[0]["actor"] == admin["id"]


def test_create_and_get_customer(client, admin_headers):
    customer = _create(client, admin_headers, email="Billing@Acme.io", billing_tier="professional")
    assert customer["email"] == "billing@acme.io"
    assert customer["status"] == "active"
    assert customer["billing_tier"] == "professional"
    assert customer["settings"] == {"storage_quota_gb": 100, "max_projects": 5}
    assert customer["service_account"] is None

    r = client.get(f"{API}/customers/{customer['id']}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["name"] == "Acme Corp"


def test_duplicate_email_conflicts(client, admin_headers):
    _create(client, admin_headers)
    r = client.post(f"{API}/customers", json={"name": "Other", "email": "BILLING@acme.io"}, headers=admin_headers)
    assert r.status_code == 409


def test_update_records_changes_in_audit_log(client, admin_headers):
    customer = _create(client, admin_headers)
    url = f"{API}/customers/{customer['id']}"

    r = client.patch(url, json={"billing_tier": "enterprise", "name": "Acme Corp"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["billing_tier"] == "enterprise"

    r = client.patch(url, json={"status": "inactive"}, headers=admin_headers)
    assert r.json()["status"] == "inactive"

    log = client.get(f"{url}/audit-log", headers=admin_headers).json()
    assert [e["action"] for e in log] == ["status_change", "update", "create"]
    assert log[1]["changes"] == {"billing_tier": {"old": "free", "new": "enterprise"}}
    assert log[0]["actor"] == "admin_api_key"


def test_noop_update_is_not_audited(client, admin_headers):
    customer = _create(client, admin_headers)
    url = f"{API}/customers/{customer['id']}"
    client.patch(url, json={"name": "Acme Corp"}, headers=admin_headers)
    assert len(client.get(f"{url}/audit-log", headers=admin_headers).json()) == 1


def test_partial_nested_update_keeps_other_fields(client, admin_headers):
    customer = _create(
        client,
        admin_headers,
        settings={"storage_quota_gb": 500, "max_projects": 3},
        contact_info={"company": "Acme", "phone": "555-0100"},
    )
    url = f"{API}/customers/{customer['id']}"

    r = client.patch(
        url,
        json={"settings": {"max_projects": 10}, "contact_info": {"phone": "555-0199"}},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["settings"] == {"storage_quota_gb": 500, "max_projects": 10}
    assert r.json()["contact_info"]["company"] == "Acme"
    assert r.json()["contact_info"]["phone"] == "555-0199"

    stored = client.get(url, headers=admin_headers).json()
    assert stored["settings"]["storage_quota_gb"] == 500

    log = client.get(f"{url}/audit-log", headers=admin_headers).json()
    assert log[0]["changes"] == {
        "settings": {"max_projects": {"old": 3, "new": 10}},
        "contact_info": {"phone": {"old": "555-0100", "new": "555-0199"}},
    }


def test_delete_suspends(client, admin_headers):
    customer = _create(client, admin_headers)
    r = client.delete(f"{API}/customers/{customer['id']}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "suspended"
    assert client.get(f"{API}/customers/{customer['id']}", headers=admin_headers).status_code == 200


def test_unknown_customer(client, admin_headers):
    assert client.get(f"{API}/customers/{'d' * 24}", headers=admin_headers).status_code == 404
    assert client.get(f"{API}/customers/nope", headers=admin_headers).status_code == 404


def test_list_filters_and_cursor_pagination(client, admin_headers):
    for i in range(5):
        _create(client, admin_headers, name=f"Customer {i}", email=f"c{i}@corp.io",
                billing_tier="basic" if i % 2 else "free")

    r = client.get(f"{API}/customers?limit=2", headers=admin_headers)
    page = r.json()
    assert len(page["customers"]) == 2
    assert page["pagination"]["has_more"] is True

    seen = [c["id"] for c in page["customers"]]
    cursor = page["pagination"]["next_cursor"]
    while cursor:
        page = client.get(f"{API}/customers?limit=2&cursor={cursor}", headers=admin_headers).json()
        seen.extend(c["id"] for c in page["customers"])
        cursor = page["pagination"]["next_cursor"]
    assert len(seen) == 5
    assert len(set(seen)) == 5

    r = client.get(f"{API}/customers?billing_tier=basic", headers=admin_headers)
    assert {c["name"] for c in r.json()["customers"]} == {"Customer 1", "Customer 3"}

    r = client.get(f"{API}/customers?sort=name&order=asc&limit=1", headers=admin_headers)
    assert r.json()["customers"][0]["name"] == "Customer 0"


def test_invalid_cursor(client, admin_headers):
    r = client.get(f"{API}/customers?cursor=garbage", headers=admin_headers)
    assert r.status_code == 400


def test_usage_live_counts_and_manual_update(client, admin_headers, make_user):
    customer = _create(client, admin_headers, email="data@acme.io")
    user = make_user(email="data@acme.io")
    r = client.post(f"{API}/projects", json={"name": "p"}, headers=user["headers"])
    project_id = r.json()["id"]
    client.post(
        f"{API}/projects/{project_id}/jobs",
        json={"job_type": "text", "job_config": {"count": 5}},
        headers=user["headers"],
    )

    usage = client.get(f"{API}/customers/{customer['id']}/usage", headers=admin_headers).json()
    assert usage["live"]["projects"] == 1
    assert usage["live"]["jobs_by_status"] == {"pending": 1}
    assert usage["usage_statistics"]["total_projects"] == 1

    r = client.patch(
        f"{API}/customers/{customer['id']}/usage",
        json={"records_generated": 12000},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["usage_statistics"]["records_generated"] == 12000
    assert r.json()["usage_statistics"]["last_activity_at"] is not None

    r = client.patch(f"{API}/customers/{customer['id']}/usage", json={}, headers=admin_headers)
    assert r.status_code == 400
