API = "/api/v1"


def test_create_project_makes_caller_owner(client, owner):
    r = client.post(
        f"{API}/projects",
        json={"name": "  Fraud signals ", "description": "card data", "settings": {"data_retention_days": 7}},
        headers=owner["headers"],
    )
    assert r.status_code == 201
    body = r.json()
    assert body["name"] == "Fraud signals"
    assert body["status"] == "active"
    assert body["owner_id"] == owner["id"]
    assert body["team_members"] == {owner["id"]: "owner"}
    assert body["settings"]["data_retention_days"] == 7
    assert body["storage"]["bucket_name"] is None


def test_create_project_requires_auth(client):
    assert client.post(f"{API}/projects", json={"name": "x"}).status_code == 401


def test_list_projects_only_shows_memberships(client, owner, make_user, make_project):
    make_project(name="one")
    make_project(name="two")
    other = make_user()
    make_project(name="theirs", user=other)

    r = client.get(f"{API}/projects", headers=owner["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 2
    assert {p["name"] for p in body["projects"]} == {"one", "two"}

    r = client.get(f"{API}/projects?limit=1&offset=1", headers=owner["headers"])
    assert len(r.json()["projects"]) == 1
    assert r.json()["total"] == 2


def test_non_member_cannot_read_project(client, project, make_user):
    outsider = make_user()
    r = client.get(f"{API}/projects/{project['id']}", headers=outsider["headers"])
    assert r.status_code == 403


def test_unknown_and_malformed_project_ids(client, owner):
    assert client.get(f"{API}/projects/not-an-id", headers=owner["headers"]).status_code == 404
    assert client.get(f"{API}/projects/{'a' * 24}", headers=owner["headers"]).status_code == 404


def test_update_project(client, owner, project):
    r = client.patch(
        f"{API}/projects/{project['id']}",
        json={"description": "updated", "settings": {"max_storage_gb": 50}},
        headers=owner["headers"],
    )
    assert r.status_code == 200
    assert r.json()["description"] == "updated"
    assert r.json()["settings"]["max_storage_gb"] == 50
    assert r.json()["settings"]["data_retention_days"] == 30


def test_member_role_cannot_update_project(client, owner, project, make_user):
    member = make_user()
    client.post(
        f"{API}/projects/{project['id']}/members",
        json={"user_id": member["id"], "role": "member"},
        headers=owner["headers"],
    )
    r = client.patch(f"{API}/projects/{project['id']}", json={"name": "mine now"}, headers=member["headers"])
    assert r.status_code == 403
    assert r.json()["detail"] == "This action requires the admin role"


def test_archive_is_soft_and_idempotent(client, owner, project):
    r = client.delete(f"{API}/projects/{project['id']}", headers=owner["headers"])
    assert r.status_code == 200
    assert r.json()["status"] == "archived"

    r = client.post(f"{API}/projects/{project['id']}/archive", headers=owner["headers"])
    assert r.status_code == 200
    assert r.json()["status"] == "archived"

    r = client.get(f"{API}/projects?status=archived", headers=owner["headers"])
    assert r.json()["total"] == 1


def test_team_membership_lifecycle(client, owner, project, make_user):
    alice = make_user(name="Alice")
    bob = make_user(name="Bob")
    url = f"{API}/projects/{project['id']}/members"

    r = client.post(url, json={"user_id": alice["id"], "role": "admin"}, headers=owner["headers"])
    assert r.status_code == 201
    assert r.json()["team_members"][alice["id"]] == "admin"

    r = client.post(url, json={"user_id": alice["id"]}, headers=owner["headers"])
    assert r.status_code == 409

    # Admins manage lower roles but not their peers or the owner.
    r = client.post(url, json={"user_id": bob["id"], "role": "viewer"}, headers=alice["headers"])
    assert r.status_code == 201
    r = client.patch(f"{url}/{bob['id']}", json={"role": "member"}, headers=alice["headers"])
    assert r.json()["team_members"][bob["id"]] == "member"
    r = client.delete(f"{url}/{owner['id']}", headers=alice["headers"])
    assert r.status_code == 403

    r = client.delete(f"{url}/{bob['id']}", headers=owner["headers"])
    assert r.status_code == 200
    assert bob["id"] not in r.json()["team_members"]
    assert client.get(f"{API}/projects/{project['id']}", headers=bob["headers"]).status_code == 403


def test_add_unknown_user(client, owner, project):
    r = client.post(
        f"{API}/projects/{project['id']}/members",
        json={"user_id": "b" * 24},
        headers=owner["headers"],
    )
    assert r.status_code == 404


def test_owner_role_cannot_be_assigned(client, owner, project, make_user):
    other = make_user()
    r = client.post(
        f"{API}/projects/{project['id']}/members",
        json={"user_id": other["id"], "role": "owner"},
        headers=owner["headers"],
    )
    assert r.status_code == 422


def test_metrics_counts_jobs_by_status(client, owner, project, make_job):
    make_job()
    job = make_job()
    client.post(f"{API}/jobs/{job['id']}/cancel", headers=owner["headers"])

    r = client.get(f"{API}/projects/{project['id']}/metrics", headers=owner["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["total_jobs"] == 2
    assert body["jobs_by_status"] == {"pending": 1, "cancelled": 1}
    assert body["object_count"] is None


def test_customer_project_quota(client, admin_headers, make_user):
    r = client.post(
        f"{API}/customers",
        json={"name": "Tiny Co", "email": "team@tiny.co", "settings": {"max_projects": 1}},
        headers=admin_headers,
    )
    customer_id = r.json()["id"]
    user = make_user(email="team@tiny.co")

    r = client.post(f"{API}/projects", json={"name": "first"}, headers=user["headers"])
    assert r.status_code == 201
    assert r.json()["customer_id"] == customer_id

    r = client.post(f"{API}/projects", json={"name": "second"}, headers=user["headers"])
    assert r.status_code == 403

    usage = client.get(f"{API}/customers/{customer_id}", headers=admin_headers).json()["usage_statistics"]
    assert usage["total_projects"] == 1


def test_admin_cannot_archive_through_patch(client, owner, project, make_user):
    admin = make_user()
    client.post(
        f"{API}/projects/{project['id']}/members",
        json={"user_id": admin["id"], "role": "admin"},
        headers=owner["headers"],
    )

    r = client.patch(f"{API}/projects/{project['id']}", json={"status": "archived"}, headers=admin["headers"])
    assert r.status_code == 403
    assert r.json()["detail"] == "This action requires the owner role"

    r = client.get(f"{API}/projects/{project['id']}", headers=owner["headers"])
    assert r.json()["status"] == "active"


def test_status_patch_tracks_customer_usage_and_quota(client, admin_headers, make_user):
    r = client.post(
        f"{API}/customers",
        json={"name": "Small Co", "email": "ops@small.co", "settings": {"max_projects": 1}},
        headers=admin_headers,
    )
    customer_id = r.json()["id"]
    user = make_user(email="ops@small.co")

    first = client.post(f"{API}/projects", json={"name": "first"}, headers=user["headers"]).json()
    r = client.patch(f"{API}/projects/{first['id']}", json={"status": "archived"}, headers=user["headers"])
    assert r.status_code == 200
    assert r.json()["status"] == "archived"
    usage = client.get(f"{API}/customers/{customer_id}", headers=admin_headers).json()["usage_statistics"]
    assert usage["total_projects"] == 0

    r = client.post(f"{API}/projects", json={"name": "second"}, headers=user["headers"])
    assert r.status_code == 201

    r = client.patch(f"{API}/projects/{first['id']}", json={"status": "active"}, headers=user["headers"])
    assert r.status_code == 403
    r = client.post(f"{API}/projects/{first['id']}/restore", headers=user["headers"])
    assert r.status_code == 403

    r = client.get(f"{API}/projects?status=active", headers=user["headers"])
    assert r.json()["total"] == 1


def test_restore_project(client, owner, project):
    client.post(f"{API}/projects/{project['id']}/archive", headers=owner["headers"])

    r = client.post(f"{API}/projects/{project['id']}/restore", headers=owner["headers"])
    assert r.status_code == 200
    assert r.json()["status"] == "active"

    r = client.patch(f"{API}/projects/{project['id']}", json={"status": "active", "name": "Back"}, headers=owner["headers"])
    assert r.status_code == 200
    assert r.json()["name"] == "Back"
