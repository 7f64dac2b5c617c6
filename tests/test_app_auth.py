from conftest import add_agent, login_as

SIGNUP = {"name": "Boss", "email": "boss@example.com", "password": "secret1",
          "agentType": "Regular"}


def test_first_signup_becomes_active_superadmin(client, fake_db):
    resp = client.post("/api/signup", json=SIGNUP)
    assert resp.status_code == 201
    assert resp.get_json() == {"success": True, "role": "Superadmin", "status": "Active"}
    profile = fake_db.docs("agents")["uid-1"]
    assert profile["role"] == "Superadmin"
    assert profile["agentType"] == "Regular"

    me = client.get("/api/me").get_json()["user"]
    assert me["name"] == "Boss"


def test_later_signups_wait_for_approval(client, fake_db):
    client.post("/api/signup", json=SIGNUP)
    client.post("/logout")
    resp = client.post("/api/signup", json={**SIGNUP, "name": "Ana", "email": "ana@example.com"})
    assert resp.get_json()["role"] == "Agent"
    assert fake_db.docs("agents")["uid-2"]["status"] == "Pending"

    resp = client.post("/api/login", json={"email": "ana@example.com", "password": "secret1"})
    assert resp.status_code == 403
    assert "waiting for an admin" in resp.get_json()["message"]


def test_duplicate_signup_email(client):
    client.post("/api/signup", json=SIGNUP)
    resp = client.post("/api/signup", json=SIGNUP)
    assert resp.status_code == 409


def test_signup_validation_errors(client):
    resp = client.post("/api/signup", json={**SIGNUP, "password": "123", "agentType": "Boss"})
    assert resp.status_code == 400
    fields = {e["field"] for e in resp.get_json()["errors"]}
    assert fields == {"password", "agentType"}


def test_login_and_logout(client, fake_db, identity):
    uid = identity.create_user("ana@example.com", "secret1")
    add_agent(fake_db, uid, "Ana")

    resp = client.post("/api/login", json={"email": "ana@example.com", "password": "secret1"})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["name"] == "Ana"
    assert client.get("/api/me").status_code == 200

    client.get("/logout")
    assert client.get("/api/me").status_code == 401


def test_login_wrong_password(client, identity):
    identity.create_user("ana@example.com", "secret1")
    resp = client.post("/api/login", json={"email": "ana@example.com", "password": "nope123"})
    assert resp.status_code == 401
    assert resp.get_json() == {"success": False, "message": "Invalid email or password."}


def test_login_without_profile(client, identity):
    identity.create_user("ghost@example.com", "secret1")
    resp = client.post("/api/login", json={"email": "ghost@example.com", "password": "secret1"})
    assert resp.status_code == 401
    assert "No profile" in resp.get_json()["message"]


def test_login_accepts_form_fields(client, fake_db, identity):
    uid = identity.create_user("ana@example.com", "secret1")
    add_agent(fake_db, uid, "Ana")
    resp = client.post("/api/login", data={"email": "ana@example.com", "password": "secret1"})
    assert resp.status_code == 200


def test_guarded_routes_need_session(client):
    assert client.get("/api/clients").status_code == 401
    assert client.get("/").status_code == 401


def test_agents_cannot_open_admin_pages(agent_client):
    assert agent_client.get("/api/team-performance").status_code == 403
    assert agent_client.get("/api/reports/agent?agent=Ben").status_code == 403
    assert agent_client.post("/api/clients/bulk-delete", json={"ids": ["x"]}).status_code == 403


def test_rejected_agent_is_logged_out(client, fake_db):
    add_agent(fake_db, "a1", "Ana")
    login_as(client, "a1")
    assert client.get("/api/me").status_code == 200

    fake_db.collection("agents").document("a1").update({"status": "Rejected"})
    resp = client.get("/api/me")
    assert resp.status_code == 403
    assert "rejected" in resp.get_json()["message"]
    assert client.get("/api/me").status_code == 401


def test_deleted_profile_clears_session(client, fake_db):
    add_agent(fake_db, "a1", "Ana")
    login_as(client, "a1")
    fake_db.collection("agents").document("a1").delete()
    assert client.get("/api/me").status_code == 401


def test_admin_creates_agent_accounts(admin_client, fake_db, identity):
    resp = admin_client.post("/api/agents", json={
        "name": "Cara", "email": "cara@example.com", "password": "secret1",
        "agentType": "Elite"})
    assert resp.status_code == 201
    uid = resp.get_json()["uid"]
    assert fake_db.docs("agents")[uid]["status"] == "Active"
    assert "cara@example.com" in identity.users


def test_agents_cannot_create_accounts(agent_client):
    resp = agent_client.post("/api/agents", json={
        "name": "Cara", "email": "cara@example.com", "password": "secret1",
        "agentType": "Elite"})
    assert resp.status_code == 403


def test_admin_approves_pending_agent(admin_client, fake_db):
    add_agent(fake_db, "p1", "Pat", status="Pending")
    resp = admin_client.patch("/api/agents/p1", json={"status": "Active"})
    assert resp.status_code == 200
    assert fake_db.docs("agents")["p1"]["status"] == "Active"

    assert admin_client.patch("/api/agents/nope", json={"status": "Active"}).status_code == 404


def test_admin_cannot_change_superadmin(admin_client, fake_db):
    resp = admin_client.patch("/api/agents/boss", json={"role": "Agent"})
    assert resp.status_code == 403
    assert fake_db.docs("agents")["boss"]["role"] == "Superadmin"


def test_agent_list_can_hide_superadmins(admin_client):
    names = {a["name"] for a in admin_client.get("/api/agents?display=1").get_json()["agents"]}
    assert names == {"Alice Admin", "Ana", "Ben"}
    all_names = {a["name"] for a in admin_client.get("/api/agents").get_json()["agents"]}
    assert "Boss" in all_names


def test_admin_cannot_grant_superadmin_role(admin_client, fake_db):
    resp = admin_client.patch("/api/agents/adm", json={"role": "Superadmin"})
    assert resp.status_code == 403
    assert fake_db.docs("agents")["adm"]["role"] == "Admin"

    resp = admin_client.patch("/api/agents/a1", json={"role": "Superadmin"})
    assert resp.status_code == 403
    assert fake_db.docs("agents")["a1"]["role"] == "Agent"
    assert admin_client.patch("/api/agents/a1", json={"role": "Admin"}).status_code == 200


def test_admin_cannot_create_superadmin_account(admin_client, fake_db, identity):
    resp = admin_client.post("/api/agents", json={
        "name": "Cara", "email": "cara@example.com", "password": "secret1",
        "agentType": "Elite", "role": "Superadmin"})
    assert resp.status_code == 403
    assert identity.users == {}


def test_superadmin_can_grant_superadmin_role(admin_client, fake_db):
    login_as(admin_client, "boss")
    assert admin_client.patch("/api/agents/adm", json={"role": "Superadmin"}).status_code == 200
    assert fake_db.docs("agents")["adm"]["role"] == "Superadmin"
