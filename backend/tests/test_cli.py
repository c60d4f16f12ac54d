"""
CLI bootstrap tests: organizations, users, sessions and stock inspection.
"""

from workshop.extensions import db
from workshop.models import Organization, OrganizationMember, User, SessionToken
from workshop.services.session_service import hash_token


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--org", "Forge"])
    second = runner.invoke(args=["system", "init", "--org", "Forge"])

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert db.session.query(Organization).count() == 1
    assert db.session.query(User).count() == 1
    member = db.session.query(OrganizationMember).one()
    assert member.role == "Owner"


def test_users_create_and_issue_session(app, org_a):
    runner = app.test_cli_runner()

    created = runner.invoke(args=[
        "users", "create",
        "--org-id", str(org_a.id),
        "--email", "Smith@Forge.test",
        "--name", "Smith",
        "--password", "Password123",
        "--role", "Member",
    ])
    assert created.exit_code == 0, created.output
    assert "PASS" in created.output

    issued = runner.invoke(args=["sessions", "issue", "--email", "smith@forge.test", "--org-id", str(org_a.id)])
    assert issued.exit_code == 0, issued.output
    token = issued.output.strip().splitlines()[-1]
    assert db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).count() == 1


def test_users_create_rejects_weak_password(app, org_a):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create",
        "--org-id", str(org_a.id),
        "--email", "weak@forge.test",
        "--name", "Weak",
        "--password", "password",
    ])

    assert "FAIL" in result.output
    assert db.session.query(User).filter_by(email="weak@forge.test").count() == 0


def test_session_for_non_member_is_refused(app, org_a, org_b, owner_b):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["sessions", "issue", "--email", owner_b.email, "--org-id", str(org_a.id)])

    assert "FAIL" in result.output
    assert db.session.query(SessionToken).count() == 0


def test_materials_balances(app, org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    make_receipt(org_a, steel, 150, "5.00")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["materials", "balances", "--org-id", str(org_a.id)])

    assert result.exit_code == 0, result.output
    assert "Steel" in result.output
    assert "150.0000" in result.output
    assert "750.00" in result.output


def test_revoked_session_is_rejected_by_api(app, client, org_a, owner_a):
    runner = app.test_cli_runner()
    issued = runner.invoke(args=["sessions", "issue", "--email", owner_a.email, "--org-id", str(org_a.id)])
    token = issued.output.strip().splitlines()[-1]
    headers = {"Authorization": f"Bearer {token}"}
    assert client.get("/api/materials", headers=headers).status_code == 200

    revoked = runner.invoke(args=["sessions", "revoke", "--token", token])

    assert "PASS" in revoked.output
    assert client.get("/api/materials", headers=headers).status_code == 401
    again = runner.invoke(args=["sessions", "revoke", "--token", token])
    assert "FAIL" in again.output
