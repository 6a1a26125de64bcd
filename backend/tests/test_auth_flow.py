from vhc.models.authz import User
from vhc import get_db
from tests.test_utils_seed import ensure_user, ensure_role, ensure_user_role_assignment


def test_login_and_me(client):
    # Seed a user manually
    session = get_db()
    u = User(name='T', email='t@example.com', password_hash='', organization_id=3)
    u.set_password('pw')
    session.add(u)
    session.commit()

    # Login
    resp = client.post('/iam/auth/login', json={'email': 't@example.com', 'password': 'pw'})
    assert resp.status_code == 200, resp.get_json()
    token = resp.get_json()['access_token']

    me = client.get('/iam/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.status_code == 200
    body = me.get_json()
    assert body['email'] == 't@example.com'
    assert body['organization_id'] == 3


def test_login_rejects_bad_password(client):
    ensure_user('badpw@example.com')
    resp = client.post('/iam/auth/login', json={'email': 'badpw@example.com', 'password': 'nope'})
    assert resp.status_code == 401
    assert resp.get_json()['error']['detail'] == 'invalid credentials'


def test_login_requires_fields(client):
    resp = client.post('/iam/auth/login', json={'email': 'x@example.com'})
    assert resp.status_code == 400


def test_login_claims_carry_role_permissions(app_context):
    from flask_jwt_extended import decode_token
    client = app_context.test_client()
    user = ensure_user('advisor_claims@example.com', organization_id=5)
    role = ensure_role('ClaimsAdvisor', ['VHC.READ', 'RPR.OUTCOME'])
    ensure_user_role_assignment(user, role)
    resp = client.post('/iam/auth/login', json={'email': 'advisor_claims@example.com', 'password': 'pw'})
    claims = decode_token(resp.get_json()['access_token'])
    assert claims['sub'] == str(user.id)
    assert claims['org_id'] == 5
    assert set(claims['perms']) == {'VHC.READ', 'RPR.OUTCOME'}
    assert claims['roles'] == [role.id]


def test_seed_script_is_idempotent(app_context):
    from scripts.seed_authz import ensure_permissions, ensure_roles, ensure_reasons
    from vhc.constants.permissions import ALL_PERMISSION_CODES, DEFAULT_DECLINED_REASONS
    from vhc.models.authz import Permission, Role
    from vhc.models.reasons import DeclinedReason
    session = get_db()
    ensure_permissions(session)
    ensure_roles(session)
    ensure_reasons(session, 42)
    session.commit()
    assert ensure_permissions(session) == 0
    assert ensure_roles(session) == 0
    assert ensure_reasons(session, 42) == 0
    codes = {p.code for p in session.query(Permission)}
    assert set(ALL_PERMISSION_CODES) <= codes
    owner = session.query(Role).filter_by(name='Owner').one()
    assert {rp.permission.code for rp in owner.permissions} >= set(ALL_PERMISSION_CODES)
    reasons = session.query(DeclinedReason).filter_by(organization_id=42).all()
    assert len(reasons) == len(DEFAULT_DECLINED_REASONS)
    other = [r for r in reasons if r.reason == 'Other']
    assert other and other[0].requires_notes
