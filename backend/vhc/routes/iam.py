from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from sqlalchemy import select
from vhc.models.authz import User
from vhc import get_db
from vhc.services.policy import compute_effective_permissions

iam_bp = Blueprint('iam', __name__)


@iam_bp.post('/auth/login')
def login():
    data = request.json or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email==email)).scalar_one_or_none()
    if not user or not user.is_active or not user.verify_password(password):
        abort(401, description='invalid credentials')
    eff = compute_effective_permissions(user.id)
    claims = {
        'roles': eff['roles'],
        'perms': eff['perms'],
        'org_id': user.organization_id,
    }
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=claims)
    return {'access_token': token}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    # Identity stored as string, cast back to int for DB lookup
    user_id = int(get_jwt_identity())
    session = get_db()
    user = session.execute(select(User).where(User.id==user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    eff = compute_effective_permissions(user.id)
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'organization_id': user.organization_id,
        'roles': eff['roles'],
        'perms': eff['perms'],
    }
