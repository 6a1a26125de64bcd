from __future__ import annotations
from typing import Optional, Set
from flask import abort
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select
from vhc.models.authz import UserRole, RolePermission, Permission, Role
from vhc import get_db


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def has_permissions(*codes: str) -> bool:
    perms = current_permissions()
    return all(c in perms for c in codes)


def current_user_id() -> int:
    # JWT identity is a string (flask-jwt-extended v4); staff ids are ints
    return int(get_jwt_identity())


def current_org_id() -> Optional[int]:
    return get_jwt().get('org_id')


def compute_effective_permissions(user_id: int):
    session = get_db()
    role_ids = {r.role_id for r in session.execute(select(UserRole).where(UserRole.user_id==user_id)).scalars()}
    perm_codes = set()
    if role_ids:
        role_perms = session.execute(select(RolePermission).where(RolePermission.role_id.in_(role_ids))).scalars().all()
        perm_ids = [rp.permission_id for rp in role_perms]
        if perm_ids:
            for p in session.execute(select(Permission).where(Permission.id.in_(perm_ids))).scalars():
                perm_codes.add(p.code)
    # Owner wildcard support (if role named Owner present)
    owner_role = session.execute(select(Role).where(Role.name=='Owner')).scalar_one_or_none()
    if owner_role and owner_role.id in role_ids:
        for p in session.execute(select(Permission)).scalars():
            perm_codes.add(p.code)
    return {
        'roles': sorted(role_ids),
        'perms': sorted(perm_codes),
    }


def assert_org_access(organization_id: int):
    """Abort 403 unless the caller's token is scoped to this organization.

    Tokens without an org_id claim are unscoped (platform staff).
    """
    org_id = current_org_id()
    if org_id is None:
        return
    if organization_id != org_id:
        abort(403, description='Organization access denied')
