#!/usr/bin/env python
"""Idempotent seed script for permissions, roles, the first owner and reason catalogs.

Usage:
    python backend/scripts/seed_authz.py                  # seed normally
    python backend/scripts/seed_authz.py --show-roles     # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run        # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --org-id 7       # also seed reason catalogs for organization 7
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select, text
from werkzeug.security import generate_password_hash

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from vhc import create_app, get_db  # type: ignore
from vhc.models.authz import Permission, Role, RolePermission, User, UserRole
from vhc.models.reasons import DeclinedReason, DeletedReason
from vhc.constants.permissions import (
    SERVICE_ACTIONS, ROLE_PRESETS, DEFAULT_DECLINED_REASONS, DEFAULT_DELETED_REASONS,
    build_all_permission_codes,
)


def ensure_permissions(session):
    existing = {p.code for p in session.execute(select(Permission)).scalars().all()}
    created = 0
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            code = f"{svc}.{act}"
            if code not in existing:
                session.add(Permission(code=code, service=svc, action=act, description_i18n={"en": code.replace('.', ' - ')}))
                created += 1
    session.flush()
    return created


def ensure_roles(session):
    existing_roles = {r.name: r for r in session.execute(select(Role)).scalars().all()}
    created = 0
    for role_name in ROLE_PRESETS:
        if role_name not in existing_roles:
            role = Role(name=role_name, is_system=True, description_i18n={"en": role_name})
            session.add(role)
            existing_roles[role_name] = role
            created += 1
    session.flush()

    all_codes = set(build_all_permission_codes())
    for role_name, role in existing_roles.items():
        raw_codes = ROLE_PRESETS.get(role_name)
        if raw_codes is None:
            continue  # custom role, not ours to manage
        desired_codes = all_codes if '*' in raw_codes else {c for c in raw_codes if '.' in c}
        current_codes = {rp.permission.code for rp in role.permissions}
        to_add = desired_codes - current_codes
        if to_add:
            perms_map = {p.code: p for p in session.execute(select(Permission).where(Permission.code.in_(list(to_add)))).scalars()}
            for code in to_add:
                if code not in perms_map:
                    print(f"[WARN] Missing permission referenced by role {role_name}: {code}")
                    continue
                session.add(RolePermission(role=role, permission=perms_map[code]))
    session.flush()
    return created


def ensure_initial_admin(session, org_id=None):
    owner_role = session.execute(select(Role).where(Role.name=='Owner')).scalar_one_or_none()
    if not owner_role:
        print('[WARN] Owner role missing; skipping admin user creation')
        return None
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
    existing_admin = session.execute(select(User).where(User.email==admin_email)).scalar_one_or_none()
    if existing_admin:
        return existing_admin
    user = User(
        name='Owner',
        email=admin_email,
        organization_id=org_id,
        password_hash=generate_password_hash(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!')),
    )
    session.add(user)
    session.flush()
    session.add(UserRole(user_id=user.id, role_id=owner_role.id))
    print(f"[INFO] Created initial admin user {admin_email} with temporary password.")
    return user


def ensure_reasons(session, org_id: int):
    """Default declined/deleted reason catalogs for one organization."""
    created = 0
    for model, defaults in ((DeclinedReason, DEFAULT_DECLINED_REASONS), (DeletedReason, DEFAULT_DELETED_REASONS)):
        existing = {
            r.reason for r in session.execute(select(model).where(model.organization_id == org_id)).scalars()
        }
        for reason, requires_notes in defaults:
            if reason not in existing:
                session.add(model(organization_id=org_id, reason=reason, requires_notes=requires_notes, is_active=True))
                created += 1
    session.flush()
    return created


def print_role_summary(session):
    rows = []
    for role in session.execute(select(Role)).scalars().all():
        perms = sorted(rp.permission.code for rp in role.permissions)
        rows.append((role.name, len(perms), perms[:8]))
    if not rows:
        print("[INFO] No roles present.")
        return
    name_w = max(len(r[0]) for r in rows)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, cnt, sample in rows:
        print(f"{name.ljust(name_w)} | {str(cnt).rjust(5)} | {', '.join(sample)}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed RBAC permissions, roles and reason catalogs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--org-id', type=int, default=os.getenv('SEED_ORG_ID'), help='Organization for the owner user and default reasons')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    org_id = int(args.org_id) if args.org_id is not None else None
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            # Ensure tables exist (lightweight fallback if migrations not run yet)
            session.execute(text('SELECT 1 FROM permissions LIMIT 1'))
        except Exception:
            # Auto-create schema for bootstrap; in real env prefer alembic upgrade
            session.rollback()
            from vhc.models.authz import Base
            from vhc.models import audit, health_check, reasons, repair_item  # noqa: F401
            Base.metadata.create_all(session.get_bind())
        finally:
            session.commit()

        try:
            created_p = ensure_permissions(session)
            created_r = ensure_roles(session)
            ensure_initial_admin(session, org_id)
            created_reasons = ensure_reasons(session, org_id) if org_id is not None else 0
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Permissions would create: {created_p}, Roles would create: {created_r}, Reasons would create: {created_reasons}")
            else:
                session.commit()
                print(f"[DONE] Permissions created: {created_p}, Roles created: {created_r}, Reasons created: {created_reasons}")
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(session)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
