import pytest
from flask import Flask
from vhc import get_db
from vhc.models.audit import AuditLog
from vhc.models.health_check import CustomerActivity
from vhc.models.repair_item import AuthorizationRecord
from vhc.utils.clock import utcnow
from tests.test_utils_seed import (
    create_health_check, create_repair_item, publish, reload_item, reload_health_check,
)

OPTIONS = [
    {'name': 'Standard', 'total_cents': 8000},
    {'name': 'Premium', 'total_cents': 15000, 'is_recommended': True},
]


@pytest.fixture()
def public_client(app_context: Flask):
    return app_context.test_client()


def _url(token, suffix=''):
    return f'/public/vhc/{token}{suffix}'


def test_unknown_and_expired_tokens(public_client):
    assert public_client.get(_url('does-not-exist')).status_code == 404
    hc = create_health_check()
    token = publish(hc, 'tok-expired', expired=True)
    resp = public_client.get(_url(token))
    assert resp.status_code == 410
    assert resp.get_json()['error']['detail'] == 'Link has expired'
    assert public_client.post(_url(token, '/repair-items/approve-all'), json={}).status_code == 410


def test_view_hides_deleted_and_children(public_client):
    hc = create_health_check(findings=[('Brake pads', 'red'), ('Wipers', 'amber'), ('Lights', 'green')])
    group = create_repair_item(hc, name='Brakes', is_group=True)
    child = create_repair_item(hc, name='Front pads', parent=group)
    create_repair_item(hc, name='Wipers', options=OPTIONS)
    create_repair_item(hc, name='Gone', deleted_at=utcnow())
    token = publish(hc, 'tok-view')
    resp = public_client.get(_url(token), headers={'User-Agent': 'Mozilla/5.0 (iPhone) Mobile Safari', 'X-Forwarded-For': '203.0.113.9, 10.0.0.1'})
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    names = [i['name'] for i in body['repair_items']]
    assert names == ['Brakes', 'Wipers']
    assert body['repair_items'][0]['children'] == [{'id': child.id, 'name': 'Front pads', 'severity': None}]
    # recommended option is the displayed default
    assert body['repair_items'][1]['price']['total_cents'] == 15000
    assert body['pending_count'] == 2
    assert body['health_check']['rag_counts'] == {'red': 1, 'amber': 1, 'green': 1}
    activity = get_db().query(CustomerActivity).filter_by(health_check_id=hc.id, activity_type='viewed').one()
    assert activity.device_type == 'mobile'
    assert activity.ip_address == '203.0.113.9'


def test_approve_pins_default_option_and_updates_status(public_client):
    hc = create_health_check()
    wipers = create_repair_item(hc, name='Wipers', options=OPTIONS)
    create_repair_item(hc, name='Bulb')
    token = publish(hc, 'tok-approve')
    resp = public_client.post(_url(token, f'/repair-items/{wipers.id}/approve'), json={'notes': 'Please call first'})
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    stored = reload_item(wipers.id)
    premium = [o for o in stored.options if o.name == 'Premium'][0]
    assert body['selected_option_id'] == premium.id
    assert body['status'] == 'partial_response'
    assert stored.outcome_status == 'authorised'
    assert stored.outcome_source == 'online'
    assert stored.outcome_set_by is None
    assert stored.customer_approved is True
    assert stored.customer_notes == 'Please call first'
    assert stored.selected_option_id == premium.id
    hc_row = reload_health_check(hc.id)
    assert hc_row.first_response_at is not None
    assert hc_row.fully_responded_at is None
    rec = get_db().query(AuthorizationRecord).filter_by(repair_item_id=wipers.id).one()
    assert rec.decision == 'approved'
    entry = get_db().query(AuditLog).filter_by(action='RPR.ITEM.CUSTOMER_APPROVE', entity_id=str(wipers.id)).one()
    assert entry.actor_type == 'customer'
    assert entry.actor_user_id is None


def test_approve_with_explicit_option(public_client):
    hc = create_health_check()
    wipers = create_repair_item(hc, name='Wipers', options=OPTIONS)
    token = publish(hc, 'tok-approve-explicit')
    standard = [o for o in wipers.options if o.name == 'Standard'][0]
    resp = public_client.post(_url(token, f'/repair-items/{wipers.id}/approve'), json={'selected_option_id': standard.id})
    assert resp.get_json()['selected_option_id'] == standard.id
    assert resp.get_json()['status'] == 'authorized'
    assert reload_health_check(hc.id).fully_responded_at is not None


def test_approve_rejects_foreign_option(public_client):
    hc = create_health_check()
    wipers = create_repair_item(hc, name='Wipers', options=OPTIONS)
    other = create_repair_item(create_health_check(), name='Other', options=OPTIONS)
    token = publish(hc, 'tok-approve-foreign')
    resp = public_client.post(_url(token, f'/repair-items/{wipers.id}/approve'), json={'selected_option_id': other.options[0].id})
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'Invalid option selected'
    assert reload_item(wipers.id).outcome_status is None


def test_customer_cannot_touch_items_of_another_health_check(public_client):
    hc = create_health_check()
    create_repair_item(hc)
    other = create_repair_item(create_health_check(), name='Not yours')
    token = publish(hc, 'tok-scope')
    resp = public_client.post(_url(token, f'/repair-items/{other.id}/approve'), json={})
    assert resp.status_code == 404
    resp = public_client.post(_url(token, '/repair-items/approve-all'), json={'selections': [{'repair_item_id': other.id}]})
    assert resp.status_code == 404
    assert reload_item(other.id).outcome_status is None


def test_customer_cannot_override_staff_decision(public_client):
    hc = create_health_check()
    item = create_repair_item(hc, outcome_status='deferred')
    token = publish(hc, 'tok-staff-decided')
    resp = public_client.post(_url(token, f'/repair-items/{item.id}/approve'), json={})
    assert resp.status_code == 409
    resp = public_client.post(_url(token, f'/repair-items/{item.id}/decline'), json={'reason': 'No'})
    assert resp.status_code == 409
    assert reload_item(item.id).outcome_status == 'deferred'


def test_decline_clears_selection(public_client):
    hc = create_health_check()
    item = create_repair_item(hc, options=OPTIONS)
    session = get_db()
    stored = reload_item(item.id)
    stored.selected_option_id = stored.options[0].id
    session.commit()
    token = publish(hc, 'tok-decline')
    resp = public_client.post(_url(token, f'/repair-items/{item.id}/decline'), json={'reason': 'Too dear', 'notes': 'maybe later'})
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['status'] == 'declined'
    stored = reload_item(item.id)
    assert stored.outcome_status == 'declined'
    assert stored.outcome_source == 'online'
    assert stored.customer_approved is False
    assert stored.customer_approved_at is not None
    assert stored.selected_option_id is None
    assert stored.customer_declined_reason == 'Too dear'
    assert stored.customer_notes == 'maybe later'


def test_approve_all_skips_decided_items(public_client):
    hc = create_health_check()
    a = create_repair_item(hc, name='A', options=OPTIONS)
    b = create_repair_item(hc, name='B', options=OPTIONS)
    declined = create_repair_item(hc, name='C', customer_approved=False)
    deferred = create_repair_item(hc, name='D', outcome_status='deferred')
    token = publish(hc, 'tok-approve-all')
    standard_b = [o for o in b.options if o.name == 'Standard'][0]
    resp = public_client.post(_url(token, '/repair-items/approve-all'), json={
        'selections': [{'repair_item_id': b.id, 'selected_option_id': standard_b.id}],
    })
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['approved_ids'] == [a.id, b.id]
    assert body['approved_count'] == 2
    assert body['skipped_ids'] == []
    assert body['status'] == 'authorized'
    premium_a = [o for o in reload_item(a.id).options if o.name == 'Premium'][0]
    assert reload_item(a.id).selected_option_id == premium_a.id
    assert reload_item(b.id).selected_option_id == standard_b.id
    assert reload_item(declined.id).customer_approved is False
    assert reload_item(deferred.id).outcome_status == 'deferred'
    records = get_db().query(AuthorizationRecord).filter_by(health_check_id=hc.id).all()
    assert sorted(r.repair_item_id for r in records) == [a.id, b.id]
    # nothing left to approve
    resp = public_client.post(_url(token, '/repair-items/approve-all'), json={})
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'No pending repair items'


def test_approve_all_invalid_selection_writes_nothing(public_client):
    hc = create_health_check()
    a = create_repair_item(hc, name='A', options=OPTIONS)
    b = create_repair_item(hc, name='B', options=OPTIONS)
    token = publish(hc, 'tok-approve-all-invalid')
    resp = public_client.post(_url(token, '/repair-items/approve-all'), json={
        'selections': [{'repair_item_id': b.id, 'selected_option_id': a.options[0].id}],
    })
    assert resp.status_code == 400
    assert reload_item(a.id).outcome_status is None
    assert reload_item(b.id).outcome_status is None


def test_approve_all_skips_item_lost_to_race(public_client, monkeypatch):
    import vhc.routes.public as public_mod
    hc = create_health_check()
    a = create_repair_item(hc, name='A')
    b = create_repair_item(hc, name='B')
    token = publish(hc, 'tok-approve-all-race')
    real_update = public_mod.conditional_update

    def racing_update(session, item_id, guard, values):
        if item_id == b.id:
            return False  # a staff member decided B in the meantime
        return real_update(session, item_id, guard, values)
    monkeypatch.setattr(public_mod, 'conditional_update', racing_update)
    body = public_client.post(_url(token, '/repair-items/approve-all'), json={}).get_json()
    assert body['approved_ids'] == [a.id]
    assert body['skipped_ids'] == [b.id]
    assert body['status'] == 'partial_response'


def test_decline_all_uses_default_reason(public_client):
    hc = create_health_check()
    a = create_repair_item(hc, name='A')
    b = create_repair_item(hc, name='B', outcome_status='authorised')
    token = publish(hc, 'tok-decline-all')
    body = public_client.post(_url(token, '/repair-items/decline-all'), json={}).get_json()
    assert body['declined_ids'] == [a.id]
    assert body['status'] == 'authorized'
    assert reload_item(a.id).customer_declined_reason == 'Declined all'
    assert reload_item(b.id).outcome_status == 'authorised'


def test_sign_requires_every_item_decided(public_client):
    hc = create_health_check()
    a = create_repair_item(hc, name='A')
    b = create_repair_item(hc, name='B')
    token = publish(hc, 'tok-sign')
    resp = public_client.post(_url(token, '/repair-items/sign'), json={})
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'Signature data is required'
    public_client.post(_url(token, f'/repair-items/{a.id}/approve'), json={})
    resp = public_client.post(_url(token, '/repair-items/sign'), json={'signature_data': 'data:image/png;base64,AAA'})
    assert resp.status_code == 409
    assert resp.get_json()['error']['detail'] == '1 repair item(s) still need a decision before signing'
    public_client.post(_url(token, f'/repair-items/{b.id}/decline'), json={})
    resp = public_client.post(_url(token, '/repair-items/sign'), json={'signature_data': 'data:image/png;base64,AAA'})
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['signed_at'] is not None
    hc_row = reload_health_check(hc.id)
    assert hc_row.signature_data == 'data:image/png;base64,AAA'
    assert hc_row.status == 'authorized'
    records = {r.repair_item_id: r for r in get_db().query(AuthorizationRecord).filter_by(health_check_id=hc.id)}
    assert records[a.id].has_signature is True
    assert records[b.id].has_signature is False


def test_closed_health_check_rejects_customer_decisions(public_client):
    hc = create_health_check()
    item = create_repair_item(hc)
    token = publish(hc, 'tok-closed')
    session = get_db()
    reload_health_check(hc.id).status = 'closed'
    session.commit()
    assert public_client.get(_url(token)).status_code == 200
    resp = public_client.post(_url(token, f'/repair-items/{item.id}/approve'), json={})
    assert resp.status_code == 409
    assert reload_item(item.id).outcome_status is None
