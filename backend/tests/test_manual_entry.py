from flask import Flask
from vhc import get_db
from vhc.models.audit import AuditLog
from tests.test_utils_seed import create_health_check, create_repair_item, finding_ids, reload_health_check
from tests.test_lifecycle_helpers import seed_advisor, post_action, decide


def _create(client, hc_id, payload, headers, expected_status=201):
    resp = client.post(f'/health-checks/{hc_id}/repair-items', json=payload, headers=headers)
    assert resp.status_code == expected_status, resp.get_json()
    return resp.get_json()


def test_create_priced_item_with_options(app_context: Flask):
    client = app_context.test_client()
    _, headers = seed_advisor('manual_create@example.com')
    hc = create_health_check(findings=[('Battery', 'amber')])
    body = _create(client, hc.id, {
        'name': 'Replace battery',
        'finding_ids': finding_ids(hc),
        'labour_cents': 2500,
        'parts_cents': 9000,
        'options': [
            {'name': 'Economy', 'labour_cents': 2500, 'parts_cents': 6000, 'sort_order': 1},
            {'name': 'OEM', 'labour_cents': 2500, 'parts_cents': 11000, 'sort_order': 2, 'is_recommended': True},
        ],
    }, headers)
    assert body['severity'] == 'amber'
    assert body['outcome'] == 'incomplete'
    assert [o['name'] for o in body['options']] == ['Economy', 'OEM']
    assert body['options'][1]['vat_cents'] == 2700
    assert body['options'][1]['total_cents'] == 16200
    # recommended option drives the displayed price
    assert body['price']['option_id'] == body['options'][1]['id']
    assert body['price']['total_cents'] == 16200


def test_create_item_without_options_has_vat_totals(app_context: Flask):
    client = app_context.test_client()
    _, headers = seed_advisor('manual_vat@example.com')
    hc = create_health_check()
    body = _create(client, hc.id, {'name': 'Headlight bulb', 'labour_cents': 1000, 'parts_cents': 500, 'rag_status': 'red'}, headers)
    assert body['price'] == {
        'labour_cents': 1000, 'parts_cents': 500, 'subtotal_cents': 1500,
        'vat_cents': 300, 'total_cents': 1800, 'option_id': None,
    }
    assert body['severity'] == 'red'


def test_create_validation(app_context: Flask):
    client = app_context.test_client()
    _, headers = seed_advisor('manual_invalid@example.com')
    hc = create_health_check(findings=[('Battery', 'amber')])
    other = create_health_check(findings=[('Exhaust', 'red')])
    _create(client, hc.id, {'name': ' '}, headers, 400)
    _create(client, hc.id, {'name': 'X', 'labour_cents': -1}, headers, 400)
    _create(client, hc.id, {'name': 'X', 'rag_status': 'purple'}, headers, 400)
    body = _create(client, hc.id, {'name': 'X', 'finding_ids': finding_ids(other)}, headers, 400)
    assert body['error']['detail'] == 'finding_ids must belong to this health check'
    body = _create(client, hc.id, {'name': 'G', 'is_group': True, 'finding_ids': finding_ids(hc)}, headers, 400)
    assert body['error']['detail'] == 'Groups cannot link findings directly'
    body = _create(client, hc.id, {'name': 'L', 'child_ids': [1]}, headers, 400)
    assert body['error']['detail'] == 'child_ids only allowed for groups'


def test_group_collects_children(app_context: Flask):
    client = app_context.test_client()
    _, headers = seed_advisor('manual_group@example.com')
    hc = create_health_check(findings=[('Front pads', 'amber'), ('Front discs', 'red')])
    pads_f, discs_f = finding_ids(hc)
    pads = _create(client, hc.id, {'name': 'Pads', 'finding_ids': [pads_f]}, headers)
    discs = _create(client, hc.id, {'name': 'Discs', 'finding_ids': [discs_f]}, headers)
    group = _create(client, hc.id, {'name': 'Front brakes', 'is_group': True, 'child_ids': [pads['id'], discs['id']]}, headers)
    assert group['severity'] == 'red'
    assert [c['id'] for c in group['children']] == [pads['id'], discs['id']]
    assert group['outcome'] == 'incomplete'
    # a child can only belong to one group
    body = _create(client, hc.id, {'name': 'Again', 'is_group': True, 'child_ids': [pads['id']]}, headers, 400)
    assert body['error']['detail'] == f"Repair item {pads['id']} cannot join a group"
    for child in (pads['id'], discs['id']):
        post_action(client, child, 'no-labour-required', headers)
        post_action(client, child, 'no-parts-required', headers)
    assert post_action(client, group['id'], 'authorise', headers)['outcome'] == 'authorised'
    # staff outcomes stay on the item they were applied to
    assert post_action(client, pads['id'], 'authorise', headers)['outcome'] == 'authorised'
    listing = client.get(f'/health-checks/{hc.id}/repair-items', headers=headers).get_json()
    assert [i['id'] for i in listing['repair_items']] == [group['id']]


def test_select_option(app_context: Flask):
    client = app_context.test_client()
    _, headers = seed_advisor('manual_select@example.com')
    hc = create_health_check()
    item = create_repair_item(hc, options=[{'name': 'A', 'total_cents': 100}, {'name': 'B', 'total_cents': 200}])
    foreign = create_repair_item(hc, options=[{'name': 'Z', 'total_cents': 999}])
    b_id = [o.id for o in item.options if o.name == 'B'][0]
    body = post_action(client, item.id, 'select-option', headers, {'option_id': b_id})
    assert body['selected_option_id'] == b_id
    assert body['price']['total_cents'] == 200
    body = post_action(client, item.id, 'select-option', headers, {'option_id': foreign.options[0].id}, expected_status=400)
    assert body['error']['detail'] == 'Invalid option selected'
    body = post_action(client, item.id, 'select-option', headers, {'option_id': None})
    assert body['selected_option_id'] is None
    assert body['price']['total_cents'] == 100


def test_work_progress_flags(app_context: Flask):
    client = app_context.test_client()
    _, headers = seed_advisor('manual_progress@example.com')
    hc = create_health_check()
    item = create_repair_item(hc, ready=False)
    post_action(client, item.id, 'labour-status', headers, {'status': 'done'}, expected_status=400)
    assert post_action(client, item.id, 'labour-status', headers, {'status': 'in_progress'})['outcome'] == 'incomplete'
    post_action(client, item.id, 'labour-status', headers, {'status': 'complete'})
    assert post_action(client, item.id, 'parts-status', headers, {'status': 'complete'})['outcome'] == 'ready'
    post_action(client, item.id, 'parts-status', headers, {'status': 'pending'})
    assert post_action(client, item.id, 'no-parts-required', headers)['outcome'] == 'ready'
    resp = client.delete(f'/repair-items/{item.id}/no-parts-required', headers=headers)
    assert resp.get_json()['outcome'] == 'incomplete'
    assert resp.get_json()['no_parts_required'] is False


def test_work_done_rules(app_context: Flask):
    client = app_context.test_client()
    _, headers = seed_advisor('manual_work@example.com')
    hc = create_health_check()
    item = create_repair_item(hc)
    other_hc = create_health_check()
    assert client.post(f'/health-checks/{other_hc.id}/repair-items/{item.id}/work-done', headers=headers).status_code == 404
    resp = client.post(f'/health-checks/{hc.id}/repair-items/{item.id}/work-done', headers=headers)
    assert resp.get_json()['work_completed_at'] is not None
    resp = client.delete(f'/health-checks/{hc.id}/repair-items/{item.id}/work-done', headers=headers)
    assert resp.get_json()['work_completed_at'] is None
    decide(client, item.id, 'deleted', headers)
    resp = client.post(f'/health-checks/{hc.id}/repair-items/{item.id}/work-done', headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()['error']['detail'] == 'Repair item is deleted'


def test_publish_issues_fresh_token(app_context: Flask):
    client = app_context.test_client()
    _, headers = seed_advisor('manual_publish@example.com')
    hc = create_health_check()
    create_repair_item(hc)
    resp = client.post(f'/health-checks/{hc.id}/publish', headers=headers)
    assert resp.status_code == 201, resp.get_json()
    first = resp.get_json()['public_token']
    assert resp.get_json()['status'] == 'sent'
    assert resp.get_json()['token_expires_at'] is not None
    assert client.get(f'/public/vhc/{first}').status_code == 200
    second = client.post(f'/health-checks/{hc.id}/publish', headers=headers).get_json()['public_token']
    assert second != first
    assert client.get(f'/public/vhc/{first}').status_code == 404
    assert reload_health_check(hc.id).public_token == second


def test_detail_summary_excludes_deleted_value(app_context: Flask):
    client = app_context.test_client()
    _, headers = seed_advisor('manual_summary@example.com')
    hc = create_health_check()
    kept = create_repair_item(hc, name='Kept', total_cents=1000)
    gone = create_repair_item(hc, name='Gone', total_cents=5000)
    decide(client, kept.id, 'authorised', headers)
    decide(client, gone.id, 'deleted', headers)
    summary = client.get(f'/health-checks/{hc.id}', headers=headers).get_json()['summary']
    assert summary['counts']['authorised'] == 1
    assert summary['counts']['deleted'] == 1
    assert summary['totals_cents']['authorised'] == 1000
    assert 'deleted' not in summary['totals_cents']
    assert summary['total_cents'] == 1000


def test_publish_is_audited_against_health_check(app_context: Flask):
    client = app_context.test_client()
    _, headers = seed_advisor('manual_publish_audit@example.com')
    hc = create_health_check()
    body = client.post(f'/health-checks/{hc.id}/publish', headers=headers).get_json()
    entry = get_db().query(AuditLog).filter_by(action='VHC.PUBLISH', entity_id=str(hc.id)).one()
    assert entry.entity == 'HealthCheck'
    assert entry.meta == {'token_expires_at': body['token_expires_at']}
