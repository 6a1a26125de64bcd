from datetime import datetime, timezone
from vhc.models.health_check import Finding
from vhc.models.repair_item import RepairItem
from vhc.services.severity import derive_severity


def _finding(fid, rag):
    return Finding(id=fid, name=f'f{fid}', rag_status=rag)


def _item(iid, findings=(), is_group=False, rag_status=None):
    item = RepairItem(id=iid, name=f'i{iid}', is_group=is_group, rag_status=rag_status)
    item.findings = list(findings)
    return item


def test_leaf_red_beats_amber():
    assert derive_severity(_item(1, [_finding(1, 'amber'), _finding(2, 'red')])) == 'red'
    assert derive_severity(_item(2, [_finding(3, 'green'), _finding(4, 'amber')])) == 'amber'


def test_green_only_falls_back_to_stored_rag():
    assert derive_severity(_item(3, [_finding(5, 'green')])) is None
    assert derive_severity(_item(4, [_finding(6, 'green')], rag_status='amber')) == 'amber'
    assert derive_severity(_item(5, rag_status='green')) is None


def test_group_takes_worst_child():
    group = _item(10, is_group=True)
    group.children = [
        _item(11, [_finding(7, 'amber')]),
        _item(12, [_finding(8, 'red')]),
    ]
    assert derive_severity(group) == 'red'


def test_group_ignores_its_own_findings_list():
    group = _item(20, [_finding(9, 'red')], is_group=True)
    group.children = [_item(21, [_finding(10, 'amber')])]
    assert derive_severity(group) == 'amber'


def test_group_without_qualifying_children_uses_stored_rag():
    group = _item(30, is_group=True, rag_status='red')
    group.children = [_item(31, [_finding(11, 'green')])]
    assert derive_severity(group) == 'red'


def test_group_skips_deleted_children():
    group = _item(40, is_group=True)
    gone = _item(41, [_finding(12, 'red')])
    gone.deleted_at = datetime(2026, 5, 1, tzinfo=timezone.utc)
    group.children = [gone, _item(42, [_finding(13, 'amber')])]
    assert derive_severity(group) == 'amber'
