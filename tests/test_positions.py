from models import Candidate
from positions import group_number, group_positions, live_group


def candidates(*positions):
    return [Candidate(id=i + 1, name=f"C{i}", position=p, order_index=i)
            for i, p in enumerate(positions)]


def test_groups_keep_upload_order():
    groups = group_positions(candidates("President", "President", "Treasurer", "Secretary"))
    assert [(g.position, g.first_index, g.last_index) for g in groups] == [
        ("President", 0, 1), ("Treasurer", 2, 2), ("Secretary", 3, 3)]


def test_live_group_contains_index():
    groups = group_positions(candidates("President", "President", "Treasurer"))
    assert live_group(groups, 1).position == "President"
    assert live_group(groups, 2).position == "Treasurer"
    assert group_number(groups, live_group(groups, 2)) == 2


def test_live_group_falls_back_to_first():
    groups = group_positions(candidates("President", "Treasurer"))
    assert live_group(groups, 7).position == "President"


def test_no_positions():
    groups = group_positions(candidates(None, None))
    assert groups == []
    assert live_group(groups, 0) is None
