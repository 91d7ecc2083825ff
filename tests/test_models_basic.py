import datetime as dt

import pytest
from pydantic import ValidationError

from penguin_stats.models import ArkPlannerPlan, Drop, ReportPayload, Stage, StageDrop


def test_stage_drop_timestamps_millis_and_iso_agree():
    a = StageDrop.model_validate({"stageId": "s", "start": 1556668800000})
    b = StageDrop.model_validate({"stageId": "s", "start": "2019-05-01T00:00:00Z"})
    assert a.start == b.start == dt.datetime(2019, 5, 1, tzinfo=dt.timezone.utc)
    assert a.end is None


def test_stage_drop_is_frozen_and_permissive():
    rec = StageDrop.model_validate({"stageId": "s", "itemId": "i", "quantity": -3, "times": 0})
    assert rec.quantity == -3
    assert rec.rate == 0.0
    with pytest.raises(ValidationError):
        rec.quantity = 4


def test_stage_drop_dumps_epoch_millis():
    rec = StageDrop.model_validate({"stageId": "s", "start": 1556668800000, "end": 1556755200000})
    out = rec.model_dump(by_alias=True, mode="json")
    assert out["start"] == 1556668800000
    assert out["end"] == 1556755200000


def test_bad_timestamp_rejected():
    with pytest.raises(ValidationError):
        StageDrop.model_validate({"stageId": "s", "start": "not a date"})


def test_report_payload_omits_empty_optional_fields():
    p = ReportPayload(server="US", stage_id="main_01-07", drops=[Drop(item_id="30012", quantity=2)])
    body = p.to_wire()
    assert body == {
        "server": "US",
        "stageId": "main_01-07",
        "drops": [{"dropType": "NORMAL_DROP", "itemId": "30012", "quantity": 2}],
    }
    p2 = ReportPayload(stage_id="x", drops=[], source="MyApp", version="1.2")
    assert p2.to_wire()["source"] == "MyApp"
    assert p2.to_wire()["server"] == "CN"


def test_stage_keeps_unknown_keys():
    st = Stage.model_validate({"stageId": "main_01-07", "code": "1-7", "apCost": 6, "minClearTime": 90000})
    assert st.ap_cost == 6
    assert st.model_dump(by_alias=True)["minClearTime"] == 90000


def test_plan_coerces_string_counts():
    plan = ArkPlannerPlan.model_validate({
        "cost": 1200,
        "stages": [{"stage": "1-7", "count": "12.0", "items": {"Orirock": "24"}}],
        "syntheses": [{"target": "Orirock Cube", "count": "3", "materials": {"Orirock": "9"}}],
        "values": [{"level": "1", "items": [{"name": "Orirock", "value": "1.5"}]}],
    })
    assert plan.stages[0].count == 12.0
    assert plan.values[0].items[0].value == 1.5
