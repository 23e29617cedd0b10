"""JSON report output."""

from __future__ import annotations

import json
from datetime import date

from stalker.core.models import (
    BatchTestResult,
    Channel,
    SubscriptionInfo,
    SubscriptionStatus,
    WorkingCredential,
)
from stalker.output.report import StalkerReportGenerator


def test_writes_model_with_metadata(tmp_path):
    result = BatchTestResult(
        portal_url="http://portal.test/c",
        working=[
            WorkingCredential(
                mac="00:1A:79:00:00:01",
                profile={"id": "1"},
                subscription=SubscriptionInfo(
                    status=SubscriptionStatus.ACTIVE,
                    expiry_date=date(2030, 1, 1),
                    days_remaining=100,
                ),
            )
        ],
        failed=["00:1A:79:00:00:02"],
    )

    path = StalkerReportGenerator(version="9.9").generate_json(result, tmp_path / "out" / "batch.json")

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["report"]["tool"] == "StalkerKit"
    assert data["report"]["version"] == "9.9"
    sub = data["data"]["working"][0]["subscription"]
    assert sub == {
        "status": "active",
        "expiry_date": "2030-01-01",
        "days_remaining": 100,
        "source_field": None,
        "raw_value": None,
    }
    assert data["data"]["failed"] == ["00:1A:79:00:00:02"]


def test_writes_lists_and_dicts(tmp_path):
    channels = [Channel(id=1, name="One", extra_field="x")]
    gen = StalkerReportGenerator()

    listing = json.loads(gen.generate_json(channels, tmp_path / "ch.json").read_text())
    mixed = json.loads(gen.generate_json({"channels": channels}, tmp_path / "mix.json").read_text())

    assert listing["data"][0]["id"] == "1"
    assert listing["data"][0]["extra_field"] == "x"
    assert mixed["data"]["channels"][0]["name"] == "One"
