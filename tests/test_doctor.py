from prober.workflows.doctor import build_doctor_report, format_doctor_report
from prober.workflows.probe_config import ScanConfig


def _check(report, name):
    return next(item for item in report["checks"] if item["name"] == name)


def test_doctor_ok_with_writable_log(tmp_path):
    report = build_doctor_report(config=ScanConfig(discovery_log=tmp_path / "valid_urls.log"))
    assert report["ok"] is True
    assert _check(report, "aiohttp")["status"] == "ok"
    assert _check(report, "discovery_log")["status"] == "ok"


def test_doctor_flags_unwritable_log_location(tmp_path):
    report = build_doctor_report(config=ScanConfig(discovery_log=tmp_path / "missing" / "dir" / "log.txt"))
    assert report["ok"] is False
    assert _check(report, "discovery_log")["status"] == "missing"


def test_doctor_high_concurrency_is_informational(tmp_path):
    report = build_doctor_report(config=ScanConfig(concurrency=50, discovery_log=tmp_path / "log.txt"))
    assert report["ok"] is True
    assert _check(report, "concurrency")["status"] == "attention"


def test_doctor_reports_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("PROBER_CONCURRENCY", "3")
    monkeypatch.setenv("PROBER_DISCOVERY_LOG", str(tmp_path / "found.log"))
    report = build_doctor_report()
    assert report["environment"]["PROBER_CONCURRENCY"] == "3"
    assert report["config"]["concurrency"] == 3
    text = format_doctor_report(report)
    assert text.startswith("Prober doctor")
    assert "PROBER_CONCURRENCY=3" in text
