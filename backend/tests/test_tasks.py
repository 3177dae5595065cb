import httpx
import pytest

from portfolio_tracker.core.config import settings
from portfolio_tracker.core.exceptions import RateUnavailableError
from portfolio_tracker.scheduler.celery_app import app
from portfolio_tracker.tasks import daily_values
from portfolio_tracker.tasks.stock_updater import run_stock_updater


def client_for(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_stock_updater_skips_without_base_url(monkeypatch):
    monkeypatch.setattr(settings, "STOCK_UPDATER_BASE_URL", "")

    assert run_stock_updater("tw")["status"] == "skipped"


def test_stock_updater_calls_run_endpoint(monkeypatch):
    monkeypatch.setattr(settings, "STOCK_UPDATER_BASE_URL", "http://updater.local/")
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json={"ok": True})

    result = run_stock_updater("us", client=client_for(handler))

    assert result == {"status": "completed", "stock_type": "us", "status_code": 200}
    assert seen[0].path == "/run"
    assert seen[0].params["stockType"] == "us"


def test_stock_updater_reports_failures(monkeypatch):
    monkeypatch.setattr(settings, "STOCK_UPDATER_BASE_URL", "http://updater.local")

    bad_status = run_stock_updater("tw", client=client_for(lambda r: httpx.Response(502)))

    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    unreachable = run_stock_updater("tw", client=client_for(refuse))

    assert bad_status["status"] == "failed"
    assert bad_status["status_code"] == 502
    assert unreachable["status"] == "failed"
    assert "refused" in unreachable["error"]


def test_daily_value_task_reports_missing_rate(monkeypatch):
    async def no_rate():
        raise RateUnavailableError("Cannot find exchange rate information for USD-TWD")

    monkeypatch.setattr(daily_values, "_record_daily_values_async", no_rate)

    result = daily_values.record_daily_values()

    assert result["status"] == "failed"
    assert "USD-TWD" in result["error"]


def test_daily_value_task_summary(monkeypatch):
    async def recorded():
        return {"date": "2026-10-18", "recorded": 3, "skipped": 1, "failed": []}

    monkeypatch.setattr(daily_values, "_record_daily_values_async", recorded)

    result = daily_values.record_daily_values()

    assert result["status"] == "completed"
    assert result["recorded"] == 3
    assert result["duration_ms"] >= 0


def test_beat_schedule_covers_every_job():
    schedule = app.conf.beat_schedule

    assert schedule["record-daily-values"]["task"] == "portfolio_tracker.tasks.daily_values.record_daily_values"
    assert schedule["update-tw-stock-prices"]["args"] == ("tw",)
    assert schedule["update-us-stock-prices"]["args"] == ("us",)
    assert app.conf.timezone == "Asia/Taipei"
