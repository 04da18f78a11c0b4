"""Integration tests for the Celery configuration."""

import pytest

pytestmark = pytest.mark.integration


class TestCeleryConfig:
    def test_celery_app_is_importable(self):
        from config.celery import app

        assert app.main == "petmart"

    def test_celery_app_exported_from_init(self):
        from config import celery_app

        assert celery_app.main == "petmart"

    def test_celery_serializer_is_json(self, settings):
        assert settings.CELERY_TASK_SERIALIZER == "json"
        assert settings.CELERY_RESULT_SERIALIZER == "json"
        assert settings.CELERY_ACCEPT_CONTENT == ["json"]

    def test_celery_timezone_matches_django(self, settings):
        assert settings.CELERY_TIMEZONE == settings.TIME_ZONE

    def test_expiry_is_scheduled(self, settings):
        entry = settings.CELERY_BEAT_SCHEDULE["expire-stale-payments"]
        assert entry["task"] == "orders.expire_stale_payments"

    def test_expiry_task_is_registered(self):
        from config.celery import app
        from modules.orders import tasks  # noqa: F401

        assert "orders.expire_stale_payments" in app.tasks
