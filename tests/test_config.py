from refurbops.config import DEFAULT_TAT_ALLOWANCE_DAYS, Settings, get_settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.TAT_ALLOWANCE_DAYS == DEFAULT_TAT_ALLOWANCE_DAYS
    assert settings.TAT_APPROACHING_WINDOW_HOURS == 24
    assert settings.PO_AGING_THRESHOLD_DAYS == 10
    assert settings.MAX_ACTIVE_REPAIRS_PER_ENGINEER == 10
    assert settings.is_sqlite


def test_allowances_from_comma_separated_env(monkeypatch):
    monkeypatch.setenv("TAT_ALLOWANCE_DAYS", "under_repair=4, IN_PAINT=1")

    settings = Settings(_env_file=None)

    assert settings.TAT_ALLOWANCE_DAYS == {"UNDER_REPAIR": 4, "IN_PAINT": 1}


def test_allowances_from_json_env(monkeypatch):
    monkeypatch.setenv("TAT_ALLOWANCE_DAYS", '{"READY_FOR_REPAIR": 2}')

    assert Settings(_env_file=None).TAT_ALLOWANCE_DAYS == {"READY_FOR_REPAIR": 2}


def test_blank_secrets_are_unset(monkeypatch):
    monkeypatch.setenv("CRON_SECRET", "  ")
    monkeypatch.setenv("WAREHOUSE_MANAGER_EMAIL", "")

    settings = Settings(_env_file=None)

    assert settings.CRON_SECRET is None
    assert settings.WAREHOUSE_MANAGER_EMAIL is None


def test_cors_origins_comma_separated(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "https://ops.comprint.test, http://localhost:3000")

    assert Settings(_env_file=None).CORS_ORIGINS == ["https://ops.comprint.test", "http://localhost:3000"]


def test_email_configured_needs_credentials():
    assert not Settings(_env_file=None, SMTP_USER="", SMTP_PASSWORD="").email_configured
    assert Settings(_env_file=None, SMTP_USER="alerts", SMTP_PASSWORD="pw").email_configured


def test_get_settings_builds_independent_instances():
    first = get_settings(_env_file=None, MAX_ACTIVE_REPAIRS_PER_ENGINEER=3)
    second = get_settings(_env_file=None)

    assert first is not second
    assert first.MAX_ACTIVE_REPAIRS_PER_ENGINEER == 3
    assert second.MAX_ACTIVE_REPAIRS_PER_ENGINEER == 10
