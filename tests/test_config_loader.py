import pytest
from pydantic import ValidationError

from src.integrations.contracts.interfaces import PaymentMethod, PaymentProvider
from src.utils.config_loader import PaymentsConfig, load_payments_config


def test_bundled_config_loads():
    config = load_payments_config()

    assert config.primary_provider == PaymentProvider.FLIP
    assert config.polling[PaymentMethod.VIRTUAL_ACCOUNT].poll_interval_seconds == 30
    assert config.fee_rule(PaymentProvider.XENDIT, "VIRTUAL_ACCOUNT").fixed == 4000
    assert config.flip.mobile_transfer.bank_code == "MANDIRI"
    assert config.monitor.catch_up_limit == 20


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "payments.yml"
    path.write_text("primary_provider: XENDIT\nmonitor:\n  enabled: false\n", encoding="utf-8")
    monkeypatch.setenv("PAYMENTS_CONFIG", str(path))

    config = load_payments_config()

    assert config.primary_provider == PaymentProvider.XENDIT
    assert config.monitor.enabled is False
    # untouched sections keep their defaults
    assert config.polling[PaymentMethod.QRIS].max_polling_seconds == 1800


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_payments_config(tmp_path / "nope.yml")


def test_invalid_config_is_rejected(tmp_path):
    path = tmp_path / "bad.yml"
    path.write_text("polling:\n  QRIS: {max_polling_seconds: 0, poll_interval_seconds: 10}\n", encoding="utf-8")

    with pytest.raises(ValidationError):
        load_payments_config(path)


def test_method_lookup_defaults():
    config = PaymentsConfig(methods={})

    assert config.method(PaymentMethod.QRIS).enabled is True
    assert config.fee_rule(PaymentProvider.FLIP, "UNKNOWN") is None
