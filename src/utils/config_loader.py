"""
Configuration loader for the payment gateway service
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from src.integrations.contracts.interfaces import PaymentMethod, PaymentProvider

logger = logging.getLogger(__name__)


class MobileTransferConfig(BaseModel):
    """Bank account shown for Flip in-app transfer instructions"""

    bank_name: str = "Bank Mandiri"
    bank_code: str = "MANDIRI"
    account_number: str = "1370-0099-8877-6655"
    account_name_prefix: str = "FLIP - "
    expiry_hours: int = Field(default=24, ge=1)


class FlipConfig(BaseModel):
    """Flip credentials and endpoints"""

    base_url: str = "https://fm-dev-box.flip.id/"
    secret_key_env: str = "FLIP_SECRET_KEY"
    validation_key_env: str = "FLIP_VALIDATION_KEY"
    webhook_url: Optional[str] = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    default_sender_email: str = "noreply@example.com"
    mobile_transfer: MobileTransferConfig = Field(default_factory=MobileTransferConfig)


class XenditConfig(BaseModel):
    """Xendit credentials and endpoints"""

    base_url: str = "https://api.xendit.co"
    secret_key_env: str = "XENDIT_SECRET_KEY"
    webhook_token_env: str = "XENDIT_WEBHOOK_TOKEN"
    callback_url: str = "https://your-server.com/api/v1/webhooks/xendit"
    success_redirect_url: str = "https://yourapp.com/payment/success"
    failure_redirect_url: str = "https://yourapp.com/payment/failure"
    timeout_seconds: float = Field(default=30.0, gt=0)
    qris_minimum_amount: int = Field(default=1000, ge=0)
    va_minimum_amount: int = Field(default=10000, ge=0)


class OdooConfig(BaseModel):
    """Odoo JSON-RPC connection (credentials come from the environment)"""

    url_env: str = "ODOO_URL"
    database_env: str = "ODOO_DB"
    username_env: str = "ODOO_USERNAME"
    password_env: str = "ODOO_PASSWORD"
    sale_order_model: str = "sale.order"
    timeout_seconds: float = Field(default=30.0, gt=0)


class PaymentMethodConfig(BaseModel):
    enabled: bool = True
    expiry_minutes: int = Field(default=30, ge=1)
    channels: List[str] = Field(default_factory=list)


class FeeRule(BaseModel):
    percentage: float = Field(default=0.0, ge=0)
    fixed: float = Field(default=0.0, ge=0)


class PollingSettings(BaseModel):
    max_polling_seconds: float = Field(gt=0)
    poll_interval_seconds: float = Field(gt=0)


def _default_methods() -> Dict[PaymentMethod, PaymentMethodConfig]:
    return {
        PaymentMethod.QRIS: PaymentMethodConfig(expiry_minutes=30, channels=["QRIS"]),
        PaymentMethod.EWALLET: PaymentMethodConfig(
            expiry_minutes=60,
            channels=["ID_DANA", "ID_OVO", "ID_LINKAJA", "ID_SHOPEEPAY", "ID_GOJEK"],
        ),
        PaymentMethod.VIRTUAL_ACCOUNT: PaymentMethodConfig(
            expiry_minutes=1440,
            channels=["BNI", "BCA", "BRI", "MANDIRI", "PERMATA", "CIMB"],
        ),
        PaymentMethod.CARDS: PaymentMethodConfig(channels=["CREDIT", "DEBIT"]),
    }


def _default_fees() -> Dict[PaymentProvider, Dict[str, FeeRule]]:
    return {
        PaymentProvider.FLIP: {
            "QRIS": FeeRule(percentage=0.7),
            "PAYMENT_LINK": FeeRule(percentage=0.3),
            "BANK_TRANSFER": FeeRule(fixed=2500),
        },
        PaymentProvider.XENDIT: {
            "QRIS": FeeRule(percentage=0.7),
            "EWALLET": FeeRule(percentage=2),
            "VIRTUAL_ACCOUNT": FeeRule(fixed=4000),
            "CARDS": FeeRule(percentage=2.9, fixed=2000),
        },
    }


def _default_polling() -> Dict[PaymentMethod, PollingSettings]:
    return {
        PaymentMethod.QRIS: PollingSettings(max_polling_seconds=30 * 60, poll_interval_seconds=10),
        PaymentMethod.VIRTUAL_ACCOUNT: PollingSettings(max_polling_seconds=24 * 60 * 60, poll_interval_seconds=30),
        PaymentMethod.EWALLET: PollingSettings(max_polling_seconds=60 * 60, poll_interval_seconds=15),
        PaymentMethod.CARDS: PollingSettings(max_polling_seconds=30 * 60, poll_interval_seconds=10),
    }


class MonitorConfig(BaseModel):
    enabled: bool = True
    interval_seconds: float = Field(default=30.0, gt=0)
    catch_up_limit: int = Field(default=20, ge=1)


class AmountLimits(BaseModel):
    min_amount: float = Field(default=10_000, ge=0)
    max_amount: float = Field(default=50_000_000, gt=0)


class PaymentsConfig(BaseModel):
    """Complete payment gateway configuration"""

    primary_provider: PaymentProvider = PaymentProvider.FLIP
    fallback_provider: Optional[PaymentProvider] = None
    flip: FlipConfig = Field(default_factory=FlipConfig)
    xendit: XenditConfig = Field(default_factory=XenditConfig)
    odoo: OdooConfig = Field(default_factory=OdooConfig)
    methods: Dict[PaymentMethod, PaymentMethodConfig] = Field(default_factory=_default_methods)
    fees: Dict[PaymentProvider, Dict[str, FeeRule]] = Field(default_factory=_default_fees)
    polling: Dict[PaymentMethod, PollingSettings] = Field(default_factory=_default_polling)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    limits: AmountLimits = Field(default_factory=AmountLimits)

    def method(self, payment_method: PaymentMethod) -> PaymentMethodConfig:
        return self.methods.get(payment_method) or PaymentMethodConfig()

    def fee_rule(self, provider: PaymentProvider, kind: str) -> Optional[FeeRule]:
        return self.fees.get(provider, {}).get(kind)


def load_payments_config(config_path: Optional[Path] = None) -> PaymentsConfig:
    """
    Load and validate payment configuration from YAML file

    Args:
        config_path: Path to config file. Defaults to $PAYMENTS_CONFIG or
            config/payments_config.yml

    Returns:
        Validated PaymentsConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config doesn't match schema
    """
    if config_path is None:
        env_path = os.getenv("PAYMENTS_CONFIG")
        if env_path:
            config_path = Path(env_path)
        else:
            config_path = Path(__file__).parent.parent.parent / "config" / "payments_config.yml"

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    try:
        config = PaymentsConfig(**config_data)
        logger.info("Successfully loaded payments config from %s", config_path)
        return config
    except ValidationError as e:
        logger.error("Payments config validation failed: %s", e)
        raise
