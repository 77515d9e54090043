"""
Utility modules for the payment gateway service
"""
from .config_loader import PaymentsConfig, PollingSettings, load_payments_config

__all__ = [
    'PaymentsConfig',
    'PollingSettings',
    'load_payments_config',
]
