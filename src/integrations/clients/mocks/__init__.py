"""
In-memory Flip, Xendit and Odoo clients.

Wired by src.api.dependencies.build_services when INTEGRATIONS_MODE=mock or no
provider keys are configured, and used directly by the test suite. They
implement the same abstract gateways as clients/real_http/*, and each exposes
a few extra hooks (mark_paid, set_status, add_order) to drive payments
through their lifecycle without a provider.
"""
