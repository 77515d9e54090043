"""
Contracts (data models).

This folder defines the request/response shapes for external integrations.
Examples:
- Unified payment request/response formats shared by Flip and Xendit
- Payment status results returned by polling and manual checks
- Webhook events and order payment info parsed from Odoo

Why this exists:
- Ensures consistent data structures across mock and real clients
- Prevents “guessing” provider payloads in multiple places
- Makes integration safer: services rely on stable models, not on ad-hoc dicts

Both mock and real HTTP clients should use these contracts.
"""
