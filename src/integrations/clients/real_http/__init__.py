"""
Real HTTP integration clients.

These clients communicate with real external systems via HTTP:
- Flip payment APIs (v2 payment links, v3 direct API)
- Xendit payment APIs (QR codes, e-wallet charges, callback virtual accounts)
- Odoo JSON-RPC (sale orders)

Important:
- Must implement the same interfaces as the mock clients
- Must return data shaped according to src/integrations/contracts/*

Switching:
The selection of mock vs real clients happens in src/api/dependencies.py only.
"""
