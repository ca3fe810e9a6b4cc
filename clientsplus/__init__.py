# clientsplus/__init__.py
"""
Session core for the ClientsPlus business dashboard.

Subpackages:
    session_tokens  token storage, single-flight renewal, dashboard and superadmin sign-in
    http_client     authenticated calls to the dashboard API
    client_portal   OTP login for end clients
    realtime        real-time channel health and lifecycle policies
    storage         durable and ephemeral key-value tiers
"""
