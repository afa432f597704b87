"""
channels — Per-channel delivery backends.

Each channel module exposes:
    send(...) → DeliveryResult

Channels are stateless functions configured by keyword arguments; the API
layer reads settings and passes provider credentials in. Every module has
a "simulation" provider that only logs, so development needs no accounts.
"""
