"""
delivery — Outbound dispatch of generated messages.

Sub-modules:
    channels/   — Per-channel delivery backends (SMS, email, social)
    models      — Delivery channel / status enums and the result record
"""
