"""
generation — Multi-channel emergency message generation.

Sub-modules:
    orchestrator  — Request state machine: validate, mock or live, fallback
    prompts       — System and user prompts for the model provider
    client        — Provider HTTP client with bounded retry
    parser        — Model text → validated response (or unusable)
    compliance    — Server-computed compliance flags
    mock          — Deterministic template-based responses
    metadata      — Timestamps and the response metadata block
    models        — Data structures shared across the pipeline
    constants     — Fixed pipeline parameters
"""
