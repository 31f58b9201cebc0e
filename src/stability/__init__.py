"""
Contract stability core.

Modules:
    models - Shared enums and value records
    contract - Contract model, loading and activation checks
    evidence - Document suggestions and readiness
    scoring - Pure stability scoring engine
    intervention - Persistence gate and escalations
    surface - Surface-state lifecycle (enter/escalate/persist/clear)
    plan_payload - Plan structure for an external validator
    monitor - Per-contract evaluation loop (single writer)
"""
