"""
Signal layer - external feeds turned into planner readings.

Modules:
    base_adapter - Adapter interface, PlannerSignal, AdapterError, retries
    ics_feed - Calendar export reader
    task_api - Bearer-token task API reader
    unsupported - Stub for declared-but-unbuilt providers
    registry - Provider enum and adapter construction
    decay - Last-good carry-forward and signal weight decay
    poller - Independent per-signal polling with timeouts
"""
