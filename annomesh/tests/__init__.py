"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Core types and error taxonomy
    - Level quantizers (nesting, monotonic binning)
    - Filters (chain conjunction, scripted predicates, recency budgets)
    - Configurable factory (registry, properties, fail-soft diagnostics)
    - Storage backends (in-memory, codec, Redis against a fake client)
    - Annotation store (read/write/remove, reconfiguration, errors)
"""
