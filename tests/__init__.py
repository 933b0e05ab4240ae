"""
Tests package for the narration pipeline.

This package contains test suites organized by type:
- unit/: Domain, application and infrastructure units in isolation
- property/: Hypothesis properties of state machines, backoff and counters
- integration/: Tests against a real Redis instance
- e2e/: Whole pipeline workflows over in-memory adapters
"""
