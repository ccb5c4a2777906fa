"""
Test suite for order_pipeline

Contains:
- tests/unit/  : Unit tests for individual modules and orchestrator scenarios
- tests/fakes  : In-memory ExecutionAdapter and snapshot factories
"""
