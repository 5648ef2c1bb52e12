"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_solvency.py - No operation leaves its caller below MIN_HEALTH_FACTOR
2. test_atomicity.py - All-or-nothing operations, external calls included
3. test_state_machine.py - Books, custody, token supply and the event log
   stay consistent over arbitrary operation sequences

These tests use hypothesis for property-based testing.
"""
