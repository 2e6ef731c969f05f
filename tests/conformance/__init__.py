"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of a distribution stream.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Nothing is created or lost: in asset, out asset, shares
2. atomicity.py - Rejected operations leave no trace
3. idempotency.py - Syncing twice at the same time changes nothing
4. determinism.py - Same inputs, same stream
5. temporal.py - Time only moves forward; index and spending never regress

These tests use hypothesis for property-based testing.
"""
