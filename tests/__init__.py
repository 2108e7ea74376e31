"""
Test suite for the Cluster API capacity provider.

Run all tests:
    pytest tests/ -v

Run with markers:
    pytest -m provisioning -v   # create and delete protocol tests
    pytest -m "not slow" -v     # skip tests that wait out a poll timeout
"""
