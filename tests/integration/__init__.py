"""
Integration tests for EVMQL.

These tests run queries end to end: parser, executor, cache and the
JSON-RPC client talking to a simulated node over a fake HTTP session.
"""

import pytest


# Integration test markers
integration = pytest.mark.integration
slow = pytest.mark.slow
