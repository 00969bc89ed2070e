"""
src/agent/tests/conftest.py

Purpose: Shared fixtures for the sidecar agent tests
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agent_config import load_config  # noqa: E402


VALID_RULE = 'alert tcp any any -> any 80 (msg:"hi"; sid:1;)'


@pytest.fixture
def valid_rule():
    return VALID_RULE


@pytest.fixture
def agent_config(tmp_path):
    """Configuration rooted in a temporary directory"""
    environ = {
        'HOME': str(tmp_path),
        'LOG_DIR': str(tmp_path / 'logs'),
        'SURICATA_RULES_DIR': str(tmp_path / 'rules'),
        'CENTRAL_API_SERVER_URL': 'http://collector.test',
        'SKIP_SURICATA': 'true',
    }
    return load_config(config_path=str(tmp_path / 'missing.yaml'), environ=environ)
