"""
Pytest fixtures for devtools-audit tests
"""
import json
import os
import sys

import pytest

# Add core to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'core'))

from fakes import FakeBrowser, FakeCDP  # noqa: E402


@pytest.fixture
def redis_client():
    """Get a Redis client for testing"""
    try:
        import redis
        client = redis.Redis(host='localhost', port=6379, decode_responses=True)
        client.ping()
        yield client
        # Cleanup test keys
        for key in client.keys('ma:test:*'):
            client.delete(key)
    except Exception as e:
        pytest.skip(f"Redis not available: {e}")


@pytest.fixture
def sample_lhr():
    """Minimal Lighthouse result, as the panel hands it to _buildReportUI"""
    return {
        'lighthouseVersion': '6.4.0',
        'requestedUrl': 'https://a.test/',
        'finalUrl': 'https://a.test/',
        'categories': {'performance': {'id': 'performance', 'score': 0.93}},
        'audits': {'first-contentful-paint': {'score': 1, 'numericValue': 812.5}},
    }


@pytest.fixture
def sample_lhr_text(sample_lhr):
    return json.dumps(sample_lhr)


@pytest.fixture
def fake_browser():
    return FakeBrowser()


@pytest.fixture
def cdp_pair():
    """(tab, inspector) fakes plus a factory that hands them out by WebSocket URL"""
    tab = FakeCDP(FakeBrowser.TAB_WS)
    inspector = FakeCDP(FakeBrowser.INSPECTOR_WS)
    sessions = {tab.ws_url: tab, inspector.ws_url: inspector}

    def factory(ws_url, timeout=30):
        session = sessions[ws_url]
        session.timeout = timeout
        return session

    return tab, inspector, factory
