# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from typing import Any, Dict, List
from unittest.mock import Mock

from pdao.config import BackendConfig, StationConfig, SyncSettings
from pdao.services.backend import BackendClient
from pdao.services.cache import LocalCache, MemoryStore

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


def backend_member(user_id: int, id_number: str, first_name: str, last_name: str,
                   status: str = "approved", **profile) -> Dict[str, Any]:
    """A member record shaped like the backend's ``/users`` and ``/scanMember`` answers."""
    member_profile = {
        "id_number": id_number,
        "first_name": first_name,
        "last_name": last_name,
        "barangay": "Poblacion",
        "severity": "moderate",
        "monthly_income": "5000.00",
        "dependants": 1,
        "age": 40,
        "is_solo_parent": 0,
    }
    member_profile.update(profile)
    return {
        "id": user_id,
        "username": f"{first_name.lower()}.{last_name.lower()}",
        "role": "member",
        "status": status,
        "member_profile": member_profile,
    }


@pytest.fixture
def clock():
    """Controllable millisecond clock."""
    return FakeClock()


@pytest.fixture
def cache(clock):
    """In-memory local cache on the fake clock."""
    return LocalCache(MemoryStore(), namespace="test", default_ttl_ms=600_000, clock=clock)


@pytest.fixture
def sample_members() -> List[Dict[str, Any]]:
    """Backend member records with varied priority attributes."""
    return [
        backend_member(1, "PWD-0001", "Ana", "Reyes", severity="severe",
                       monthly_income="2500", dependants=3, age=65, is_solo_parent=1),
        backend_member(2, "PWD-0002", "Ben", "Cruz"),
        backend_member(3, "PWD-0003", "Carla", "Santos", status="pending"),
        backend_member(4, "pwd-0004", "Dino", "Garcia", barangay="San Isidro",
                       severity="mild", monthly_income="20000", dependants=0, age=30),
    ]


@pytest.fixture
def mock_backend():
    """Backend client double; every call must be configured by the test."""
    backend = Mock(spec=BackendClient)
    backend.ping.return_value = True
    backend.list_benefit_participants.return_value = []
    backend.list_benefit_claims.return_value = []
    return backend


@pytest.fixture
def station_config():
    """Station configuration for tests."""
    return StationConfig(
        backend=BackendConfig(url="http://backend.test/api", token="test-token", timeout=5),
        sync=SyncSettings(),
        environment="test",
        base_url="http://station.test",
        docs_enabled=False,
    )


@pytest.fixture
def app(station_config, mock_backend, cache):
    """Field station app wired to the mocked backend."""
    from pdao.app import create_app

    application = create_app(station_config, backend=mock_backend, cache=cache)
    application.config['TESTING'] = True
    return application


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()
