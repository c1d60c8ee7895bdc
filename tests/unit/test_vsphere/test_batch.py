# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for concurrent multi-OVA deployment."""
from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests
from fakes.fake_ova import make_appliance
from fakes.fake_vsphere import build_env, make_session
from ovaimporter.core.exceptions import BatchDeployError, SourceError
from ovaimporter.vsphere.batch import dedup_locations, deploy_ova_templates


def _ok_response(*_a, data=None, **_kw):
    r = MagicMock()
    r.status_code = 200
    r.__enter__.return_value = r
    return r


@pytest.fixture
def session():
    return make_session(build_env())


@pytest.fixture(autouse=True)
def uploads():
    with patch.object(requests.Session, "request", side_effect=_ok_response) as req:
        yield req


@pytest.mark.unit
def test_dedup_sorts_and_drops_blanks():
    assert dedup_locations(["b.ova", "", "a.ova", "  ", "b.ova"]) == ["a.ova", "b.ova"]


@pytest.mark.unit
def test_no_locations_is_a_noop(session):
    assert deploy_ova_templates(session, "", " ") == {}


@pytest.mark.unit
def test_each_location_deployed_once(session, tmp_path):
    a = make_appliance(tmp_path, "a")
    b = make_appliance(tmp_path, "b")

    results = deploy_ova_templates(session, b, a, a)

    assert sorted(results) == sorted([a, b])
    assert results[a].template_name == "a"
    assert results[b].template_name == "b"
    assert len(session.resource_pool.imports) == 2


@pytest.mark.unit
def test_failure_does_not_cancel_siblings(session, tmp_path):
    a = make_appliance(tmp_path, "a")
    missing = str(tmp_path / "b.ova")

    with pytest.raises(BatchDeployError) as ei:
        deploy_ova_templates(session, a, a, missing)

    err = ei.value
    assert "b.ova" in str(err)
    assert err.code == 20
    assert list(err.results) == [a]
    assert err.results[a].vm.is_template
    assert list(err.errors) == [missing]
    assert isinstance(err.errors[missing], SourceError)
    assert err.errors[missing].context["location"] == missing


@pytest.mark.unit
def test_max_workers_is_honoured(session, tmp_path):
    locs = [make_appliance(tmp_path, f"app{i}") for i in range(3)]

    results = deploy_ova_templates(session, *locs, max_workers=1)

    assert len(results) == 3
