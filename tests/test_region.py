"""
Tests for the region reference proxy.
"""

import pytest
import requests
from unittest.mock import Mock, patch

from region import UpstreamError, cities, countries, normalize_countries, normalize_regions, provinces


def response(payload):
    r = Mock()
    r.json.return_value = payload
    return r


class TestNormalize:
    """Upstream payload shapes."""

    def test_regions(self):
        payload = {"data": [{"code": "35", "name": "JAWA TIMUR"}, {"id": "31", "nama": "DKI JAKARTA"}, {"code": "99"}]}
        assert [(r.code, r.name) for r in normalize_regions(payload)] == [("35", "JAWA TIMUR"), ("31", "DKI JAKARTA")]

    def test_regions_plain_list(self):
        assert normalize_regions([{"code": "1", "name": "A"}])[0].name == "A"
        assert normalize_regions("garbage") == []

    def test_countries_sorted(self):
        payload = {"data": {"ID": {"country": "Indonesia", "region": "Asia"}, "AF": {"country": "Afghanistan", "region": "Asia"}}}
        assert [c.code for c in normalize_countries(payload)] == ["AF", "ID"]

    def test_countries_bad_shape(self):
        with pytest.raises(UpstreamError):
            normalize_countries({"data": []})


class TestFetch:
    """HTTP calls to the public APIs."""

    def test_provinces(self):
        with patch("region.requests.get", return_value=response({"data": [{"code": "35", "name": "JAWA TIMUR"}]})) as mock_get:
            assert provinces()[0].code == "35"
        assert mock_get.call_args[1]["timeout"] > 0

    def test_city_url_is_quoted(self):
        with patch("region.requests.get", return_value=response([])) as mock_get:
            cities("35/../x")
        assert "35%2F..%2Fx" in mock_get.call_args[0][0]

    def test_upstream_failure(self):
        with patch("region.requests.get", side_effect=requests.ConnectionError("down")):
            with pytest.raises(UpstreamError):
                countries()

    def test_invalid_json(self):
        bad = Mock()
        bad.json.side_effect = ValueError("no json")
        with patch("region.requests.get", return_value=bad):
            with pytest.raises(UpstreamError):
                provinces()
