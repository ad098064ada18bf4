#!/usr/bin/env python3
"""
Tests for the cloud profile store client.
"""

import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock

import requests

import sys
sys.path.insert(0, str(Path(__file__).parent))

from cfgsync.cloud import CloudProfileClient
from cfgsync.errors import AuthError, ConfigurationError, NetworkError, ValidationError
from cfgsync.profiles.models import SettingsProfile


PROFILE = SettingsProfile(id="cloud-1", name="Shared")


def http_response(status_code=200, body=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    return response


class CloudClientTestCase(unittest.TestCase):

    def setUp(self):
        self.session = Mock()
        self.session.headers = {}
        self.client = CloudProfileClient("https://profiles.example.com/", "secret-key",
                                         timeout=7, retry_attempts=3, retry_delay=0, session=self.session)


class TestCloudRequests(CloudClientTestCase):

    def test_session_carries_bearer_token(self):
        self.assertEqual(self.session.headers["Authorization"], "Bearer secret-key")
        self.assertEqual(self.client.base_url, "https://profiles.example.com")

    def test_list_profiles(self):
        self.session.request.return_value = http_response(body={"success": True, "data": [PROFILE.to_dict()]})

        profiles = self.client.list_profiles()

        self.assertEqual([p.id for p in profiles], ["cloud-1"])
        self.session.request.assert_called_once_with(
            "GET", "https://profiles.example.com/api/v1/profiles", json=None, timeout=7
        )

    def test_upload_sends_profile(self):
        self.session.request.return_value = http_response(body={"success": True, "data": PROFILE.to_dict()})

        uploaded = self.client.upload_profile(PROFILE)

        self.assertEqual(uploaded.name, "Shared")
        method, url = self.session.request.call_args.args
        self.assertEqual(method, "POST")
        self.assertEqual(self.session.request.call_args.kwargs["json"]["id"], "cloud-1")

    def test_missing_profile(self):
        self.session.request.return_value = http_response(status_code=404)
        with self.assertRaises(KeyError):
            self.client.get_profile("nope")

    def test_unsuccessful_body(self):
        self.session.request.return_value = http_response(body={"success": False, "error": "quota exceeded"})

        with self.assertRaises(ValidationError) as ctx:
            self.client.get_profile("cloud-1")
        self.assertIn("quota exceeded", str(ctx.exception))

    def test_rejected_key(self):
        self.session.request.return_value = http_response(status_code=401)

        with self.assertRaises(AuthError):
            self.client.list_profiles()
        self.assertFalse(self.client.validate_api_key())


class TestCloudRetries(CloudClientTestCase):

    def test_get_retries_then_fails(self):
        self.session.request.return_value = http_response(status_code=500)

        with self.assertRaises(NetworkError):
            self.client.list_profiles()
        self.assertEqual(self.session.request.call_count, 3)

    def test_get_recovers_after_timeout(self):
        self.session.request.side_effect = [
            requests.Timeout("slow"),
            http_response(body={"success": True, "data": PROFILE.to_dict()}),
        ]

        self.assertEqual(self.client.get_profile("cloud-1").id, "cloud-1")

    def test_writes_are_not_retried(self):
        self.session.request.side_effect = requests.ConnectionError("down")

        with self.assertRaises(NetworkError):
            self.client.delete_profile("cloud-1")
        self.assertEqual(self.session.request.call_count, 1)


class TestCloudConfiguration(unittest.TestCase):

    def test_requires_url_and_key(self):
        with self.assertRaises(ConfigurationError):
            CloudProfileClient("", "key", session=Mock())
        with self.assertRaises(ConfigurationError):
            CloudProfileClient("https://x", None, session=Mock())

    def test_from_config_without_url(self):
        config = SimpleNamespace(cloud_api_url=None)
        self.assertIsNone(CloudProfileClient.from_config(config))


if __name__ == "__main__":
    unittest.main(verbosity=2)
