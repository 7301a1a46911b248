#!/usr/bin/env python3
"""
Unit tests for the Neynar client and event publishing
"""

import unittest
from unittest.mock import MagicMock, patch

import requests

from common import kafka
from common.error_handling import ErrorCodes, UpstreamError
from common.schemas import CoinEvent, Profile
from common.settings import settings
from coin_service.social_graph import FollowOutcome, NeynarClient, SignInIdentity


def fake_response(status_code=200, body=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    response.text = text
    return response


class TestNeynarLookup(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.client = NeynarClient(api_key="test-key", base_url="https://neynar.test/", timeout=2,
                                   session=self.session)

    def test_lookup_by_username(self):
        self.session.request.return_value = fake_response(body={"user": {
            "fid": 101, "username": "alice", "display_name": "Alice", "pfp_url": "https://img.example/a.png",
        }})

        profile = self.client.lookup_profile("alice")

        self.assertEqual(profile, Profile(fid=101, username="alice", display_name="Alice",
                                          pfp_url="https://img.example/a.png"))
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "https://neynar.test/v2/farcaster/user/by_username"))
        self.assertEqual(kwargs["params"], {"username": "alice"})
        self.assertEqual(kwargs["headers"]["x-api-key"], "test-key")
        self.assertEqual(kwargs["timeout"], 2)

    def test_lookup_by_fid_uses_bulk_endpoint(self):
        self.session.request.return_value = fake_response(body={"users": [
            {"fid": 194, "username": "rish", "displayName": "Rish", "pfp": {"url": "https://img.example/r.png"}},
        ]})

        profile = self.client.lookup_profile(194)

        self.assertEqual((profile.fid, profile.display_name, profile.pfp_url),
                         (194, "Rish", "https://img.example/r.png"))
        args, kwargs = self.session.request.call_args
        self.assertTrue(args[1].endswith("/v2/farcaster/user/bulk"))
        self.assertEqual(kwargs["params"], {"fids": "194"})

    def test_unknown_username_is_none(self):
        self.session.request.return_value = fake_response(404, body={"message": "User not found"})
        self.assertIsNone(self.client.lookup_profile("ghost"))

    def test_unknown_fid_is_none(self):
        self.session.request.return_value = fake_response(body={"users": []})
        self.assertIsNone(self.client.lookup_profile(999999))

    def test_server_error_is_upstream_error(self):
        self.session.request.return_value = fake_response(500, text="boom")
        with self.assertRaises(UpstreamError) as ctx:
            self.client.lookup_profile("alice")
        self.assertEqual(ctx.exception.code, ErrorCodes.UPSTREAM_ERROR)

    def test_network_failure_is_upstream_error(self):
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(UpstreamError) as ctx:
            self.client.lookup_profile("alice")
        self.assertIsInstance(ctx.exception.original_error, requests.ConnectionError)

    def test_missing_api_key(self):
        client = NeynarClient(api_key="", session=self.session)
        with self.assertRaises(UpstreamError) as ctx:
            client.lookup_profile("alice")
        self.assertEqual(ctx.exception.code, ErrorCodes.UPSTREAM_MISCONFIGURED)
        self.session.request.assert_not_called()


class TestNeynarFollow(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.client = NeynarClient(api_key="test-key", base_url="https://neynar.test", session=self.session)

    def test_follow_success(self):
        self.session.request.return_value = fake_response(body={"success": True, "details": []})

        self.assertEqual(self.client.follow("signer-1", 101), FollowOutcome.FOLLOWED)
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "https://neynar.test/v2/farcaster/user/follow"))
        self.assertEqual(kwargs["json"], {"signer_uuid": "signer-1", "target_fids": [101]})

    def test_follow_reported_unsuccessful(self):
        self.session.request.return_value = fake_response(body={"success": False})
        outcome = self.client.follow("signer-1", 101)
        self.assertEqual(outcome, FollowOutcome.FAILED)
        self.assertFalse(outcome.succeeded)

    def test_already_following_counts_as_success(self):
        self.session.request.return_value = fake_response(400, body={"message": "You are already following this user"})
        outcome = self.client.follow("signer-1", 101)
        self.assertEqual(outcome, FollowOutcome.ALREADY_FOLLOWING)
        self.assertTrue(outcome.succeeded)

    def test_rejected_follow_fails(self):
        self.session.request.return_value = fake_response(400, body={"message": "Invalid target"})
        self.assertEqual(self.client.follow("signer-1", 101), FollowOutcome.FAILED)

    def test_rate_limit_and_auth_errors_raise(self):
        for status in (401, 403, 429, 503):
            with self.subTest(status=status):
                self.session.request.return_value = fake_response(status, text="nope")
                with self.assertRaises(UpstreamError):
                    self.client.follow("signer-1", 101)

    def test_missing_signer(self):
        with patch.object(settings, "neynar_signer_uuid", ""):
            with self.assertRaises(UpstreamError) as ctx:
                self.client.follow("", 101)
        self.assertEqual(ctx.exception.code, ErrorCodes.UPSTREAM_MISCONFIGURED)
        self.session.request.assert_not_called()


class TestNeynarReplies(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.client = NeynarClient(api_key="test-key", base_url="https://neynar.test", session=self.session)

    def test_non_json_lookup_reply_is_upstream_error(self):
        self.session.request.return_value = fake_response(200, text="<html>gateway</html>")
        with self.assertRaises(UpstreamError):
            self.client.lookup_profile("alice")
        with self.assertRaises(UpstreamError):
            self.client.lookup_profile(101)

    def test_non_json_follow_reply_is_upstream_error(self):
        self.session.request.return_value = fake_response(200, text="ok")
        with self.assertRaises(UpstreamError):
            self.client.follow("signer-1", 101)

    def test_approved_signer_verifies(self):
        self.session.request.return_value = fake_response(body={
            "signer_uuid": "bob-signer", "status": "approved", "fid": 202,
        })

        identity = self.client.verify_sign_in("bob-signer")

        self.assertEqual(identity, SignInIdentity(fid=202, signer_uuid="bob-signer"))
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "https://neynar.test/v2/farcaster/signer"))
        self.assertEqual(kwargs["params"], {"signer_uuid": "bob-signer"})

    def test_pending_or_unknown_signer_does_not_verify(self):
        self.session.request.return_value = fake_response(body={"signer_uuid": "s", "status": "pending_approval"})
        self.assertIsNone(self.client.verify_sign_in("s"))
        self.session.request.return_value = fake_response(404, body={"message": "Signer not found"})
        self.assertIsNone(self.client.verify_sign_in("s"))
        self.assertIsNone(self.client.verify_sign_in(""))

    def test_sign_in_upstream_failure(self):
        self.session.request.return_value = fake_response(503, text="down")
        with self.assertRaises(UpstreamError):
            self.client.verify_sign_in("bob-signer")


class TestPublishEvent(unittest.TestCase):

    def setUp(self):
        self.event = CoinEvent(type="FollowSettled", fid=202, coins_delta=1, order_id=1, target_fid=101)

    def test_disabled_kafka_does_not_produce(self):
        with patch.object(settings, "kafka_enabled", False), patch.object(kafka, "get_producer") as get_producer:
            kafka.publish_event(self.event)
        get_producer.assert_not_called()

    def test_event_keyed_by_fid(self):
        producer = MagicMock()
        producer.flush.return_value = 0
        with patch.object(settings, "kafka_enabled", True), \
                patch.object(kafka, "get_producer", return_value=producer):
            kafka.publish_event(self.event)

        args, kwargs = producer.produce.call_args
        self.assertEqual(args[0], kafka.TOPIC_COIN_EVENTS)
        self.assertEqual(kwargs["key"], "202")
        self.assertEqual(CoinEvent.model_validate_json(kwargs["value"]), self.event)

    def test_broker_failure_is_logged_not_raised(self):
        producer = MagicMock()
        producer.produce.side_effect = BufferError("queue full")
        with patch.object(settings, "kafka_enabled", True), \
                patch.object(kafka, "get_producer", return_value=producer):
            kafka.publish_event(self.event)


if __name__ == "__main__":
    unittest.main()
