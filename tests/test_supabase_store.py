import io
import json
import unittest
import urllib.error
from unittest import mock

import supabase_store


def _response(body: bytes):
    resp = mock.MagicMock()
    resp.read.return_value = body
    cm = mock.MagicMock()
    cm.__enter__.return_value = resp
    return cm


class SupabaseStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        patches = [
            mock.patch.object(supabase_store.config, "SUPABASE_URL", "https://demo.supabase.co/"),
            mock.patch.object(supabase_store.config, "SUPABASE_KEY", "secret"),
            mock.patch.object(supabase_store.config, "SUPABASE_STATE_TABLE", "shield_state"),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def test_load_state_returns_data_column(self):
        body = json.dumps([{"data": {"version": 1, "total_checks": 3}}]).encode()
        with mock.patch("supabase_store.urllib.request.urlopen", return_value=_response(body)) as urlopen:
            out = supabase_store.load_state("shield")
        self.assertEqual(out, {"version": 1, "total_checks": 3})

        req = urlopen.call_args.args[0]
        self.assertEqual(req.get_method(), "GET")
        self.assertTrue(req.full_url.startswith("https://demo.supabase.co/rest/v1/shield_state?"))
        self.assertIn("key=eq.shield", req.full_url)
        self.assertEqual(req.get_header("Apikey"), "secret")

    def test_load_state_missing_row(self):
        with mock.patch("supabase_store.urllib.request.urlopen", return_value=_response(b"[]")):
            self.assertEqual(supabase_store.load_state("shield"), {})

    def test_save_state_upserts(self):
        with mock.patch("supabase_store.urllib.request.urlopen", return_value=_response(b"")) as urlopen:
            self.assertTrue(supabase_store.save_state("shield", {"version": 1}))

        req = urlopen.call_args.args[0]
        self.assertEqual(req.get_method(), "POST")
        self.assertIn("on_conflict=key", req.full_url)
        self.assertIn("resolution=merge-duplicates", req.get_header("Prefer"))
        self.assertEqual(json.loads(req.data), {"key": "shield", "data": {"version": 1}})

    def test_network_failure_never_raises(self):
        err = urllib.error.URLError("down")
        with mock.patch("supabase_store.urllib.request.urlopen", side_effect=err):
            with self.assertLogs("supabase_store", level="WARNING"):
                self.assertFalse(supabase_store.save_state("shield", {"version": 1}))
                self.assertEqual(supabase_store.load_state("shield"), {})
                self.assertFalse(supabase_store.delete_state("shield"))

    def test_http_error_and_bad_body_are_logged(self):
        err = urllib.error.HTTPError("https://demo.supabase.co", 409, "Conflict", {}, io.BytesIO(b"dup key"))
        with mock.patch("supabase_store.urllib.request.urlopen", side_effect=err):
            with self.assertLogs("supabase_store", level="WARNING") as logs:
                self.assertFalse(supabase_store.save_state("shield", {"version": 1}))
        self.assertIn("HTTP 409", logs.output[0])

        with mock.patch("supabase_store.urllib.request.urlopen", return_value=_response(b"<html>")):
            with self.assertLogs("supabase_store", level="WARNING"):
                self.assertEqual(supabase_store.load_state("shield"), {})

    def test_delete_targets_the_key(self):
        with mock.patch("supabase_store.urllib.request.urlopen", return_value=_response(b"")) as urlopen:
            self.assertTrue(supabase_store.delete_state("shield"))
        req = urlopen.call_args.args[0]
        self.assertEqual(req.get_method(), "DELETE")
        self.assertIsNone(req.data)
        self.assertIn("key=eq.shield", req.full_url)

    def test_disabled_makes_no_requests(self):
        with mock.patch.object(supabase_store.config, "SUPABASE_URL", ""):
            with mock.patch("supabase_store.urllib.request.urlopen") as urlopen:
                self.assertFalse(supabase_store.save_state("shield", {}))
                self.assertEqual(supabase_store.load_state("shield"), {})
                self.assertFalse(supabase_store.delete_state("shield"))
        urlopen.assert_not_called()


if __name__ == "__main__":
    unittest.main()
