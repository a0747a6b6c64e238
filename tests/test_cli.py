"""Tests for CLI validation, flag parsing and the run sequence."""

import contextlib
import io
import json
import unittest
from unittest import mock

from meter.bandwidth import SpeedTestResult
from meter.config import DEFAULTS
from meter.constants import MAX_CONNECTIONS, MAX_PING_COUNT
from meter.errors import NoAddressForForcedProtocol
from meter.stats import NetworkStats
from meter.units import SpeedMeasurement

_NO_V6 = NoAddressForForcedProtocol("unused.invalid has no IPv6 address", protocol="IPv6")


class TestValidation(unittest.TestCase):
    """Test the _validate function from fast_cli.py."""

    def _validate(self, **kwargs):
        from fast_cli import _validate
        defaults = {
            "ipv": 0,
            "duration": 30.0,
            "url_count": 5,
            "connections": 4,
            "ping_count": 10,
        }
        defaults.update(kwargs)
        return _validate(**defaults)

    def test_defaults_valid(self):
        self._validate()

    def test_bad_ipv(self):
        with self.assertRaises(ValueError):
            self._validate(ipv=5)

    def test_duration_below_floor_is_valid(self):
        # Raised to the stability floor later, not rejected.
        self._validate(duration=5)

    def test_non_positive_duration(self):
        with self.assertRaises(ValueError):
            self._validate(duration=0)

    def test_url_count(self):
        with self.assertRaises(ValueError):
            self._validate(url_count=0)

    def test_connections_bounds(self):
        self._validate(connections=MAX_CONNECTIONS)
        with self.assertRaises(ValueError):
            self._validate(connections=MAX_CONNECTIONS + 1)
        with self.assertRaises(ValueError):
            self._validate(connections=0)

    def test_ping_count_bounds(self):
        self._validate(ping_count=MAX_PING_COUNT)
        with self.assertRaises(ValueError):
            self._validate(ping_count=0)


class TestParser(unittest.TestCase):
    def _parse(self, *argv):
        from fast_cli import build_parser
        return build_parser().parse_args(list(argv))

    def test_unset_flags_are_none(self):
        args = self._parse()
        for key in ("ipv", "upload", "duration", "https", "url_count", "connections", "ping_count"):
            self.assertIsNone(getattr(args, key))
        self.assertFalse(args.json)

    def test_short_family_flags(self):
        self.assertEqual(self._parse("-6").ipv, 6)
        self.assertEqual(self._parse("-4").ipv, 4)
        self.assertEqual(self._parse("--ipv", "6").ipv, 6)

    def test_https_toggle(self):
        self.assertFalse(self._parse("--no-https").https)
        self.assertTrue(self._parse("--https").https)

    def test_repeatable_url(self):
        args = self._parse("--url", "http://a/speedtest", "--url", "http://b/speedtest")
        self.assertEqual(args.urls, ["http://a/speedtest", "http://b/speedtest"])

    def test_merge_config(self):
        from fast_cli import _merge_config
        args = _merge_config(self._parse("-u", "--duration", "40"), dict(DEFAULTS, ipv=6))
        self.assertTrue(args.upload)
        self.assertEqual(args.duration, 40.0)
        self.assertEqual(args.ipv, 6)
        self.assertEqual(args.connections, DEFAULTS["connections"])


class TestMain(unittest.TestCase):
    def _main(self, *argv):
        from fast_cli import main
        out = io.StringIO()
        with mock.patch("fast_cli.load_config", return_value=dict(DEFAULTS)), \
                mock.patch("fast_cli.configure_logging"), \
                contextlib.redirect_stdout(out), \
                self.assertRaises(SystemExit) as ctx:
            main(list(argv))
        return ctx.exception.code, out.getvalue()

    def test_invalid_parameter_json(self):
        code, out = self._main("--json", "--connections", "0")
        self.assertEqual(code, 1)
        self.assertIn("Connections", json.loads(out)["error"])

    def test_download_failure_exit_code(self):
        code, out = self._main(
            "--json", "--url", "http://127.0.0.1:1/speedtest", "--ping-count", "1",
        )
        self.assertEqual(code, 1)
        result = json.loads(out)
        self.assertEqual(result["error"], "Download test failed")
        self.assertIsNone(result["download_mbps"])
        self.assertIsNone(result["ping_ms"])
        self.assertEqual(result["packet_loss"], 100.0)


class TestRunFast(unittest.IsolatedAsyncioTestCase):
    async def test_discovery_failure(self):
        from fast_cli import run_fast
        from meter.errors import UrlDiscoveryFailed

        with mock.patch("fast_cli._discover_urls", side_effect=UrlDiscoveryFailed("down")):
            result = await run_fast(json_output=True)
        self.assertEqual(result["error"], "Failed to get URLs")
        self.assertIsNone(result["ping_ms"])

    async def test_protocol_failure(self):
        from fast_cli import run_fast
        from meter.errors import NoAddressForProtocol

        with mock.patch(
            "fast_cli.RunContext.establish",
            side_effect=NoAddressForProtocol("no v6", protocol="IPv6"),
        ):
            result = await run_fast(ipv=6, json_output=True)
        self.assertEqual(result["error"], "IPv6 connectivity check failed")

    def _latency(self):
        stats = NetworkStats()
        stats.add_measurement(True, 18.0)
        return stats

    async def _run_forced_v6(self, **patches):
        from fast_cli import run_fast

        with contextlib.ExitStack() as stack:
            stack.enter_context(mock.patch("fast_cli.RunContext.establish"))
            for target, kwargs in patches.items():
                stack.enter_context(mock.patch(target, **kwargs))
            return await run_fast(
                ipv=6, upload=True, json_output=True, urls=["http://unused.invalid/"],
            )

    async def test_download_forced_family_failure(self):
        result = await self._run_forced_v6(**{
            "fast_cli.LatencyTester.measure_latency_stats": {"return_value": self._latency()},
            "fast_cli.DownloadTester.measure": {"side_effect": _NO_V6},
        })
        self.assertEqual(result["error"], "IPv6 connectivity check failed")
        self.assertIsNone(result["download_mbps"])
        self.assertEqual(result["ping_ms"], 18.0)

    async def test_upload_forced_family_failure(self):
        download = SpeedTestResult(speed=SpeedMeasurement(88.0))
        result = await self._run_forced_v6(**{
            "fast_cli.LatencyTester.measure_latency_stats": {"return_value": self._latency()},
            "fast_cli.DownloadTester.measure": {"return_value": download},
            "fast_cli.UploadTester.measure": {"side_effect": _NO_V6},
        })
        self.assertEqual(result["error"], "IPv6 connectivity check failed")
        self.assertEqual(result["download_mbps"], 88.0)
        self.assertIsNone(result["upload_mbps"])

    async def test_latency_forced_family_failure(self):
        download = mock.AsyncMock()
        result = await self._run_forced_v6(**{
            "fast_cli.LatencyTester.measure_latency_stats": {"side_effect": _NO_V6},
            "fast_cli.DownloadTester.measure": {"new": download},
        })
        self.assertEqual(result["error"], "IPv6 connectivity check failed")
        self.assertIsNone(result["ping_ms"])
        download.assert_not_awaited()


if __name__ == "__main__":
    unittest.main()
