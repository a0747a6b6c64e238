"""Unit tests for meter.stats -- pure functions and accumulators."""

import unittest

from meter.stats import (
    PERCENTILES,
    ConnectionStats,
    NetworkStats,
    calculate_jitter,
    calculate_percentile,
    coefficient_of_variation,
    format_latency,
    format_speed,
)


class TestCalculateJitter(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(calculate_jitter([]), 0.0)

    def test_single(self):
        self.assertEqual(calculate_jitter([10.0]), 0.0)

    def test_constant(self):
        self.assertAlmostEqual(calculate_jitter([5.0, 5.0, 5.0]), 0.0)

    def test_mean_absolute_deviation(self):
        # mean 25, deviations 15, 5, 5, 15
        self.assertAlmostEqual(calculate_jitter([10.0, 20.0, 30.0, 40.0]), 10.0)

    def test_order_independent(self):
        self.assertAlmostEqual(
            calculate_jitter([40.0, 10.0, 30.0, 20.0]),
            calculate_jitter([10.0, 20.0, 30.0, 40.0]),
        )


class TestCalculatePercentile(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(calculate_percentile([], 50), 0.0)

    def test_single(self):
        self.assertEqual(calculate_percentile([42.0], 95), 42.0)

    def test_nearest_rank(self):
        data = [float(i) for i in range(1, 101)]
        self.assertEqual(calculate_percentile(data, 50), 50.0)
        self.assertEqual(calculate_percentile(data, 95), 95.0)
        self.assertEqual(calculate_percentile(data, 0), 1.0)
        self.assertEqual(calculate_percentile(data, 100), 100.0)

    def test_unsorted_input(self):
        self.assertEqual(calculate_percentile([30.0, 10.0, 20.0], 50), 20.0)


class TestCoefficientOfVariation(unittest.TestCase):
    def test_cov_constant(self):
        self.assertAlmostEqual(coefficient_of_variation([10.0, 10.0, 10.0]), 0.0)

    def test_cov_value(self):
        # pstdev of [5, 15] is 5, mean 10
        self.assertAlmostEqual(coefficient_of_variation([5.0, 15.0]), 0.5)

    def test_cov_empty(self):
        self.assertIsNone(coefficient_of_variation([]))

    def test_cov_zero_mean(self):
        self.assertIsNone(coefficient_of_variation([0.0, 0.0]))


class TestNetworkStats(unittest.TestCase):
    def test_empty(self):
        s = NetworkStats()
        self.assertEqual(s.packet_loss_rate(), 0.0)
        self.assertIsNone(s.mean_latency())
        self.assertIsNone(s.min_latency())
        self.assertIsNone(s.max_latency())
        self.assertEqual(s.jitter(), 0.0)
        self.assertEqual(s.latency_distribution(), [])

    def test_packet_loss(self):
        s = NetworkStats()
        for _ in range(7):
            s.add_measurement(True, 20.0)
        for _ in range(3):
            s.add_measurement(False)
        self.assertEqual(s.packet_count, 10)
        self.assertEqual(s.successful_packets, 7)
        self.assertAlmostEqual(s.packet_loss_rate(), 30.0)

    def test_failed_probe_does_not_add_latency(self):
        s = NetworkStats()
        s.add_measurement(False, 999.0)
        self.assertEqual(s.latencies, [])
        self.assertIsNone(s.mean_latency())
        self.assertAlmostEqual(s.packet_loss_rate(), 100.0)

    def test_mean_min_max_jitter(self):
        s = NetworkStats()
        for v in (10.0, 20.0, 30.0, 40.0):
            s.add_measurement(True, v)
        self.assertAlmostEqual(s.mean_latency(), 25.0)
        self.assertEqual(s.min_latency(), 10.0)
        self.assertEqual(s.max_latency(), 40.0)
        self.assertAlmostEqual(s.jitter(), 10.0)

    def test_distribution(self):
        s = NetworkStats()
        for v in range(1, 101):
            s.add_measurement(True, float(v))
        for got, want in zip(s.latency_distribution(), (5, 25, 50, 75, 95)):
            self.assertLessEqual(abs(got - want), 2)

    def test_distribution_uses_nearest_rank_helper(self):
        s = NetworkStats()
        for v in (48.0, 12.0, 30.0, 7.0, 95.0, 22.0, 61.0):
            s.add_measurement(True, v)
        self.assertEqual(
            s.latency_distribution(),
            [calculate_percentile(s.latencies, p) for p in PERCENTILES],
        )
        # n=7: indices floor(p * 6) -> 0, 1, 3, 4, 5
        self.assertEqual(s.latency_distribution(), [7.0, 12.0, 30.0, 48.0, 61.0])

    def test_to_dict(self):
        s = NetworkStats()
        s.add_measurement(True, 12.3456)
        s.add_measurement(False)
        d = s.to_dict()
        self.assertEqual(d["packet_count"], 2)
        self.assertEqual(d["successful_packets"], 1)
        self.assertAlmostEqual(d["packet_loss"], 50.0)
        self.assertAlmostEqual(d["mean"], 12.346)

    def test_to_dict_empty_has_nulls(self):
        d = NetworkStats().to_dict()
        self.assertIsNone(d["mean"])
        self.assertIsNone(d["min"])
        self.assertEqual(d["distribution"], [])


class TestConnectionStats(unittest.TestCase):
    def test_calculate(self):
        c = ConnectionStats(id=1, bytes_transferred=12_500_000, duration_ms=1000)
        c.calculate()
        self.assertAlmostEqual(c.speed_mbps, 100.0)

    def test_zero_duration(self):
        c = ConnectionStats(bytes_transferred=100)
        c.calculate()
        self.assertEqual(c.speed_mbps, 0.0)

    def test_to_dict_omits_error_object(self):
        c = ConnectionStats(id=2, errors=1, last_error=OSError("boom"), dropped=True)
        d = c.to_dict()
        self.assertEqual(d["errors"], 1)
        self.assertTrue(d["dropped"])
        self.assertNotIn("last_error", d)


class TestFormatters(unittest.TestCase):
    def test_format_speed_mbps(self):
        self.assertEqual(format_speed(95.5), "95.50 Mbps")

    def test_format_speed_gbps(self):
        self.assertEqual(format_speed(1500.0), "1.50 Gbps")

    def test_format_latency(self):
        self.assertEqual(format_latency(12.34), "12.3 ms")
        self.assertEqual(format_latency(1500.0), "1.50 s")

    def test_format_latency_none(self):
        self.assertEqual(format_latency(None), "N/A")


if __name__ == "__main__":
    unittest.main()
