"""Unit tests for meter.units -- speed units and measurements."""

import unittest

from meter.units import SpeedMeasurement, SpeedUnit


class TestSpeedUnit(unittest.TestCase):
    def test_multipliers(self):
        self.assertEqual(SpeedUnit.BPS.multiplier, 1)
        self.assertEqual(SpeedUnit.KBPS.multiplier, 1_000)
        self.assertEqual(SpeedUnit.MBPS.multiplier, 1_000_000)
        self.assertEqual(SpeedUnit.GBPS.multiplier, 1_000_000_000)

    def test_str_is_label(self):
        self.assertEqual(str(SpeedUnit.MBPS), "Mbps")

    def test_for_bps(self):
        self.assertIs(SpeedUnit.for_bps(500), SpeedUnit.BPS)
        self.assertIs(SpeedUnit.for_bps(1_500), SpeedUnit.KBPS)
        self.assertIs(SpeedUnit.for_bps(95_000_000), SpeedUnit.MBPS)
        self.assertIs(SpeedUnit.for_bps(2_000_000_000), SpeedUnit.GBPS)

    def test_for_bps_zero(self):
        self.assertIs(SpeedUnit.for_bps(0), SpeedUnit.BPS)


class TestSpeedMeasurement(unittest.TestCase):
    def test_from_bps(self):
        m = SpeedMeasurement.from_bps(12_500_000)
        self.assertIs(m.unit, SpeedUnit.MBPS)
        self.assertAlmostEqual(m.value, 12.5)

    def test_str(self):
        self.assertEqual(str(SpeedMeasurement(12.54, SpeedUnit.MBPS)), "12.5 Mbps")

    def test_mbps_from_other_unit(self):
        self.assertAlmostEqual(SpeedMeasurement(1.2, SpeedUnit.GBPS).mbps, 1200.0)

    def test_to(self):
        m = SpeedMeasurement(12.5, SpeedUnit.MBPS).to(SpeedUnit.KBPS)
        self.assertIs(m.unit, SpeedUnit.KBPS)
        self.assertAlmostEqual(m.value, 12_500.0)

    def test_to_bps(self):
        self.assertAlmostEqual(SpeedMeasurement(3.0, SpeedUnit.KBPS).to_bps(), 3_000.0)

    def test_immutable(self):
        m = SpeedMeasurement(1.0)
        with self.assertRaises(AttributeError):
            m.value = 2.0

    def test_to_dict(self):
        self.assertEqual(
            SpeedMeasurement(1.23456, SpeedUnit.GBPS).to_dict(),
            {"value": 1.235, "unit": "Gbps"},
        )


if __name__ == "__main__":
    unittest.main()
