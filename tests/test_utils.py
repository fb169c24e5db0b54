import logging
import unittest

import numpy as np

from snpreport.popgenstats.secondaries import PoissonFitState
from snpreport.utils import custom_exceptions as exceptions
from snpreport.utils.containers import LDConfig, PrivateAlleleConfig, SecondariesConfig
from snpreport.utils.logging import LoggerManager


class TestContainers(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(
            PrivateAlleleConfig().to_dict(),
            {
                "method": "pairwise",
                "loc_names": False,
                "matrix_pa": False,
                "test_asym": False,
                "test_asym_boot": 100,
                "seed": None,
            },
        )
        self.assertTrue(LDConfig().mapped)
        self.assertFalse(LDConfig(ld_max_pairwise=None).mapped)
        self.assertEqual(SecondariesConfig().to_dict()["taglength"], 69)

    def test_validation(self):
        with self.assertRaises(ValueError):
            PrivateAlleleConfig(method="one2one")
        with self.assertRaises(ValueError):
            PrivateAlleleConfig(loc_names="yes")
        with self.assertRaises(ValueError):
            LDConfig(ld_max_pairwise=0)
        with self.assertRaises(ValueError):
            LDConfig(maf=-0.1)
        with self.assertRaises(ValueError):
            SecondariesConfig(nsim=0)

    def test_numpy_integers_accepted(self):
        self.assertEqual(LDConfig(ld_max_pairwise=np.int64(2)).ld_max_pairwise, 2)
        self.assertEqual(
            PrivateAlleleConfig(test_asym_boot=np.int32(5)).test_asym_boot, 5
        )
        with self.assertRaises(ValueError):
            LDConfig(ld_max_pairwise=True)
        with self.assertRaises(ValueError):
            PrivateAlleleConfig(test_asym_boot=2.0)

    def test_frozen(self):
        config = LDConfig()
        with self.assertRaises(AttributeError):
            config.maf = 0.1


class TestExceptions(unittest.TestCase):
    def test_poisson_message(self):
        err = exceptions.PoissonEstimationError(
            PoissonFitState(lambda_estimate=1.25, converged=False, iteration_count=10)
        )
        self.assertIn("10 iterations", str(err))
        self.assertIsInstance(err, exceptions.SNPReportError)

    def test_insufficient_samples(self):
        err = exceptions.InsufficientSamplesError(["p1", "p2"])
        self.assertEqual(err.populations, ["p1", "p2"])
        self.assertIn("p1, p2", str(err))


class TestLoggerManager(unittest.TestCase):
    def test_levels(self):
        logman = LoggerManager("snpreport.tests.verbose", verbose=True)
        logman.set_level("WARNING")
        self.assertEqual(logman.get_logger().level, logging.WARNING)

        quiet = LoggerManager("snpreport.tests.quiet", verbose=False)
        quiet.set_level("INFO")
        self.assertEqual(quiet.get_logger().level, logging.ERROR)

    def test_invalid_level(self):
        with self.assertRaises(ValueError):
            LoggerManager("snpreport.tests.invalid").set_level("LOUD")


if __name__ == "__main__":
    unittest.main()
