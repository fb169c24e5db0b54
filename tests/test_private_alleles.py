import unittest

import numpy as np
import pandas as pd

import snpreport.utils.custom_exceptions as exceptions
from snpreport.popgenstats.private_alleles import (
    TABLE_COLUMNS,
    PrivateAlleles,
    chao_undetected,
    private_allele_masks,
)
from snpreport.read_input.genotype_matrix import GenotypeMatrix

MISSING = -9


class TestPrivateAlleleMasks(unittest.TestCase):
    def test_classification(self):
        f1 = np.array([0.5, 0.0, 1.0, 0.0, 0.5, np.nan, 0.3])
        f2 = np.array([0.0, 1.0, 0.0, 0.0, 0.5, 0.0, 1.0])

        priv1, priv2, fixed = private_allele_masks(f1, f2)

        np.testing.assert_array_equal(
            priv1, [True, True, True, False, False, False, True]
        )
        np.testing.assert_array_equal(
            priv2, [False, True, True, False, False, False, False]
        )
        np.testing.assert_array_equal(
            fixed, [False, True, True, False, False, False, False]
        )

    def test_chao_undetected(self):
        # Three private loci seen once, one seen twice among 2 x 5 gene copies.
        geno = np.array(
            [
                [1, 0, 0, 2],
                [0, 1, 0, 0],
                [0, 0, 1, 0],
                [0, 0, 0, 0],
                [0, 0, 0, 0],
            ],
            dtype=float,
        )
        private = np.ones(4, dtype=bool)
        other = np.zeros(4)
        # f1 = 3, f2 = 1, n = 10: 0.9 * 9 / 2 = 4.05
        self.assertEqual(chao_undetected(geno, private, other), 4.0)

        # Reference allele private when the other population is fixed for the alternate.
        other = np.ones(4)
        flipped = 2 - geno
        self.assertEqual(chao_undetected(flipped, private, other), 4.0)

    def test_chao_without_doubletons(self):
        geno = np.array([[1, 1], [0, 0]], dtype=float)
        # f1 = 2, f2 = 0, n = 4: 0.75 * 2 * 1 / 2 = 0.75
        self.assertEqual(
            chao_undetected(geno, np.ones(2, dtype=bool), np.zeros(2)), 1.0
        )


class TestPrivateAlleles(unittest.TestCase):
    def setUp(self):
        # Between A and B, locus 0 is private to A, locus 1 a fixed
        # difference, locus 2 private to B. Locus 4 has no data in C.
        a = [[2, 0, 0, 1, 0], [1, 0, 0, 0, 1], [0, 0, 0, 1, 2]]
        b = [[0, 2, 1, 1, 0], [0, 2, 0, 2, 1], [0, 2, 0, 0, 0]]
        c = [[0, 1, 0, 1, MISSING], [1, 1, 0, 0, MISSING], [0, 0, 2, 1, MISSING]]
        self.gm = GenotypeMatrix(
            np.array(a + b + c),
            loci=[f"loc{i}" for i in range(5)],
            populations=["A"] * 3 + ["B"] * 3 + ["C"] * 3,
        )

    def test_pairwise_table(self):
        result = PrivateAlleles(self.gm).calculate(method="pairwise")
        table = result.table

        self.assertEqual(table.columns.tolist(), TABLE_COLUMNS)
        self.assertEqual(len(table), 3)
        self.assertEqual(
            list(zip(table["pop1"], table["pop2"])),
            [("A", "B"), ("A", "C"), ("B", "C")],
        )

        ab = table.iloc[0]
        self.assertEqual((ab["N1"], ab["N2"]), (3, 3))
        # A fixed difference counts as private to both populations.
        self.assertEqual(ab["priv1"], 2)
        self.assertEqual(ab["priv2"], 2)
        self.assertEqual(ab["fixed"], 1)
        self.assertEqual(ab["totalpriv"], 4)

        # |f1 - f2| per locus: 1/2, 1, 1/6, 1/6, 1/3
        self.assertAlmostEqual(ab["AFD"], 0.433)
        self.assertTrue(np.isnan(ab["asym"]))

    def test_totalpriv_is_sum(self):
        table = PrivateAlleles(self.gm).calculate().table
        np.testing.assert_array_equal(
            table["totalpriv"], table["priv1"] + table["priv2"]
        )

    def test_locus_without_data_is_ignored(self):
        result = PrivateAlleles(self.gm).calculate(loc_names=True)
        ac = result.loc_names["A_C"]
        for key in ("pop1_pop2_pa", "pop2_pop1_pa", "fd"):
            self.assertNotIn("loc4", ac[key])

    def test_loc_names(self):
        result = PrivateAlleles(self.gm).calculate(loc_names=True)
        self.assertEqual(set(result.loc_names), {"A_B", "A_C", "B_C"})
        ab = result.loc_names["A_B"]
        self.assertEqual(ab["pop1_pop2_pa"], ["loc0", "loc1"])
        self.assertEqual(ab["pop2_pop1_pa"], ["loc1", "loc2"])
        self.assertEqual(ab["fd"], ["loc1"])

    def test_matrix_pa(self):
        result = PrivateAlleles(self.gm).calculate(matrix_pa=True)
        mm = result.matrix_pa
        table = result.table.set_index(["pop1", "pop2"])

        self.assertEqual(mm.index.tolist(), ["A", "B", "C"])
        self.assertTrue((np.diag(mm.to_numpy()) == 0).all())
        self.assertEqual(mm.loc["A", "B"], table.loc[("A", "B"), "priv2"])
        self.assertEqual(mm.loc["B", "A"], table.loc[("A", "B"), "priv1"])

    def test_one2rest(self):
        result = PrivateAlleles(self.gm).calculate(method="one2rest", matrix_pa=True)
        table = result.table

        self.assertEqual(table["pop1"].tolist(), ["A", "B", "C"])
        self.assertEqual(table["pop2"].unique().tolist(), ["Rest"])
        self.assertEqual(table["N2"].tolist(), [6, 6, 6])
        self.assertIsNone(result.matrix_pa)

    def test_presence_absence(self):
        gm = GenotypeMatrix(
            [[1, 0], [1, 1], [0, 0], [0, 1]],
            populations=["A", "A", "B", "B"],
            datatype="SilicoDArT",
        )
        table = PrivateAlleles(gm).calculate().table
        self.assertEqual(table.loc[0, "priv1"], 1)
        self.assertEqual(table.loc[0, "fixed"], 1)
        self.assertTrue(np.isnan(table.loc[0, "Chao1"]))
        self.assertTrue(np.isnan(table.loc[0, "Chao2"]))

    def test_single_population(self):
        gm = GenotypeMatrix(np.zeros((3, 2)))
        with self.assertRaises(exceptions.InsufficientPopulationsError):
            PrivateAlleles(gm).calculate()

    def test_invalid_method(self):
        with self.assertRaises(ValueError):
            PrivateAlleles(self.gm).calculate(method="all")


class TestAsymmetryBootstrap(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(11)
        arr = rng.integers(0, 3, size=(24, 60)).astype(float)
        # Population B fixed at the first 10 loci, so A holds the private alleles.
        arr[12:, :10] = 0
        arr[:12, :10] = np.maximum(arr[:12, :10], 1)
        arr[rng.random(arr.shape) < 0.05] = np.nan
        self.gm = GenotypeMatrix(arr, populations=["A"] * 12 + ["B"] * 12)

    def test_seed_reproducible(self):
        pa = PrivateAlleles(self.gm)
        r1 = pa.calculate(test_asym=True, test_asym_boot=50, seed=123).table
        r2 = pa.calculate(test_asym=True, test_asym_boot=50, seed=123).table
        pd.testing.assert_frame_equal(r1, r2)

    def test_generator_seed(self):
        pa = PrivateAlleles(self.gm)
        r1 = pa.calculate(
            test_asym=True, test_asym_boot=50, seed=np.random.default_rng(5)
        ).table
        r2 = pa.calculate(test_asym=True, test_asym_boot=50, seed=5).table
        pd.testing.assert_frame_equal(r1, r2)

    def test_asymmetry_values(self):
        row = PrivateAlleles(self.gm).calculate(
            test_asym=True, test_asym_boot=100, seed=1
        ).table.iloc[0]

        self.assertGreater(row["priv1"], row["priv2"])
        self.assertGreaterEqual(row["asym"], 0.0)
        self.assertLessEqual(row["asym"], 1.0)
        self.assertGreaterEqual(row["asym_sig"], 0.0)
        self.assertLessEqual(row["asym_sig"], 1.0)
        # Pooled pseudo-populations carry no systematic asymmetry.
        self.assertLess(row["asym_sig"], 0.5)

    def test_invalid_boot(self):
        with self.assertRaises(ValueError):
            PrivateAlleles(self.gm).calculate(test_asym=True, test_asym_boot=0)


if __name__ == "__main__":
    unittest.main()
