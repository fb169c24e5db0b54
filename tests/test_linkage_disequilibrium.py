import unittest

import numpy as np
import pandas as pd

import snpreport.utils.custom_exceptions as exceptions
from snpreport.popgenstats.linkage_disequilibrium import (
    LD_COLUMNS,
    LinkageDisequilibrium,
    chromosome_order,
    pairwise_ld,
    populations_in_ld,
    window_pairs,
)
from snpreport.read_input.genotype_matrix import GenotypeMatrix


def simulate(n_ind: int = 40, n_loci: int = 30, seed: int = 3) -> np.ndarray:
    rng = np.random.default_rng(seed)
    arr = rng.binomial(2, 0.4, size=(n_ind, n_loci)).astype(float)
    # Loci 0 and 1 are identical, so fully linked.
    arr[:, 1] = arr[:, 0]
    arr[rng.random(arr.shape) < 0.05] = np.nan
    return arr


class TestWindowPairs(unittest.TestCase):
    def test_pairs_within_distance(self):
        pos = np.array([10, 20, 35, 100, 105])
        ia, ib = window_pairs(pos, 15)
        self.assertEqual(
            list(zip(ia.tolist(), ib.tolist())), [(0, 1), (1, 2), (3, 4)]
        )

    def test_all_pairs(self):
        ia, ib = window_pairs(np.arange(1, 6), 5)
        self.assertEqual(ia.size, 10)
        self.assertTrue((ia < ib).all())


class TestChromosomeOrder(unittest.TestCase):
    def test_natural_order(self):
        np.testing.assert_array_equal(
            chromosome_order(np.array(["10", "2", "X", "1", "2"])), [2, 1, 3, 0, 1]
        )


class TestPairwiseLD(unittest.TestCase):
    def test_identical_loci(self):
        x = np.array([[0, 0], [1, 1], [2, 2], [1, 1], [0, 0]], dtype=float)
        ia, ib = np.array([0]), np.array([1])
        self.assertAlmostEqual(pairwise_ld(x, ia, ib, "R.squared")[0], 1.0)
        self.assertAlmostEqual(pairwise_ld(x, ia, ib, "R")[0], 1.0)

    def test_d_prime(self):
        # Hardy-Weinberg proportions at p = 0.5: D = 0.25 = Dmax.
        x = np.array([[0, 0], [1, 1], [1, 1], [2, 2]], dtype=float)
        d = pairwise_ld(x, np.array([0]), np.array([1]), "Covar")[0]
        self.assertAlmostEqual(d, 0.25)
        self.assertAlmostEqual(
            pairwise_ld(x, np.array([0]), np.array([1]), "D.prime")[0], 1.0
        )

    def test_negative_correlation(self):
        x = np.array([[0, 2], [1, 1], [2, 0], [2, 0]], dtype=float)
        r = pairwise_ld(x, np.array([0]), np.array([1]), "R")[0]
        self.assertAlmostEqual(r, -1.0)

    def test_covariance(self):
        x = np.array([[0, 0], [2, 2], [0, 2], [2, 0]], dtype=float)
        d = pairwise_ld(x, np.array([0]), np.array([1]), "Covar")[0]
        self.assertAlmostEqual(d, 0.0)

    def test_monomorphic_is_nan(self):
        x = np.array([[0, 1], [0, 2], [0, 0]], dtype=float)
        self.assertTrue(np.isnan(pairwise_ld(x, np.array([0]), np.array([1]))[0]))

    def test_pairwise_complete(self):
        x = np.array(
            [[0, 0], [1, 1], [2, 2], [np.nan, 0], [2, np.nan]], dtype=float
        )
        self.assertAlmostEqual(
            pairwise_ld(x, np.array([0]), np.array([1]), "R")[0], 1.0
        )


class TestLinkageDisequilibrium(unittest.TestCase):
    def setUp(self):
        self.arr = simulate()
        n_loci = self.arr.shape[1]
        self.chrom = np.repeat(["chr2", "chr1"], n_loci // 2)
        self.pos = np.tile(np.arange(1, n_loci // 2 + 1) * 1000, 2)
        self.gm = GenotypeMatrix(
            self.arr,
            populations=["A"] * 20 + ["B"] * 12 + ["C"] * 8,
            chromosome=self.chrom,
            position=self.pos,
        )

    def test_columns_and_bounds(self):
        res = LinkageDisequilibrium(self.gm).calculate(
            ld_max_pairwise=3000, maf=0.05, ind_limit=10
        )
        table = res.table

        self.assertTrue(res.mapped)
        self.assertEqual(table.columns.tolist(), LD_COLUMNS)
        self.assertFalse(table.empty)
        self.assertTrue((table["distance"] <= 3000).all())
        self.assertTrue((table["distance"] > 0).all())
        self.assertFalse(table.duplicated(["pop", "locus_a_b"]).any())
        self.assertEqual(sorted(table["pop"].unique()), ["A", "B"])
        self.assertTrue((table["ld_stat"] >= 0).all())
        self.assertTrue((table["ld_stat"] <= 1 + 1e-9).all())

        # Pairs never cross chromosomes.
        loci_chr = dict(zip(self.gm.loci, self.chrom))
        self.assertTrue(
            (table["locus_a"].map(loci_chr) == table["locus_b"].map(loci_chr)).all()
        )

    def test_linked_pair(self):
        res = LinkageDisequilibrium(self.gm).calculate(ld_max_pairwise=1000, maf=0)
        row = res.table[
            (res.table["pop"] == "A") & (res.table["locus_a_b"] == "locus_1_locus_2")
        ]
        self.assertEqual(len(row), 1)
        self.assertAlmostEqual(row["ld_stat"].iloc[0], 1.0)
        self.assertEqual(row["chr"].iloc[0], "chr2")

    def test_small_population_skipped(self):
        res = LinkageDisequilibrium(self.gm).calculate(ind_limit=10)
        skipped = res.skipped
        self.assertIn("C", skipped["pop"].tolist())
        self.assertTrue(skipped.loc[skipped["pop"] == "C", "chr"].isna().all())
        self.assertNotIn("C", res.table["pop"].tolist())

    def test_unmapped(self):
        gm = GenotypeMatrix(self.arr[:, :8], populations=["A"] * 40)
        res = LinkageDisequilibrium(gm).calculate(maf=0)
        self.assertFalse(res.mapped)
        self.assertEqual(res.table["chr"].unique().tolist(), ["1"])
        # All 8 * 7 / 2 pairs, less any with an undefined statistic.
        self.assertLessEqual(len(res.table), 28)
        self.assertGreater(len(res.table), 20)
        self.assertFalse(res.table.duplicated(["pop", "locus_a_b"]).any())

        pairs = [
            frozenset(p) for p in zip(res.table["locus_a"], res.table["locus_b"])
        ]
        self.assertEqual(len(pairs), len(set(pairs)))

    def test_numpy_integer_distance(self):
        res = LinkageDisequilibrium(self.gm).calculate(
            ld_max_pairwise=np.int64(1000), maf=0
        )
        self.assertTrue(res.mapped)
        self.assertTrue((res.table["distance"] <= 1000).all())

    def test_chromosomes_in_natural_order(self):
        gm = GenotypeMatrix(
            self.arr,
            populations=["A"] * 40,
            chromosome=np.repeat(["10", "2", "1"], 10),
            position=np.tile(np.arange(1, 11) * 100, 3),
        )
        res = LinkageDisequilibrium(gm).calculate(maf=0)
        self.assertEqual(res.table["chr"].unique().tolist(), ["1", "2", "10"])

    def test_unmapped_requested(self):
        res = LinkageDisequilibrium(self.gm).calculate(
            ld_max_pairwise="unmapped", maf=0
        )
        self.assertFalse(res.mapped)
        self.assertEqual(res.table["chr"].unique().tolist(), ["1"])

    def test_duplicate_positions(self):
        pos = self.pos.copy()
        pos[1] = pos[0]
        gm = GenotypeMatrix(
            self.arr,
            populations=["A"] * 40,
            chromosome=self.chrom,
            position=pos,
        )
        res = LinkageDisequilibrium(gm).calculate(maf=0)
        self.assertNotIn("locus_2", res.table["locus_a"].tolist())
        self.assertNotIn("locus_2", res.table["locus_b"].tolist())

    def test_single_locus_chromosome_skipped(self):
        chrom = np.array(["chr1"] * 29 + ["chrX"])
        gm = GenotypeMatrix(
            self.arr, populations=["A"] * 40, chromosome=chrom, position=np.arange(30)
        )
        res = LinkageDisequilibrium(gm).calculate(maf=0)
        self.assertIn("chrX", res.skipped["chr"].tolist())

    def test_invalid_parameters(self):
        ld = LinkageDisequilibrium(self.gm)
        with self.assertRaises(ValueError):
            ld.calculate(ld_stat="r2")
        with self.assertRaises(ValueError):
            ld.calculate(ld_max_pairwise="everything")
        with self.assertRaises(exceptions.InvalidThresholdError):
            ld.calculate(maf=0.8)

    def test_rerun_is_identical(self):
        ld = LinkageDisequilibrium(self.gm)
        pd.testing.assert_frame_equal(
            ld.calculate().table, ld.calculate().table
        )


class TestPopulationsInLD(unittest.TestCase):
    def test_counts(self):
        table = pd.DataFrame(
            {
                "pop": ["A", "B", "A", "B", "C"],
                "locus_a_b": ["x_y", "x_y", "y_z", "y_z", "x_z"],
                "ld_stat": [0.9, 0.8, 0.5, 0.1, 0.3],
            }
        )
        out = populations_in_ld(table, ld_threshold=0.2)
        self.assertEqual(out.to_dict("list"), {"pops": [1, 2], "n_loc": [2, 1]})

    def test_empty(self):
        table = pd.DataFrame({"pop": [], "locus_a_b": [], "ld_stat": []})
        self.assertTrue(populations_in_ld(table).empty)


if __name__ == "__main__":
    unittest.main()
