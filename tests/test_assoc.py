import numpy as np
import pandas as pd
import pytest
from scipy import stats

from minigwas import assoc, data
from minigwas.errors import AlignmentError, JoinKeyError, SchemaError


def make_genotypes(rng, n, markers, p=0.4):
    return pd.DataFrame(
        {m: rng.binomial(2, p, size=n) for m in markers},
        index=pd.Index([f"id{i}" for i in range(n)], name="IID"),
    )


def test_fit_ols_matches_scipy_linregress():
    rng = np.random.default_rng(1)
    x = rng.binomial(2, 0.3, size=80)
    y = 0.7 * x + rng.normal(size=80)

    result = assoc.fit_ols(y, x)
    ref = stats.linregress(x, y)

    assert result.beta == pytest.approx(ref.slope)
    assert result.se == pytest.approx(ref.stderr)
    assert result.pvalue == pytest.approx(ref.pvalue)
    assert result.tstat == pytest.approx(ref.slope / ref.stderr)
    assert result.is_finite


def test_fit_ols_constant_dosage_is_nan():
    result = assoc.fit_ols([1.0, 2.0, 3.0, 4.0], [1, 1, 1, 1])
    assert np.isnan(result.beta)
    assert np.isnan(result.se)
    assert not result.is_finite


def test_scan_keeps_requested_order_and_count():
    rng = np.random.default_rng(2)
    geno = make_genotypes(rng, 50, ["rsA", "rsB", "rsC", "rsD"])
    outcome = pd.Series(rng.normal(size=50), index=geno.index)

    results = assoc.scan(outcome, geno, ["rsC", "rsA", "rsD"])

    assert list(results["snp"]) == ["rsC", "rsA", "rsD"]
    assert list(results.columns) == ["snp", "beta", "se", "tstat", "pvalue"]
    assert results["pvalue"].between(0, 1).all()
    assert (results["se"] >= 0).all()


def test_scan_does_not_deduplicate_markers():
    rng = np.random.default_rng(3)
    geno = make_genotypes(rng, 30, ["rsA", "rsB"])
    outcome = pd.Series(rng.normal(size=30), index=geno.index)

    results = assoc.scan(outcome, geno, ["rsA", "rsA", "rsB"])

    assert list(results["snp"]) == ["rsA", "rsA", "rsB"]
    assert results["beta"].iloc[0] == results["beta"].iloc[1]


def test_scan_constant_marker_does_not_stop_scan():
    rng = np.random.default_rng(4)
    geno = make_genotypes(rng, 40, ["rsA", "rsB"])
    geno.insert(1, "rsMono", 2)
    outcome = pd.Series(rng.normal(size=40), index=geno.index)

    results = assoc.scan(outcome, geno).set_index("snp")

    assert list(results.index) == ["rsA", "rsMono", "rsB"]
    assert np.isnan(results.loc["rsMono", "beta"])
    assert np.isnan(results.loc["rsMono", "se"])
    assert np.isfinite(results.loc["rsA", "beta"])
    assert np.isfinite(results.loc["rsB", "pvalue"])


def test_scan_accepts_plain_arrays():
    rng = np.random.default_rng(5)
    geno = pd.DataFrame({"rsA": rng.binomial(2, 0.5, size=25)})
    results = assoc.scan(rng.normal(size=25), geno)
    assert len(results) == 1


def test_scan_row_count_mismatch_raises():
    rng = np.random.default_rng(6)
    geno = make_genotypes(rng, 20, ["rsA"])
    with pytest.raises(AlignmentError):
        assoc.scan(np.zeros(19), geno)


def test_scan_misaligned_ids_raise():
    rng = np.random.default_rng(7)
    geno = make_genotypes(rng, 10, ["rsA"])
    outcome = pd.Series(rng.normal(size=10), index=geno.index[::-1])
    with pytest.raises(AlignmentError, match="different order"):
        assoc.scan(outcome, geno)

    outcome = pd.Series(rng.normal(size=10), index=[f"other{i}" for i in range(10)])
    with pytest.raises(AlignmentError, match="differ"):
        assoc.scan(outcome, geno)


def test_scan_missing_marker_raises():
    rng = np.random.default_rng(8)
    geno = make_genotypes(rng, 10, ["rsA"])
    with pytest.raises(SchemaError):
        assoc.scan(np.zeros(10), geno, ["rsA", "rsZ"])


def test_scan_missing_outcome_values_raise():
    rng = np.random.default_rng(9)
    geno = make_genotypes(rng, 5, ["rsA"])
    outcome = pd.Series([1.0, np.nan, 2.0, 3.0, 4.0], index=geno.index)
    with pytest.raises(SchemaError):
        assoc.scan(outcome, geno)


def test_null_pvalues_are_uniform():
    rng = np.random.default_rng(2024)
    n_trials, n = 400, 150
    pvalues = []
    for _ in range(n_trials):
        y = rng.normal(size=n)
        x = rng.binomial(2, 0.5, size=n)
        pvalues.append(assoc.fit_ols(y, x).pvalue)
    pvalues = np.asarray(pvalues)

    assert stats.kstest(pvalues, "uniform").pvalue > 0.001
    assert abs(pvalues.mean() - 0.5) < 0.06
    assert 0.01 < (pvalues < 0.05).mean() < 0.1


def test_injected_effect_converges_and_se_shrinks():
    rng = np.random.default_rng(11)
    estimates = {}
    for n in (100, 1000, 10000):
        x = rng.binomial(2, 0.5, size=n)
        y = 2.0 * x + rng.normal(0.0, 1.0, size=n)
        estimates[n] = assoc.fit_ols(y, x)

    for n, result in estimates.items():
        assert abs(result.beta - 2.0) < 5 * result.se
    assert abs(estimates[10000].beta - 2.0) < 0.1
    # se ~ 1/sqrt(N): 100x the samples gives ~10x smaller se
    ratio = estimates[100].se / estimates[10000].se
    assert 7 < ratio < 14
    assert estimates[100].se > estimates[1000].se > estimates[10000].se


def test_build_summary_inner_join_keeps_metadata_order():
    metadata = pd.DataFrame({
        "chrom": ["1", "1", "2"],
        "snp": ["A", "B", "C"],
        "pos": [100, 200, 300],
        "ref": ["A", "C", "G"],
        "alt": ["G", "T", "A"],
        "ref_freq": [0.1, 0.2, 0.3],
    })
    results = pd.DataFrame({
        "snp": ["B", "C", "D"],
        "beta": [0.1, 0.2, 0.3],
        "se": [0.01, 0.02, 0.03],
        "tstat": [10.0, 10.0, 10.0],
        "pvalue": [0.01, 0.02, 0.03],
    })

    summary = assoc.build_summary(metadata, results)

    assert list(summary["snp"]) == ["B", "C"]
    assert list(summary.columns) == ["chrom", "snp", "pos", "ref", "alt", "ref_freq",
                                     "beta", "se", "tstat", "pvalue"]
    assert summary.loc[summary["snp"] == "C", "beta"].iloc[0] == pytest.approx(0.2)


def test_build_summary_duplicate_ids_raise():
    metadata = pd.DataFrame({"snp": ["A", "A"], "chrom": ["1", "1"]})
    results = pd.DataFrame({"snp": ["A"], "beta": [0.0], "se": [1.0], "tstat": [0.0], "pvalue": [1.0]})
    with pytest.raises(JoinKeyError):
        assoc.build_summary(metadata, results)
    with pytest.raises(JoinKeyError):
        assoc.build_summary(results[["snp"]], pd.concat([results, results]))


def test_top_hit_smallest_pvalue():
    summary = pd.DataFrame({"snp": ["a", "b", "c"], "pvalue": [0.5, 0.0001, 0.2]})
    assert assoc.top_hit(summary)["snp"] == "b"


def test_top_hit_ties_keep_input_order():
    summary = pd.DataFrame({"snp": ["a", "b", "c", "d"], "pvalue": [0.3, 0.01, 0.2, 0.01]})
    assert assoc.top_hit(summary)["snp"] == "b"
    assert list(assoc.top_hits(summary, 3)["snp"]) == ["b", "d", "c"]


def test_top_hit_skips_nan_and_rejects_empty():
    summary = pd.DataFrame({"snp": ["a", "b"], "pvalue": [np.nan, 0.4]})
    assert assoc.top_hit(summary)["snp"] == "b"
    with pytest.raises(ValueError):
        assoc.top_hit(summary.iloc[0:0])


def test_neg_log10_threshold():
    assert assoc.neg_log10(assoc.GENOME_WIDE_SIGNIFICANCE) == pytest.approx(7.30103, rel=1e-5)


def test_run_association_and_scan_region():
    rng = np.random.default_rng(12)
    n = 200
    ids = [f"p{i}" for i in range(n)]
    merged = pd.DataFrame({"IID": ids})
    for snp in ["rs1", "rs2", "rs3"]:
        merged[snp] = rng.binomial(2, 0.5, size=n)
    merged["trait"] = 1.5 * merged["rs3"] + rng.normal(size=n)
    metadata = pd.DataFrame({
        "chrom": ["11", "11", "20"],
        "snp": ["rs1", "rs2", "rs3"],
        "pos": [1000, 2000, 3000],
        "ref": ["A", "C", "G"],
        "alt": ["G", "T", "A"],
        "ref_freq": [0.5, 0.5, 0.5],
    })

    summary = assoc.run_association(merged, metadata, "trait")
    assert list(summary["snp"]) == ["rs1", "rs2", "rs3"]
    assert assoc.top_hit(summary)["snp"] == "rs3"

    chr11 = assoc.scan_region(merged, metadata, "trait", 11)
    assert list(chr11["snp"]) == ["rs1", "rs2"]
    assert (chr11["chrom"] == "11").all()

    with pytest.raises(SchemaError):
        assoc.scan_region(merged, metadata, "trait", "7")
    with pytest.raises(SchemaError):
        assoc.run_association(merged, metadata, "missing_trait")


def test_scan_genotypes_from_file_skips_id_column(tmp_path):
    path = tmp_path / "geno.tsv"
    pd.DataFrame({
        "IID": ["a", "b", "c", "d"],
        "rs1": [0, 1, 2, 1],
        "rs2": [2, 1, 0, 0],
    }).to_csv(path, sep="\t", index=False)
    geno = data.read_genotypes(str(path))

    results = assoc.scan(np.array([0.5, 1.4, 2.2, 1.1]), geno)

    assert list(results["snp"]) == ["rs1", "rs2"]
    assert np.isfinite(results["beta"]).all()


def test_scan_uses_id_column_for_alignment():
    geno = pd.DataFrame({"IID": ["a", "b", "c"], "rs1": [0, 1, 2]})

    aligned = pd.Series([1.0, 2.0, 2.5], index=["a", "b", "c"])
    assert list(assoc.scan(aligned, geno)["snp"]) == ["rs1"]

    with pytest.raises(AlignmentError, match="different order"):
        assoc.scan(pd.Series([1.0, 2.0, 2.5], index=["c", "b", "a"]), geno)
