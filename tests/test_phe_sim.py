import numpy as np
import pandas as pd
import pytest

from minigwas import assoc, data, phe, sim
from minigwas.errors import SchemaError


def test_summarize_phenotypes():
    df = pd.DataFrame({"IID": ["a", "b", "c", "d"], "trait": [1.0, 2.0, 3.0, np.nan], "case_control": [0, 1, 1, 0]})
    stats = phe.summarize_phenotypes(df, ["trait"]).set_index("trait")

    assert stats.loc["trait", "count"] == 4
    assert stats.loc["trait", "missing"] == 1
    assert stats.loc["trait", "mean"] == pytest.approx(2.0)
    assert stats.loc["trait", "median"] == pytest.approx(2.0)
    assert 0 <= stats.loc["trait", "shapiro_p"] <= 1

    with pytest.raises(SchemaError):
        phe.summarize_phenotypes(df, ["height"])


def test_case_control_counts():
    df = pd.DataFrame({"case_control": [0, 1, 1, 0, 1]})
    counts = phe.case_control_counts(df, "case_control")
    assert counts["cases"] == 3
    assert counts["controls"] == 2

    with pytest.raises(SchemaError):
        phe.case_control_counts(pd.DataFrame({"case_control": [0, 2]}), "case_control")


def test_simulate_dataset_shapes_and_schema():
    pheno, geno, meta = sim.simulate_dataset(n_samples=120, n_markers=10, chroms=("11", "20"), seed=3)

    assert pheno.shape == (120, 3)
    assert list(pheno.columns) == ["IID", sim.LABEL_COL, sim.TRAIT_COL]
    assert set(pheno[sim.LABEL_COL].unique()) <= {0, 1}
    assert geno.shape == (120, 11)
    assert set(np.unique(geno.drop(columns="IID").to_numpy())) <= {0, 1, 2}
    assert list(meta.columns) == data.MARKER_COLUMNS
    assert list(meta["chrom"]) == ["11"] * 5 + ["20"] * 5
    assert meta["ref_freq"].between(0, 1).all()
    assert (meta["ref"] != meta["alt"]).all()
    for _, group in meta.groupby("chrom"):
        assert group["pos"].is_monotonic_increasing


def test_simulate_dataset_is_deterministic():
    first = sim.simulate_dataset(n_samples=30, n_markers=4, seed=9)
    second = sim.simulate_dataset(n_samples=30, n_markers=4, seed=9)
    for a, b in zip(first, second):
        pd.testing.assert_frame_equal(a, b)


def test_simulated_causal_marker_is_top_hit():
    pheno, geno, meta = sim.simulate_dataset(n_samples=600, n_markers=20, causal=["rs100008"], effect=1.0, seed=5)
    merged = data.merge_datasets(pheno, geno)

    summary = assoc.run_association(merged, meta, sim.TRAIT_COL)

    hit = assoc.top_hit(summary)
    assert hit["snp"] == "rs100008"
    assert hit["beta"] == pytest.approx(1.0, abs=0.4)


def test_simulate_dataset_rejects_unknown_causal():
    with pytest.raises(ValueError):
        sim.simulate_dataset(n_samples=10, n_markers=2, causal=["rsX"])
