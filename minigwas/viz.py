import re
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib import axes

from minigwas.assoc import GENOME_WIDE_SIGNIFICANCE, neg_log10
from minigwas.log import logger


def _natural_sort_key(value: str):
    parts = re.split(r"(\d+)", str(value))
    return [int(p) if p.isdigit() else p.lower() for p in parts]


class Visualizer:
    def __init__(self):
        pass

    def plot_manhattan(self, df: pd.DataFrame, point_size=5,
                       chr_unit='mb', chr_gap=0, chr_colors=None,
                       sig_threshold=GENOME_WIDE_SIGNIFICANCE, sig_line_style=None,
                       xlabel=None, ylabel=None, title=None,
                       ax: axes.Axes = None, plot_style='scatter', label_top=False):
        """
        Plot Manhattan plot for a GWAS summary table.

        :param df: Summary table with columns chrom, snp, pos, pvalue
        :param point_size: Point size for Manhattan plot
        :param chr_unit: Position unit, one of ['mb', 'kb', 'bp']
        :param chr_gap: Gap between chromosomes in the unit specified
        :param chr_colors: List of colors for chromosomes, cycled when shorter than the number of chromosomes
        :param sig_threshold: Significance threshold p-value (float or list of floats); None draws no line
        :param sig_line_style: Style of the significance line
        :param xlabel: X-axis label
        :param ylabel: Y-axis label
        :param title: Title of the plot
        :param ax: Matplotlib Axes object for plotting
        :param plot_style: Plot style: 'scatter', 'vlines'
        :param label_top: Annotate the marker with the smallest p-value
        """
        logger.info("Plotting Manhattan plot...")
        if ax is None:
            ax = plt.gca()
        unit_factors = {'mb': 1e-6, 'kb': 1e-3, 'bp': 1}
        factor = unit_factors.get(chr_unit.lower(), 1e-6)

        # never modify the caller's table
        data = df.loc[df["pvalue"].notna(), ["chrom", "snp", "pos", "pvalue"]].copy()
        dropped = len(df) - len(data)
        if dropped:
            logger.info(f"Skipping {dropped} markers without a p-value.")
        if data.empty:
            logger.warning("No markers with p-values to plot.")
            return ax

        data["chrom"] = data["chrom"].astype(str).str.replace("chr", "", regex=False)
        data["plot_value"] = neg_log10(data["pvalue"])
        data["pos"] = data["pos"].astype(float) * factor

        if chr_colors is None:
            chr_colors = ["#B8B0C3", "#6C8EBF"]

        chroms: List[str] = sorted(data["chrom"].unique(), key=_natural_sort_key)
        single = len(chroms) == 1

        # cumulative offsets so chromosomes sit side by side
        chrom_offset: Dict[str, float] = {}
        chrom_center: Dict[str, float] = {}
        current_pos = 0.0
        for chrom in chroms:
            group = data[data["chrom"] == chrom]
            lo, hi = group["pos"].min(), group["pos"].max()
            if single:
                chrom_offset[chrom] = 0.0
                chrom_center[chrom] = (lo + hi) / 2
            else:
                chrom_offset[chrom] = current_pos - lo
                chrom_center[chrom] = current_pos + (hi - lo) / 2
                current_pos += (hi - lo) + chr_gap
        data["x"] = data["pos"] + data["chrom"].map(chrom_offset)

        for chrom_index, chrom in enumerate(chroms):
            group = data[data["chrom"] == chrom]
            color = chr_colors[chrom_index % len(chr_colors)]
            if plot_style.lower() == 'vlines':
                ax.vlines(group["x"], 0, group["plot_value"], color=color, linewidth=0.5)
            else:
                ax.scatter(group["x"], group["plot_value"], color=color, s=point_size)

        default_sig_params = {
            'color': 'gray',
            'linestyle': '--',
            'linewidth': 1,
        }
        if sig_line_style:
            default_sig_params.update(sig_line_style)

        if sig_threshold is not None:
            thresholds = sig_threshold if isinstance(sig_threshold, (list, tuple)) else [sig_threshold]
            for threshold in thresholds:
                ax.axhline(-np.log10(threshold), **default_sig_params, label=f"Threshold {threshold:.2e}")
            ax.legend(loc="upper right", frameon=False)
        else:
            logger.info("No significance threshold provided; skipping threshold line.")

        if label_top:
            finite = data[np.isfinite(data["plot_value"])]
            if not finite.empty:
                top = finite.sort_values("pvalue", kind="mergesort").iloc[0]
                ax.annotate(top["snp"], (top["x"], top["plot_value"]),
                            xytext=(4, 4), textcoords="offset points", fontsize=8)

        ax.spines[['top', 'right']].set_visible(False)
        if single:
            ax.set_xlabel(xlabel if xlabel is not None else f"Chromosome {chroms[0]} position ({chr_unit.upper()})")
        else:
            ax.set_xticks(list(chrom_center.values()), list(chrom_center.keys()))
            ax.set_xlabel(xlabel if xlabel is not None else "Chromosome")
        ax.set_ylabel(ylabel if ylabel is not None else r"$-\log_{10}(p)$")
        ax.set_ylim(0, max(ax.get_ylim()[1], 1))
        ax.set_title(title if title is not None else "Manhattan Plot")
        return ax

    def plot_qq(self, df: pd.DataFrame, point_size=5, xlabel=None, ylabel=None, title=None, ax: axes.Axes = None):
        """
        Plot QQ plot of observed against expected -log10(p) under the null.

        :param df: Summary table (column: pvalue)
        :param point_size: Point size for QQ plot
        :param ax: Matplotlib Axes object for plotting
        """
        logger.info("Plotting QQ plot...")
        if ax is None:
            ax = plt.gca()
        pvalues = df["pvalue"].dropna().to_numpy()
        if pvalues.size == 0:
            logger.warning("No markers with p-values to plot.")
            return ax
        observed = neg_log10(np.sort(pvalues))
        expected = neg_log10(np.linspace(1 / len(pvalues), 1, len(pvalues)))

        ax.scatter(expected, observed, s=point_size, color="#6C8EBF")
        ax.plot([0, max(expected)], [0, max(expected)], color="gray", linestyle="--", linewidth=1)

        ax.set_xlabel(xlabel if xlabel is not None else r"Expected $-\log_{10}(p)$")
        ax.set_ylabel(ylabel if ylabel is not None else r"Observed $-\log_{10}(p)$")
        ax.set_title(title if title is not None else "QQ Plot")
        return ax

    def plot_phenotype(self, df: pd.DataFrame, column: str, by: Optional[str] = None, bins=30,
                       colors=None, alpha=0.7, xlabel=None, ax: axes.Axes = None):
        """Histogram of a continuous phenotype, one layer per value of ``by`` (e.g. case/control)."""
        logger.info(f"Plotting distribution of {column}...")
        if ax is None:
            ax = plt.gca()
        if colors is None:
            colors = ["#6C8EBF", "#D79B00", "#82B366", "#B85450"]

        values = pd.to_numeric(df[column], errors="coerce")
        if by is None:
            ax.hist(values.dropna(), bins=bins, color=colors[0], alpha=alpha)
        else:
            edges = np.histogram_bin_edges(values.dropna(), bins=bins)
            for i, (label, group) in enumerate(values.groupby(df[by], sort=True)):
                ax.hist(group.dropna(), bins=edges, color=colors[i % len(colors)], alpha=alpha,
                        label=f"{by}={label}")
            ax.legend(frameon=False)

        ax.spines[['top', 'right']].set_visible(False)
        ax.set_xlabel(xlabel if xlabel is not None else column)
        ax.set_ylabel("Count")
        return ax
