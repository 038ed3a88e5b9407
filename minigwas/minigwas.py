from minigwas.assoc import GENOME_WIDE_SIGNIFICANCE, run_association, top_hit, top_hits
from minigwas.data import (DEFAULT_ID_COL, merge_datasets, read_genotypes, read_marker_freq, read_phenotypes,
                           read_summary, write_table)
from minigwas.log import logger
from minigwas.phe import case_control_counts, summarize_phenotypes
from minigwas.sim import write_dataset
from minigwas.viz import Visualizer

import argparse
import os
from typing import List, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt


def _split_list(raw: Optional[str]) -> Optional[List[str]]:
    """Comma-separated values, or one value per line when ``raw`` names a file."""
    if not raw:
        return None
    candidate = os.path.expanduser(raw)
    if os.path.isfile(candidate):
        with open(candidate, "r", encoding="utf-8") as handle:
            values = [line.strip() for line in handle if line.strip()]
    else:
        values = [part.strip() for part in raw.split(",") if part.strip()]
    if not values:
        raise ValueError(f"No values found in '{raw}'.")
    return values


def _save_figure(fig, args) -> str:
    out_path = os.path.join(args.out_dir, f"{args.out_name}.{args.format}")
    fig.tight_layout()
    fig.savefig(out_path, dpi=300, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved figure to {out_path}")
    return out_path


def run_simulate(args):
    """Process simulate subcommand."""
    logger.info("Simulating teaching dataset...")
    write_dataset(
        args.out_dir,
        args.out_name,
        n_samples=args.samples,
        n_markers=args.markers,
        chroms=_split_list(args.chroms),
        causal=_split_list(args.causal),
        effect=args.effect,
        noise_sd=args.noise_sd,
        prevalence=args.prevalence,
        seed=args.seed,
    )
    logger.info("Done!")


def run_scan(args):
    """Process scan subcommand."""
    logger.info("Initializing association scan...")
    phenotypes = read_phenotypes(args.phe, id_col=args.id_col, columns=[args.outcome])
    genotypes = read_genotypes(args.geno, id_col=args.id_col)
    metadata = read_marker_freq(args.freq)

    if args.chrom:
        metadata = metadata[metadata["chrom"] == str(args.chrom)]
        logger.info(f"Restricting scan to chromosome {args.chrom} ({len(metadata)} markers).")

    merged = merge_datasets(phenotypes, genotypes, id_col=args.id_col)
    markers = _split_list(args.markers)
    summary = run_association(merged, metadata, args.outcome, markers=markers, id_col=args.id_col)

    out_path = os.path.join(args.out_dir, f"{args.out_name}.summary.tsv")
    write_table(summary, out_path)
    logger.info(f"Saved summary statistics for {len(summary)} markers to {out_path}")

    if summary.empty:
        logger.warning("Summary table is empty; no marker is shared by metadata and genotypes.")
        return summary

    hit = top_hit(summary)
    logger.info(
        "Top hit: %s (chr %s:%s) beta=%.4g se=%.4g p=%.3g",
        hit["snp"], hit["chrom"], hit["pos"], hit["beta"], hit["se"], hit["pvalue"],
    )
    for rank, row in top_hits(summary, args.top_n).iterrows():
        logger.info("  %d. %s p=%.3g", rank + 1, row["snp"], row["pvalue"])
    n_sig = int((summary["pvalue"] < args.sig_threshold).sum())
    logger.info(f"{n_sig} markers below p < {args.sig_threshold:.2e}.")

    if args.plot:
        fig = plt.figure(figsize=(args.width, args.height))
        ax = fig.add_subplot(111)
        Visualizer().plot_manhattan(summary, sig_threshold=args.sig_threshold, chr_unit=args.chr_unit,
                                    label_top=True, title=f"{args.outcome}", ax=ax)
        _save_figure(fig, args)

    logger.info("Done!")
    return summary


def plot_manhattan(args):
    """Manhattan plot"""
    logger.info("Starting plot subcommand...")
    summary = read_summary(args.summary)
    if args.chrom:
        summary = summary[summary["chrom"] == str(args.chrom)]
    visualizer = Visualizer()
    fig = plt.figure(figsize=(args.width, args.height))
    if args.qq:
        spec = fig.add_gridspec(1, 5)
        ax1 = fig.add_subplot(spec[0, :4])
        ax2 = fig.add_subplot(spec[0, 4])
        visualizer.plot_manhattan(summary, chr_unit=args.chr_unit, chr_colors=args.chr_colors,
                                  sig_threshold=args.sig_threshold, point_size=args.point_size,
                                  label_top=args.label_top, ax=ax1)
        visualizer.plot_qq(summary, point_size=args.point_size, ax=ax2)
    else:
        ax = fig.add_subplot(111)
        visualizer.plot_manhattan(summary, chr_unit=args.chr_unit, chr_colors=args.chr_colors,
                                  sig_threshold=args.sig_threshold, point_size=args.point_size,
                                  label_top=args.label_top, ax=ax)
    _save_figure(fig, args)
    logger.info("Plotting completed!")


def plot_qq(args):
    """QQ plot"""
    logger.info("Starting plot subcommand...")
    summary = read_summary(args.summary)
    fig = plt.figure(figsize=(args.width, args.height))
    ax = fig.add_subplot(111)
    Visualizer().plot_qq(summary, point_size=args.point_size, ax=ax)
    _save_figure(fig, args)
    logger.info("Plotting completed!")


def phe_stat(args):
    """Phenotype statistics and distribution plot"""
    phenotypes = read_phenotypes(args.phe, id_col=args.id_col)
    columns = _split_list(args.columns)
    stat_df = summarize_phenotypes(phenotypes, columns, id_col=args.id_col)
    stats_path = os.path.join(args.out_dir, f"{args.out_name}.stats.tsv")
    write_table(stat_df, stats_path)
    logger.info(f"Phenotype statistics saved to: {stats_path}")

    if args.label:
        case_control_counts(phenotypes, args.label)

    if args.plot_column:
        fig = plt.figure(figsize=(args.width, args.height))
        ax = fig.add_subplot(111)
        Visualizer().plot_phenotype(phenotypes, args.plot_column, by=args.label, bins=args.bins, ax=ax)
        _save_figure(fig, args)


def _add_figure_args(parser, width=10, height=4, out_name="output"):
    parser.add_argument("--width", type=float, default=width, help="Figure width (default: %(default)s)")
    parser.add_argument("--height", type=float, default=height, help="Figure height (default: %(default)s)")
    parser.add_argument("--format", type=str, default="png", help="Output format, e.g., pdf or png (default: %(default)s)")
    parser.add_argument("--out_dir", type=str, default=".", help="Output directory (default: %(default)s)")
    parser.add_argument("--out_name", type=str, default=out_name, help="Output file name prefix (default: %(default)s)")


def build_parser():
    description = """
    minigwas: single-marker association scans and Manhattan plots for small teaching datasets.
    """

    epilog = """
    Example usage:
    minigwas simulate --out_dir data --out_name demo
    minigwas scan --phe data/demo.pheno.tsv --geno data/demo.geno.tsv --freq data/demo.freq.tsv --outcome trait --plot
    """
    __version__ = "0.1.0"

    parser = argparse.ArgumentParser(
        description=description,
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter  # Preserve formatting
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    # simulate subcommand
    sim_parser = subparsers.add_parser("simulate", help="Write simulated phenotype, genotype and marker files")
    sim_parser.add_argument("--samples", type=int, default=500, help="Number of participants (default: %(default)s)")
    sim_parser.add_argument("--markers", type=int, default=40, help="Number of markers (default: %(default)s)")
    sim_parser.add_argument("--chroms", type=str, default="11,20", help="Comma-separated chromosomes (default: %(default)s)")
    sim_parser.add_argument("--causal", type=str, default=None, help="Comma-separated causal marker ids (default: first marker)")
    sim_parser.add_argument("--effect", type=float, default=0.5, help="Effect per reference allele (default: %(default)s)")
    sim_parser.add_argument("--noise_sd", type=float, default=1.0, help="Noise standard deviation (default: %(default)s)")
    sim_parser.add_argument("--prevalence", type=float, default=0.3, help="Fraction of cases (default: %(default)s)")
    sim_parser.add_argument("--seed", type=int, default=42, help="Random seed (default: %(default)s)")
    sim_parser.add_argument("--out_dir", type=str, default=".", help="Output directory (default: %(default)s)")
    sim_parser.add_argument("--out_name", type=str, default="sim", help="Output file name prefix (default: %(default)s)")
    sim_parser.set_defaults(func=run_simulate)

    # scan subcommand
    scan_parser = subparsers.add_parser("scan", help="Run one linear regression per marker")
    scan_parser.add_argument("--phe", type=str, required=True, help="Phenotype file (id column plus phenotype columns)")
    scan_parser.add_argument("--geno", type=str, required=True, help="Genotype file (id column plus one 0/1/2 dosage column per marker)")
    scan_parser.add_argument("--freq", type=str, required=True, help="Marker file with chrom, snp, pos, ref, alt, ref_freq")
    scan_parser.add_argument("--outcome", type=str, required=True, help="Phenotype column used as outcome")
    scan_parser.add_argument("--id_col", type=str, default=DEFAULT_ID_COL, help="Participant id column (default: %(default)s)")
    scan_parser.add_argument("--chrom", type=str, default=None, help="Only scan markers on this chromosome")
    scan_parser.add_argument("--markers", type=str, default=None, help="Comma-separated marker ids or a file with one id per line")
    scan_parser.add_argument("--top_n", type=int, default=5, help="Number of leading markers to log (default: %(default)s)")
    scan_parser.add_argument("--sig_threshold", type=float, default=GENOME_WIDE_SIGNIFICANCE, help="Significance line (default: %(default)s)")
    scan_parser.add_argument("--chr_unit", type=str, default="mb", choices=["mb", "kb", "bp"], help="Position unit (default: %(default)s)")
    scan_parser.add_argument("--plot", action="store_true", help="Also save a Manhattan plot")
    _add_figure_args(scan_parser, out_name="gwas")
    scan_parser.set_defaults(func=run_scan)

    # plot subcommand group
    plot_parser = subparsers.add_parser("plot", help="Plot summary statistics")
    plot_subparsers = plot_parser.add_subparsers(dest="plot_command", help="Plot types")

    manhattan_parser = plot_subparsers.add_parser("manhattan", help="Generate Manhattan plot")
    manhattan_parser.add_argument("--summary", type=str, required=True, help="Summary table from the scan subcommand")
    manhattan_parser.add_argument("--chrom", type=str, default=None, help="Only plot this chromosome")
    manhattan_parser.add_argument("--sig_threshold", type=float, nargs="+", default=[GENOME_WIDE_SIGNIFICANCE], help="Significance threshold(s) (default: %(default)s)")
    manhattan_parser.add_argument("--chr_unit", type=str, default="mb", choices=["mb", "kb", "bp"], help="Position unit (default: %(default)s)")
    manhattan_parser.add_argument("--chr_colors", type=str, nargs="+", default=None, help="Colors cycled over chromosomes")
    manhattan_parser.add_argument("--point_size", type=float, default=8, help="Point size (default: %(default)s)")
    manhattan_parser.add_argument("--label_top", action="store_true", help="Label the top marker")
    manhattan_parser.add_argument("--qq", action="store_true", help="Add a QQ plot panel")
    _add_figure_args(manhattan_parser)
    manhattan_parser.set_defaults(plot_func=plot_manhattan)

    qq_parser = plot_subparsers.add_parser("qq", help="Generate QQ plot")
    qq_parser.add_argument("--summary", type=str, required=True, help="Summary table from the scan subcommand")
    qq_parser.add_argument("--point_size", type=float, default=8, help="Point size (default: %(default)s)")
    _add_figure_args(qq_parser, width=4, height=4)
    qq_parser.set_defaults(plot_func=plot_qq)

    # phe subcommand group
    phe_parser = subparsers.add_parser("phe", help="Phenotype utilities")
    phe_subparsers = phe_parser.add_subparsers(dest="phe_command", help="phe subcommands")
    phe_stat_p = phe_subparsers.add_parser("stat", help="Compute phenotype statistics and plot distribution")
    phe_stat_p.add_argument("--phe", type=str, required=True, help="Phenotype file")
    phe_stat_p.add_argument("--id_col", type=str, default=DEFAULT_ID_COL, help="Participant id column (default: %(default)s)")
    phe_stat_p.add_argument("--columns", type=str, default=None, help="Comma-separated phenotype columns (default: all)")
    phe_stat_p.add_argument("--label", type=str, default=None, help="Binary case/control column to count and split by")
    phe_stat_p.add_argument("--plot_column", type=str, default=None, help="Continuous column to plot as a histogram")
    phe_stat_p.add_argument("--bins", type=int, default=30, help="Histogram bins (default: %(default)s)")
    _add_figure_args(phe_stat_p, width=6, height=4, out_name="phe_stat")
    phe_stat_p.set_defaults(func=phe_stat)

    return parser


def main(argv=None):
    parser = build_parser()
    # Parse arguments and execute the corresponding subcommand
    args = parser.parse_args(argv)
    if args.command:
        # Create output directory if it doesn't exist
        if hasattr(args, "out_dir"):
            os.makedirs(args.out_dir, exist_ok=True)
        if hasattr(args, 'plot_func'):
            args.plot_func(args)
        elif hasattr(args, 'func'):
            args.func(args)
        else:
            parser.print_help()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
