"""
Plot MMD or INE envelopes against forward-search subset size.

Outer bands (the most extreme probabilities) are drawn in black, inner
bands in red; an observed trajectory, if given, is overlaid in blue.

Usage:
    python -m fsca_envelopes.plot.envelope_plot \\
        --data data/mmd_envelope.csv \\
        --output figures/mmd_envelope.png
"""

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from ..config import DATA_DIR, FIGURES_DIR
from ..envelopes.mmd import load_envelope_csv


def _band_colors(prob: Sequence[float]):
    """Black for the two most extreme probabilities, red for the rest."""
    if len(prob) <= 2:
        return ["k"] * len(prob)
    order = np.argsort(prob)
    outer = {int(order[0]), int(order[-1])}
    return ["k" if i in outer else "r" for i in range(len(prob))]


def plot_envelopes(
    envelope: np.ndarray,
    prob: Optional[Sequence[float]] = None,
    observed: Optional[np.ndarray] = None,
    ax: Optional[plt.Axes] = None,
    ylabel: str = "MMD",
    output: Optional[Path] = None,
    dpi: int = 300,
    show: bool = False,
) -> plt.Figure:
    """
    Plot envelope curves.

    Parameters
    ----------
    envelope : np.ndarray, shape (n_steps, 1 + n_prob)
        Envelope matrix; column 0 is the subset size.
    prob : sequence of float, optional
        Probabilities of columns 1.., used for colors and legend.
    observed : np.ndarray, optional
        Observed trajectory, (n_steps, 2) of (step, value) rows or 1-D
        values aligned with the envelope steps.
    ax : matplotlib Axes, optional
        Draw into this axes instead of a new figure.
    ylabel : str
        Y-axis label.
    output : Path, optional
        Save figure to this path. Supports .png and .pdf.
    dpi : int
        Resolution for PNG output.
    show : bool
        Display plot interactively.

    Returns
    -------
    matplotlib.figure.Figure
    """
    envelope = np.asarray(envelope, dtype=np.float64)
    steps = envelope[:, 0]
    n_prob = envelope.shape[1] - 1
    if prob is None:
        prob = [float("nan")] * n_prob
    if len(prob) != n_prob:
        raise ValueError(
            f"{len(prob)} probabilities given for {n_prob} envelope columns"
        )

    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 6))
    else:
        fig = ax.figure

    for k, color in enumerate(_band_colors(prob)):
        label = None if np.isnan(prob[k]) else f"{100 * prob[k]:g}%"
        ax.plot(steps, envelope[:, k + 1], color=color, linestyle="-",
                linewidth=1.0, label=label)

    if observed is not None:
        observed = np.asarray(observed, dtype=np.float64)
        if observed.ndim == 2:
            ax.plot(observed[:, 0], observed[:, 1], "b-", linewidth=1.5,
                    label="observed")
        else:
            ax.plot(steps[:len(observed)], observed, "b-", linewidth=1.5,
                    label="observed")

    ax.set_xlabel("Subset size m", fontsize=14)
    ax.set_ylabel(ylabel, fontsize=14)
    ax.tick_params(labelsize=12)
    if ax.get_legend_handles_labels()[1]:
        ax.legend()

    fig.tight_layout()

    if output is not None:
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output, dpi=dpi, bbox_inches="tight")
        print(f"Saved: {output}")

        # Also save PDF if primary output is PNG
        if output.suffix.lower() == ".png":
            pdf_path = output.with_suffix(".pdf")
            fig.savefig(pdf_path, bbox_inches="tight")
            print(f"Saved: {pdf_path}")

    if show:
        plt.show()

    return fig


def main(argv=None):
    """Command-line entry point for envelope plotting."""
    parser = argparse.ArgumentParser(
        description="Plot forward-search envelopes against subset size"
    )
    parser.add_argument(
        "--data", type=str,
        default=str(DATA_DIR / "mmd_envelope.csv"),
        help="Envelope CSV written by fsca_envelopes.envelopes.mmd",
    )
    parser.add_argument(
        "--observed", type=str, default=None,
        help="Optional CSV of (step, value) rows to overlay",
    )
    parser.add_argument(
        "--ylabel", type=str, default="MMD",
        help="Y-axis label (default: MMD)",
    )
    parser.add_argument(
        "--output", type=str,
        default=str(FIGURES_DIR / "mmd_envelope.png"),
        help="Output file path (.png or .pdf)",
    )
    parser.add_argument(
        "--dpi", type=int, default=300,
        help="Resolution for PNG output (default: 300)",
    )
    parser.add_argument(
        "--show", action="store_true",
        help="Display plot interactively",
    )

    args = parser.parse_args(argv)

    data_path = Path(args.data)
    if not data_path.exists():
        print(f"ERROR: Data file not found: {data_path}", file=sys.stderr)
        sys.exit(1)

    envelope, prob = load_envelope_csv(data_path)
    print(f"Loaded {envelope.shape[0]} steps x {len(prob)} envelopes "
          f"from {data_path}")

    observed = None
    if args.observed:
        observed = np.loadtxt(args.observed, delimiter=",", ndmin=2)

    plot_envelopes(
        envelope,
        prob=prob,
        observed=observed,
        ylabel=args.ylabel,
        output=Path(args.output),
        dpi=args.dpi,
        show=args.show,
    )


if __name__ == "__main__":
    main()
