"""
Exploratory Data Analysis (EDA) Module
======================================

Read-only exploration of the cleaned training table. Nothing computed
here is used by the trainers.

Functions:
    - cross_tabulate: Subject × label frequency table
    - compute_histogram: Binned counts (numeric) or value counts (categorical)
    - plot_histograms: Histogram / count plots for selected columns
    - plot_crosstab: Stacked bar chart of the subject × label table
    - generate_eda_report: Full EDA output with all tables and figures
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from scipy import stats

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def cross_tabulate(
    df: pd.DataFrame,
    subject_column: str = "user_name",
    label_column: str = "classe",
    margins: bool = True
) -> pd.DataFrame:
    """
    Count observations per subject and label.

    Args:
        df: Table holding both columns
        subject_column: Row variable
        label_column: Column variable
        margins: Whether to append row/column totals

    Returns:
        Frequency table with subjects as rows and labels as columns
    """
    for col in (subject_column, label_column):
        if col not in df.columns:
            raise KeyError(f"Column '{col}' not found for cross-tabulation")

    return pd.crosstab(
        df[subject_column],
        df[label_column],
        margins=margins,
        margins_name="Total"
    )


def compute_histogram(df: pd.DataFrame, column: str, bins: int = 30) -> pd.DataFrame:
    """
    Tabulate the distribution of one column.

    Numeric columns are binned into ``bins`` equal-width intervals;
    anything else is counted per distinct value.

    Returns:
        DataFrame with ``bin`` (interval label or value) and ``count`` columns
    """
    if column not in df.columns:
        raise KeyError(f"Column '{column}' not found for histogram")

    values = df[column].dropna()

    if pd.api.types.is_numeric_dtype(values):
        counts, edges = np.histogram(values, bins=bins)
        labels = [f"[{lo:.3g}, {hi:.3g})" for lo, hi in zip(edges[:-1], edges[1:])]
        return pd.DataFrame({
            "bin": labels,
            "left": edges[:-1],
            "right": edges[1:],
            "count": counts
        })

    counts = values.value_counts().sort_index()
    return pd.DataFrame({"bin": counts.index.astype(str), "count": counts.values})


def plot_histograms(
    df: pd.DataFrame,
    columns: List[str],
    bins: int = 30,
    figsize: Tuple[int, int] = (7, 4),
    save_dir: Optional[str] = None
) -> List[str]:
    """
    Create one histogram (numeric) or count plot (categorical) per column.

    Args:
        df: Table to plot
        columns: Columns to plot
        bins: Number of bins for numeric columns
        figsize: Figure size per plot
        save_dir: Directory to save figures (optional)

    Returns:
        List of saved figure file names (empty if nothing saved)
    """
    saved = []

    for idx, col in enumerate(columns, start=1):
        fig, ax = plt.subplots(figsize=figsize)
        values = df[col].dropna()

        if pd.api.types.is_numeric_dtype(values):
            sns.histplot(values, bins=bins, ax=ax, alpha=0.7)
            ax.axvline(values.mean(), color='red', linestyle='--', label=f'Mean: {values.mean():.2f}')
            title = f'{col}'
            # normaltest needs at least 8 observations
            if len(values) >= 8 and values.nunique() > 1:
                _, p_value = stats.normaltest(values)
                normality = "Normal" if p_value > 0.05 else "Non-Normal"
                title = f'{col} ({normality}, p={p_value:.3f})'
            ax.set_title(title, fontsize=12, fontweight='bold')
            ax.legend(fontsize=8)
        else:
            order = sorted(values.astype(str).unique())
            sns.countplot(x=values.astype(str), order=order, ax=ax)
            ax.set_title(f'{col}', fontsize=12, fontweight='bold')

        ax.set_xlabel(col)
        ax.set_ylabel('Frequency')
        plt.tight_layout()

        if save_dir:
            name = f"{idx:02d}_hist_{col}.png"
            fig.savefig(str(Path(save_dir) / name), dpi=150, bbox_inches='tight')
            saved.append(name)
            logger.info(f"Histogram of {col} saved to {Path(save_dir) / name}")

        plt.close(fig)

    return saved


def plot_crosstab(
    table: pd.DataFrame,
    figsize: Tuple[int, int] = (9, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Stacked bar chart of a subject × label frequency table (margins removed).
    """
    counts = table.drop(index="Total", columns="Total", errors="ignore")

    fig, ax = plt.subplots(figsize=figsize)
    counts.plot(kind='bar', stacked=True, ax=ax, width=0.8)
    ax.set_title('Observations per Subject and Class', fontsize=14, fontweight='bold')
    ax.set_xlabel(counts.index.name or 'subject')
    ax.set_ylabel('Count')
    ax.legend(title=counts.columns.name or 'class', fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Cross-tabulation chart saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    config: Optional[Dict[str, Any]] = None,
    output_dir: Optional[str] = None
) -> Dict[str, Any]:
    """
    Generate the exploratory tables and figures.

    Args:
        df: Cleaned training table
        config: Configuration dictionary (``schema`` and ``eda`` sections)
        output_dir: Directory to save figures; no figures when omitted

    Returns:
        Dictionary with the cross-tab, histogram tables and figure names
    """
    config = config or {}
    schema = config.get('schema', {})
    eda_config = config.get('eda', {})

    subject_column = schema.get('subject_column', 'user_name')
    label_column = schema.get('label_column', 'classe')
    columns = eda_config.get('histogram_columns', [label_column, 'roll_belt'])
    bins = eda_config.get('bins', 30)

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    columns = [col for col in columns if col in df.columns]
    report = {
        "crosstab": None,
        "histograms": {},
        "figures": []
    }

    if output_dir:
        Path(output_dir).mkdir(parents=True, exist_ok=True)

    if subject_column in df.columns:
        logger.info("Cross-tabulating subjects and classes...")
        report["crosstab"] = cross_tabulate(df, subject_column, label_column)
        if output_dir:
            fig = plot_crosstab(
                report["crosstab"],
                save_path=str(Path(output_dir) / "00_crosstab.png")
            )
            plt.close(fig)
            report["figures"].append("00_crosstab.png")
    else:
        logger.warning(f"Subject column '{subject_column}' not present; skipping cross-tabulation")

    logger.info(f"Computing histograms for {columns}...")
    for col in columns:
        report["histograms"][col] = compute_histogram(df, col, bins=bins)

    report["figures"].extend(plot_histograms(df, columns, bins=bins, save_dir=output_dir))

    logger.info("=" * 60)
    logger.info("EDA COMPLETE")
    logger.info("=" * 60)

    return report
