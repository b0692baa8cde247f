"""
Report Assembly Module
======================

Renders the analysis outputs into a single Markdown document.

Sections always appear in the same order: narrative, loaded data,
exploration, decision tree, random forest, testing predictions,
conclusion. The document is only written once every section is present.
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional

import pandas as pd

from .evaluation import Evaluation, compare_evaluations
from .exceptions import AnalysisError
from .forest import ForestModel
from .model import DecisionTreeModel
from .preprocessing import FeatureSelection

logger = logging.getLogger(__name__)

SECTION_ORDER = [
    "narrative",
    "data",
    "exploration",
    "tree",
    "forest",
    "predictions",
    "conclusion",
]


def _block(df: pd.DataFrame, index: bool = True, float_format: str = "{:.4f}") -> str:
    """Fixed-width rendering of a table inside a code fence."""
    text = df.to_string(index=index, float_format=float_format.format)
    return f"```\n{text}\n```"


def _figure(name: str, caption: str) -> str:
    return f"![{caption}]({name})"


def render_narrative(config: Dict[str, Any]) -> str:
    schema = config.get('schema', {})
    classes = schema.get('classes', ["A", "B", "C", "D", "E"])
    return "\n".join([
        "# Weight Lifting Exercise Quality",
        "",
        "Six participants performed barbell lifts while wearing accelerometers on "
        "the belt, forearm, arm and dumbbell. Each repetition was done either "
        "correctly or in one of four common mistaken ways, recorded in the "
        f"`{schema.get('label_column', 'classe')}` column with classes "
        f"{', '.join(str(c) for c in classes)}.",
        "",
        "This report cleans the sensor data, explores it, and compares a single "
        "cross-validated decision tree with a random forest by their expected "
        "out-of-sample error.",
    ])


def render_data_summary(
    training_summary: Dict[str, Any],
    testing_shape: tuple,
    selection: FeatureSelection,
    n_train: int,
    n_test: int
) -> str:
    lines = [
        "## Data",
        "",
        f"The raw training table has {training_summary['shape'][0]} rows and "
        f"{training_summary['shape'][1]} columns; the testing table has "
        f"{testing_shape[0]} rows and {testing_shape[1]} columns. "
        f"{training_summary['missing_pct']:.1f}% of training cells are missing, "
        f"mostly in the {training_summary['mostly_missing_columns']} window-summary columns.",
        "",
        "Cleaning steps, all derived from the training table:",
        "",
        "1. Rows holding pre-aggregated window statistics were removed "
        "(each table filtered by its own indicator column).",
        f"2. {len(selection.dropped_metadata)} bookkeeping columns were dropped: "
        f"{', '.join(f'`{c}`' for c in selection.dropped_metadata) or 'none'}.",
        f"3. {len(selection.dropped_nzv)} near-zero-variance columns were dropped.",
        "",
        f"{selection.n_features} feature columns remain for {n_train} training rows "
        f"and {n_test} testing rows.",
    ]

    if training_summary.get('class_distribution'):
        distribution = pd.DataFrame(
            list(training_summary['class_distribution'].items()),
            columns=["class", "rows"]
        )
        lines += ["", "Class distribution in the raw training table:", "", _block(distribution, index=False)]

    return "\n".join(lines)


def render_exploration(eda_report: Dict[str, Any]) -> str:
    lines = ["## Exploratory Analysis", ""]

    crosstab = eda_report.get('crosstab')
    if crosstab is not None:
        lines += [
            "Observations per participant and class:",
            "",
            _block(crosstab),
            "",
        ]

    for column, table in eda_report.get('histograms', {}).items():
        lines += [f"Distribution of `{column}`:", "", _block(table[["bin", "count"]], index=False), ""]

    for name in eda_report.get('figures', []):
        lines += [_figure(name, Path(name).stem), ""]

    return "\n".join(lines).rstrip()


def render_tree(
    model: DecisionTreeModel,
    evaluation: Evaluation,
    figure: Optional[str] = None,
    top_n: int = 10
) -> str:
    importances = model.feature_importances().head(top_n).rename("importance").to_frame()
    lines = [
        "## Decision Tree",
        "",
        model.summary() + ".",
        "",
        "Cross-validated accuracy per complexity parameter:",
        "",
        _block(model.cv_results(), index=False, float_format="{:.6g}"),
        "",
        "Fitted splits:",
        "",
        f"```\n{model.export_splits().rstrip()}\n```",
        "",
        "Most important features:",
        "",
        _block(importances),
        "",
        "In-sample confusion matrix (rows = true class):",
        "",
        _block(evaluation.confusion),
        "",
        f"In-sample error rate: **{float(evaluation.error_rate):.4f}**. This is an "
        "optimistic estimate; cross-validation only chose the pruning level.",
    ]
    if figure:
        lines += ["", _figure(figure, "decision tree confusion matrix")]
    return "\n".join(lines)


def render_forest(
    model: ForestModel,
    oob_evaluation: Evaluation,
    in_sample: Evaluation,
    figures: Optional[List[str]] = None,
    top_n: int = 10
) -> str:
    importances = model.feature_importances().head(top_n).rename("importance").to_frame()
    lines = [
        "## Random Forest",
        "",
        model.summary() + ".",
        "",
        "Most important features (mean decrease in impurity):",
        "",
        _block(importances),
        "",
        "Out-of-bag confusion matrix (rows = true class):",
        "",
        _block(oob_evaluation.confusion),
        "",
        f"Out-of-bag error rate: **{float(oob_evaluation.error_rate):.4f}** over "
        f"{oob_evaluation.n_scored} rows. Every row is scored only by trees whose "
        "bootstrap sample left it out.",
        "",
        "In-sample confusion matrix, for comparison:",
        "",
        _block(in_sample.confusion),
        "",
        f"In-sample error rate: {float(in_sample.error_rate):.4f}.",
    ]
    for name in figures or []:
        lines += ["", _figure(name, Path(name).stem)]
    return "\n".join(lines)


def render_predictions(predictions: pd.DataFrame) -> str:
    return "\n".join([
        "## Testing Set Predictions",
        "",
        "Random forest predictions for the testing rows:",
        "",
        _block(predictions, index=False),
    ])


def render_conclusion(evaluations: List[Evaluation], oob_error: float) -> str:
    comparison = compare_evaluations(evaluations)
    tree_error = next(
        (float(e.error_rate) for e in evaluations if e.model_name == "decision tree"), None
    )
    oob_error = float(oob_error)

    lines = [
        "## Conclusion",
        "",
        _block(comparison, index=False),
        "",
    ]
    if tree_error is not None and oob_error < tree_error:
        lines.append(
            f"The random forest's out-of-bag error ({oob_error:.4f}) is below even the "
            f"decision tree's optimistic in-sample error ({tree_error:.4f}), so the "
            "forest is expected to generalize better."
        )
    else:
        lines.append(
            f"The random forest's out-of-bag error is {oob_error:.4f}; the decision "
            "tree's in-sample error is not a fair comparison because it is measured "
            "on the rows the tree was fit on."
        )
    lines += [
        "",
        "The expected out-of-sample error of the chosen model is its out-of-bag "
        f"error rate, {oob_error:.2%}.",
    ]
    return "\n".join(lines)


def assemble_report(sections: Dict[str, str]) -> str:
    """
    Join rendered sections in the fixed report order.

    Raises:
        AnalysisError: If any section is missing or empty
    """
    missing = [name for name in SECTION_ORDER if not sections.get(name)]
    if missing:
        raise AnalysisError("Report is incomplete", context={"missing_sections": missing})

    return "\n\n".join(sections[name].rstrip() for name in SECTION_ORDER) + "\n"


def write_report(text: str, path: str) -> Path:
    """
    Write the assembled report to disk.

    Returns:
        Path of the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding='utf-8')
    logger.info(f"Report written to {path}")
    return path
