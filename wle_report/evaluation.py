"""
Model Evaluation Module
=======================

Confusion matrices and misclassification rates for fitted models.

Features:
    - In-sample evaluation of any fitted model
    - Out-of-bag evaluation of the forest
    - Per-class precision/recall table
    - Confusion matrix heatmaps
"""

import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import List, Optional, Sequence, Tuple

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.metrics import classification_report, confusion_matrix

from .exceptions import AnalysisError
from .forest import ForestModel
from .model import FittedModel

logger = logging.getLogger(__name__)

DEFAULT_CLASSES = ["A", "B", "C", "D", "E"]


@dataclass
class Evaluation:
    """
    Confusion matrix of one model on one set of rows.

    Rates are exact fractions of the matrix counts, so ``accuracy`` and
    ``1 - error_rate`` are always equal.
    """

    model_name: str
    kind: str
    confusion: pd.DataFrame
    per_class: Optional[pd.DataFrame] = None

    def __post_init__(self):
        if self.n_scored == 0:
            raise AnalysisError("Cannot compute an error rate from an empty confusion matrix")

    @property
    def n_scored(self) -> int:
        return int(self.confusion.values.sum())

    @property
    def n_correct(self) -> int:
        return int(np.trace(self.confusion.values))

    @property
    def accuracy(self) -> Fraction:
        return Fraction(self.n_correct, self.n_scored)

    @property
    def error_rate(self) -> Fraction:
        return misclassification_rate(self.confusion)


def confusion_table(
    y_true: Sequence,
    y_pred: Sequence,
    labels: Optional[Sequence] = None
) -> pd.DataFrame:
    """
    Square confusion matrix with true labels as rows, predictions as columns.

    Args:
        y_true: True labels
        y_pred: Predicted labels
        labels: Label order for both axes (default: sorted union)

    Returns:
        DataFrame of counts
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)

    if labels is None:
        labels = sorted(set(y_true.tolist()) | set(y_pred.tolist()))
    labels = list(labels)

    matrix = confusion_matrix(y_true, y_pred, labels=labels)
    return pd.DataFrame(
        matrix,
        index=pd.Index(labels, name="true"),
        columns=pd.Index(labels, name="predicted")
    )


def misclassification_rate(confusion: pd.DataFrame) -> Fraction:
    """Off-diagonal share of a confusion matrix, as an exact fraction."""
    total = int(confusion.values.sum())
    if total == 0:
        raise AnalysisError("Cannot compute an error rate from an empty confusion matrix")
    correct = int(np.trace(confusion.values))
    return Fraction(total - correct, total)


def _labels_for(model: FittedModel, y_true: np.ndarray, classes: Optional[Sequence]) -> List:
    labels = list(classes) if classes is not None else list(DEFAULT_CLASSES)
    seen = set(model.classes_.tolist()) | set(y_true.tolist())
    # keep the fixed order, then append anything unexpected
    return labels + sorted(seen - set(labels))


def _per_class_table(y_true: np.ndarray, y_pred: np.ndarray, labels: List) -> pd.DataFrame:
    report = classification_report(
        y_true, y_pred, labels=labels, output_dict=True, zero_division=0
    )
    rows = {str(label): report[str(label)] for label in labels if str(label) in report}
    return pd.DataFrame(rows).T[['precision', 'recall', 'f1-score', 'support']]


def evaluate_model(
    model: FittedModel,
    features: pd.DataFrame,
    true_labels: Sequence,
    classes: Optional[Sequence] = None
) -> Evaluation:
    """
    Score a model by predicting the given rows.

    On the training table this is an in-sample (optimistic) estimate.

    Args:
        model: Fitted model
        features: Feature table with the training columns
        true_labels: Labels of those rows
        classes: Fixed label order for the matrix axes

    Returns:
        Evaluation with confusion matrix and error rate
    """
    y_true = np.asarray(true_labels)
    y_pred = model.predict(features)
    labels = _labels_for(model, y_true, classes)

    confusion = confusion_table(y_true, y_pred, labels)
    evaluation = Evaluation(
        model_name=model.name,
        kind="in-sample",
        confusion=confusion,
        per_class=_per_class_table(y_true, y_pred, labels)
    )

    logger.info(f"{model.name} in-sample error rate: {float(evaluation.error_rate):.4f} "
                f"over {evaluation.n_scored} rows")
    return evaluation


def evaluate_out_of_bag(
    model: ForestModel,
    true_labels: Sequence,
    classes: Optional[Sequence] = None
) -> Evaluation:
    """
    Score a forest by its out-of-bag predictions.

    Rows without any held-out tree are left out, matching
    ``model.out_of_bag_error()``.
    """
    y_true = np.asarray(true_labels)
    mask = model.oob_mask
    if not mask.any():
        raise AnalysisError("No row has a held-out tree; increase the number of trees")

    y_pred = model.oob_predictions[mask]
    y_true = y_true[mask]
    labels = _labels_for(model, y_true, classes)

    confusion = confusion_table(y_true, y_pred, labels)
    evaluation = Evaluation(
        model_name=model.name,
        kind="out-of-bag",
        confusion=confusion,
        per_class=_per_class_table(y_true, y_pred, labels)
    )

    logger.info(f"{model.name} out-of-bag error rate: {float(evaluation.error_rate):.4f} "
                f"over {evaluation.n_scored} rows")
    return evaluation


def plot_confusion_matrix(
    evaluation: Evaluation,
    figsize: Tuple[int, int] = (6, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Heatmap of an evaluation's confusion matrix.
    """
    fig, ax = plt.subplots(figsize=figsize)

    sns.heatmap(
        evaluation.confusion,
        annot=True,
        fmt='d',
        cmap='Blues',
        cbar_kws={"shrink": 0.8, "label": "Count"},
        ax=ax
    )

    ax.set_title(
        f'{evaluation.model_name.title()} ({evaluation.kind})\n'
        f'error rate={float(evaluation.error_rate):.4f}',
        fontsize=12, fontweight='bold'
    )
    ax.set_xlabel('Predicted')
    ax.set_ylabel('True')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Confusion matrix saved to {save_path}")

    return fig


def compare_evaluations(evaluations: List[Evaluation]) -> pd.DataFrame:
    """One row per evaluation: model, kind, rows scored, error rate, accuracy."""
    return pd.DataFrame([
        {
            "model": e.model_name,
            "estimate": e.kind,
            "rows": e.n_scored,
            "error_rate": float(e.error_rate),
            "accuracy": float(e.accuracy)
        }
        for e in evaluations
    ])


def print_evaluation_report(evaluation: Evaluation) -> None:
    """
    Print a formatted evaluation report.

    Args:
        evaluation: Evaluation to print
    """
    print("\n" + "=" * 70)
    print(f"MODEL EVALUATION: {evaluation.model_name.upper()} ({evaluation.kind})")
    print("=" * 70)
    print("\nConfusion Matrix (rows = true, columns = predicted):")
    print("-" * 70)
    print(evaluation.confusion.to_string())
    print("-" * 70)
    print(f"  • Rows scored: {evaluation.n_scored}")
    print(f"  • Error rate: {float(evaluation.error_rate):.4f}")
    print(f"  • Accuracy: {float(evaluation.accuracy):.4f}")

    if evaluation.per_class is not None:
        print("\nPer-Class Metrics:")
        print(evaluation.per_class.round(4).to_string())

    print("=" * 70 + "\n")
