"""
Prediction Module
=================

Class predictions for the filtered testing table.

Predictions are only made on a table that already passed
``apply_selection``, so schema problems surface before any model is used.
"""

import logging
from typing import Optional, Sequence

import pandas as pd

from .model import FittedModel

logger = logging.getLogger(__name__)


def predict_testing(
    model: FittedModel,
    testing_features: pd.DataFrame,
    ids: Optional[Sequence] = None,
    id_column: str = "problem_id",
    label_column: str = "classe"
) -> pd.DataFrame:
    """
    Predict the label of every testing row.

    Args:
        model: Fitted model
        testing_features: Testing table restricted to the selected columns
        ids: Row identifiers (default: 1-based row numbers)
        id_column: Name of the identifier column in the result
        label_column: Name of the predicted label column in the result

    Returns:
        DataFrame with identifier and predicted label per row
    """
    if ids is None:
        ids = range(1, len(testing_features) + 1)
    ids = list(ids)

    if len(ids) != len(testing_features):
        raise ValueError(
            f"Expected {len(testing_features)} identifiers, got {len(ids)}"
        )

    predicted = model.predict(testing_features)
    result = pd.DataFrame({id_column: ids, label_column: predicted})

    counts = result[label_column].value_counts().sort_index().to_dict()
    logger.info(f"Predicted {len(result)} testing rows with the {model.name}: {counts}")

    return result


def print_prediction_results(predictions: pd.DataFrame) -> None:
    """
    Print the testing predictions.

    Args:
        predictions: Result of predict_testing
    """
    print("\n" + "=" * 50)
    print("TESTING SET PREDICTIONS")
    print("=" * 50)
    print(predictions.to_string(index=False))
    print("=" * 50 + "\n")
