"""
Forest Training Module
======================

Random forest built as bootstrap-aggregated decision trees that sample a
random feature subset at every split.

The ensemble keeps track, for every training row, of the trees whose
bootstrap sample left that row out. Majority vote over those held-out
trees gives an out-of-bag prediction per row, and the misclassification
rate of those predictions is the model's generalization-error estimate.
"""

import logging
from datetime import datetime
from typing import Dict, Any, Optional, Union

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import BaggingClassifier
from sklearn.tree import DecisionTreeClassifier

from .exceptions import FitError
from .model import FittedModel, build_encoder, validate_training_input

logger = logging.getLogger(__name__)

FOREST_SEED = 1984
DEFAULT_TREE_COUNT = 500


class ForestModel(FittedModel):
    """Bagged random-feature trees with out-of-bag predictions."""

    name = "random forest"

    def __init__(
        self,
        encoder: ColumnTransformer,
        ensemble: BaggingClassifier,
        oob_votes: np.ndarray,
        true_labels: np.ndarray,
        seed: int
    ):
        super().__init__(encoder, ensemble.classes_)
        self.ensemble = ensemble
        self.seed = seed
        self.oob_votes = oob_votes
        self.oob_tree_counts = oob_votes.sum(axis=1)
        self.oob_predictions = np.array(
            [self.classes_[np.argmax(row)] if row.sum() > 0 else None for row in oob_votes],
            dtype=object
        )
        self._true_labels = true_labels

    @classmethod
    def fit(
        cls,
        features: pd.DataFrame,
        labels: pd.Series,
        tree_count: int = DEFAULT_TREE_COUNT,
        seed: int = FOREST_SEED,
        max_features: Union[str, int, float, None] = "sqrt",
        n_jobs: Optional[int] = None
    ) -> 'ForestModel':
        """Encode the features, bag the trees and collect their out-of-bag votes."""
        y = np.asarray(labels)
        encoder = build_encoder(features)

        try:
            X = encoder.fit_transform(features)
            ensemble = BaggingClassifier(
                estimator=DecisionTreeClassifier(max_features=max_features),
                n_estimators=tree_count,
                max_samples=1.0,
                bootstrap=True,
                random_state=seed,
                n_jobs=n_jobs
            )
            ensemble.fit(X, y)
        except ValueError as e:
            raise FitError(f"Random forest fitting failed: {e}") from e

        return cls(encoder, ensemble, out_of_bag_votes(ensemble, X), y, seed)

    @property
    def estimator(self) -> BaggingClassifier:
        return self.ensemble

    @property
    def tree_count(self) -> int:
        return len(self.ensemble.estimators_)

    @property
    def oob_mask(self) -> np.ndarray:
        """Rows with at least one held-out tree."""
        return self.oob_tree_counts > 0

    def out_of_bag_error(self) -> Optional[float]:
        mask = self.oob_mask
        if not mask.any():
            return None
        wrong = self.oob_predictions[mask] != self._true_labels[mask]
        return float(wrong.sum() / mask.sum())

    def feature_importances(self) -> pd.Series:
        importances = np.zeros(len(self.feature_names_))
        for tree, features in zip(self.ensemble.estimators_, self.ensemble.estimators_features_):
            importances[features] += tree.feature_importances_
        importances /= max(self.tree_count, 1)
        return pd.Series(importances, index=self.feature_names_).sort_values(ascending=False)

    def summary(self) -> str:
        depths = [tree.get_depth() for tree in self.ensemble.estimators_]
        oob = self.out_of_bag_error()
        oob_text = f"{oob:.4f}" if oob is not None else "n/a"
        return (
            f"{self.tree_count} bagged trees (max_features="
            f"{self.ensemble.estimator.max_features!r}, seed {self.seed}); "
            f"mean depth {np.mean(depths):.1f}; "
            f"{len(self.feature_names_)} encoded features; OOB error {oob_text}"
        )


def out_of_bag_votes(
    ensemble: BaggingClassifier,
    X: np.ndarray
) -> np.ndarray:
    """
    Count held-out tree votes per training row and class.

    Each tree only votes for the rows missing from its bootstrap sample.

    Returns:
        Integer array of shape (n_rows, n_classes)
    """
    n_rows = X.shape[0]
    votes = np.zeros((n_rows, len(ensemble.classes_)), dtype=int)

    for tree, samples, features in zip(
        ensemble.estimators_,
        ensemble.estimators_samples_,
        ensemble.estimators_features_
    ):
        held_out = np.ones(n_rows, dtype=bool)
        held_out[samples] = False
        if not held_out.any():
            continue

        rows = np.flatnonzero(held_out)
        # trees are fit on class indices, so predictions index into classes_
        predicted = tree.predict(X[rows][:, features]).astype(int)
        np.add.at(votes, (rows, predicted), 1)

    return votes


def train_forest(
    features: pd.DataFrame,
    labels: pd.Series,
    tree_count: int = DEFAULT_TREE_COUNT,
    seed: int = FOREST_SEED,
    max_features: Union[str, int, float, None] = "sqrt",
    n_jobs: Optional[int] = None
) -> ForestModel:
    """
    Fit a random forest and compute its out-of-bag predictions.

    Args:
        features: Cleaned training features
        labels: Training labels
        tree_count: Number of trees
        seed: Random seed for bootstrap draws and split feature sampling
        max_features: Features considered at each split
        n_jobs: Parallel jobs for fitting trees

    Returns:
        Fitted ForestModel

    Raises:
        FitError: If the input is invalid or fitting fails
    """
    validate_training_input(features, labels)
    if tree_count < 1:
        raise FitError("Forest needs at least one tree", context={"tree_count": tree_count})

    start_time = datetime.now()

    logger.info("=" * 60)
    logger.info("STARTING RANDOM FOREST TRAINING")
    logger.info("=" * 60)
    logger.info(f"Training data shape: {features.shape}, trees={tree_count}, seed={seed}")

    model = ForestModel.fit(
        features,
        labels,
        tree_count=tree_count,
        seed=seed,
        max_features=max_features,
        n_jobs=n_jobs
    )

    uncovered = int((~model.oob_mask).sum())
    if uncovered:
        logger.warning(f"{uncovered} rows had no held-out tree and are excluded from the OOB error")

    training_duration = (datetime.now() - start_time).total_seconds()
    model.training_info = {
        'training_duration_seconds': training_duration,
        'n_samples': int(features.shape[0]),
        'n_features': int(features.shape[1]),
        'tree_count': tree_count,
        'oob_error': model.out_of_bag_error(),
        'rows_without_oob': uncovered
    }

    logger.info(f"Out-of-bag error: {model.out_of_bag_error()}")
    logger.info(f"RANDOM FOREST TRAINING COMPLETE in {training_duration:.2f} seconds")

    return model


def train_forest_from_config(
    features: pd.DataFrame,
    labels: pd.Series,
    config: Dict[str, Any]
) -> ForestModel:
    """Train the forest with parameters from the ``forest`` config section."""
    forest_config = config.get('forest', {})
    return train_forest(
        features,
        labels,
        tree_count=forest_config.get('tree_count', DEFAULT_TREE_COUNT),
        seed=forest_config.get('seed', FOREST_SEED),
        max_features=forest_config.get('max_features', 'sqrt'),
        n_jobs=forest_config.get('n_jobs')
    )
