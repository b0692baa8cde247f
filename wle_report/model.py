"""
Model Training Module
=====================

Single cross-validated decision tree and the capability interface shared
with the forest model.

Features:
    - Column encoding (median imputation, one-hot categorical subjects)
    - Cost-complexity pruning chosen by k-fold cross-validation
    - Text dump of the fitted splits and feature importances
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, Optional, List

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.impute import SimpleImputer
from sklearn.model_selection import GridSearchCV, StratifiedKFold
from sklearn.preprocessing import OneHotEncoder
from sklearn.tree import DecisionTreeClassifier, export_text

from .exceptions import FitError

logger = logging.getLogger(__name__)

TREE_SEED = 1337
DEFAULT_FOLD_COUNT = 10


class FittedModel(ABC):
    """
    Capability interface for fitted classifiers.

    Trainers and pipeline code only rely on ``fit``, ``predict`` and
    ``out_of_bag_error`` so the backing library can change without
    touching them.
    """

    name: str = "model"

    def __init__(self, encoder: ColumnTransformer, classes: np.ndarray):
        self.encoder = encoder
        self.classes_ = classes
        self.feature_names_: List[str] = list(encoder.get_feature_names_out())
        self.training_info: Dict[str, Any] = {}

    @classmethod
    @abstractmethod
    def fit(cls, features: pd.DataFrame, labels: pd.Series, **params) -> 'FittedModel':
        """Fit a new model on cleaned features and labels."""

    @property
    @abstractmethod
    def estimator(self):
        """Underlying fitted library estimator."""

    def predict(self, features: pd.DataFrame) -> np.ndarray:
        """Predict labels for a feature table with the training columns."""
        return self.estimator.predict(self.encoder.transform(features))

    def out_of_bag_error(self) -> Optional[float]:
        """Self-reported generalization error, if the model has one."""
        return None

    @abstractmethod
    def feature_importances(self) -> pd.Series:
        """Importance per encoded feature, sorted descending."""

    @abstractmethod
    def summary(self) -> str:
        """Human-readable model description for the report."""


def build_encoder(features: pd.DataFrame) -> ColumnTransformer:
    """
    Create the column encoder for a feature table.

    Numeric columns are median-imputed; everything else (the subject name)
    is one-hot encoded, ignoring categories unseen during fitting.
    """
    numeric = features.select_dtypes(include=[np.number]).columns.tolist()
    categorical = [col for col in features.columns if col not in numeric]

    transformers = []
    if numeric:
        transformers.append(('num', SimpleImputer(strategy='median'), numeric))
    if categorical:
        transformers.append((
            'cat',
            OneHotEncoder(handle_unknown='ignore', sparse_output=False),
            categorical
        ))

    return ColumnTransformer(transformers, verbose_feature_names_out=False)


def validate_training_input(features: pd.DataFrame, labels: pd.Series) -> None:
    """
    Reject inputs no classifier can be fit on.

    Raises:
        FitError: On empty features/rows, length mismatch or a single class
    """
    if features.shape[1] == 0:
        raise FitError("Empty feature set: no columns left to fit on")
    if features.shape[0] == 0:
        raise FitError("No training rows to fit on")
    if len(features) != len(labels):
        raise FitError(
            "Features and labels differ in length",
            context={"n_features_rows": len(features), "n_labels": len(labels)}
        )
    if pd.Series(labels).nunique() < 2:
        raise FitError("At least two label classes are required to fit a classifier")


class DecisionTreeModel(FittedModel):
    """Single pruned classification tree."""

    name = "decision tree"

    def __init__(
        self,
        encoder: ColumnTransformer,
        search: GridSearchCV,
        fold_count: int,
        seed: int
    ):
        super().__init__(encoder, search.best_estimator_.classes_)
        self.search = search
        self.fold_count = fold_count
        self.seed = seed

    @classmethod
    def fit(
        cls,
        features: pd.DataFrame,
        labels: pd.Series,
        fold_count: int = DEFAULT_FOLD_COUNT,
        seed: int = TREE_SEED,
        min_samples_split: int = 20,
        max_candidates: int = 20,
        n_jobs: Optional[int] = None
    ) -> 'DecisionTreeModel':
        """Encode the features and grid-search ``ccp_alpha`` with stratified CV."""
        y = np.asarray(labels)
        encoder = build_encoder(features)

        try:
            X = encoder.fit_transform(features)
            alphas = candidate_alphas(X, y, seed, min_samples_split, max_candidates)
            logger.info(f"Cross-validating {len(alphas)} ccp_alpha candidates")

            search = GridSearchCV(
                DecisionTreeClassifier(random_state=seed, min_samples_split=min_samples_split),
                param_grid={'ccp_alpha': alphas},
                cv=StratifiedKFold(n_splits=fold_count, shuffle=True, random_state=seed),
                scoring='accuracy',
                refit=True,
                n_jobs=n_jobs,
                error_score='raise'
            )
            search.fit(X, y)
        except ValueError as e:
            raise FitError(f"Decision tree fitting failed: {e}") from e

        return cls(encoder, search, fold_count, seed)

    @property
    def estimator(self) -> DecisionTreeClassifier:
        return self.search.best_estimator_

    @property
    def ccp_alpha(self) -> float:
        return float(self.search.best_params_['ccp_alpha'])

    @property
    def cv_accuracy(self) -> float:
        return float(self.search.best_score_)

    def cv_results(self) -> pd.DataFrame:
        """Mean/std CV accuracy per candidate complexity parameter."""
        results = pd.DataFrame(self.search.cv_results_)
        table = results[['param_ccp_alpha', 'mean_test_score', 'std_test_score', 'rank_test_score']]
        return table.rename(columns={'param_ccp_alpha': 'ccp_alpha'}).reset_index(drop=True)

    def feature_importances(self) -> pd.Series:
        importances = pd.Series(self.estimator.feature_importances_, index=self.feature_names_)
        return importances.sort_values(ascending=False)

    def export_splits(self, max_depth: int = 10) -> str:
        """Text rendering of the fitted tree's splits."""
        return export_text(
            self.estimator,
            feature_names=self.feature_names_,
            max_depth=max_depth
        )

    def summary(self) -> str:
        tree = self.estimator
        return (
            f"DecisionTreeClassifier(ccp_alpha={self.ccp_alpha:.6g}) chosen by "
            f"{self.fold_count}-fold CV (accuracy {self.cv_accuracy:.4f}); "
            f"depth {tree.get_depth()}, {tree.get_n_leaves()} leaves, "
            f"{len(self.feature_names_)} encoded features"
        )


def candidate_alphas(
    X: np.ndarray,
    y: np.ndarray,
    seed: int,
    min_samples_split: int,
    max_candidates: int = 20
) -> List[float]:
    """
    Complexity parameters along the cost-complexity pruning path of a full tree.

    The path is thinned to at most ``max_candidates`` evenly spaced values;
    the alpha that prunes back to the root is left out.
    """
    path = DecisionTreeClassifier(
        random_state=seed,
        min_samples_split=min_samples_split
    ).cost_complexity_pruning_path(X, y)

    alphas = np.unique(np.clip(path.ccp_alphas[:-1], 0.0, None))
    if len(alphas) == 0:
        alphas = np.array([0.0])
    if len(alphas) > max_candidates:
        positions = np.linspace(0, len(alphas) - 1, max_candidates).round().astype(int)
        alphas = alphas[np.unique(positions)]

    return [float(a) for a in alphas]


def train_tree(
    features: pd.DataFrame,
    labels: pd.Series,
    fold_count: int = DEFAULT_FOLD_COUNT,
    seed: int = TREE_SEED,
    min_samples_split: int = 20,
    max_candidates: int = 20,
    n_jobs: Optional[int] = None
) -> DecisionTreeModel:
    """
    Fit one decision tree whose pruning is chosen by cross-validation.

    Cross-validation only picks ``ccp_alpha``; the returned tree is refit
    on the full training table.

    Args:
        features: Cleaned training features
        labels: Training labels
        fold_count: Number of stratified CV folds
        seed: Random seed for the folds and the tree
        min_samples_split: Minimum rows needed to split a node
        max_candidates: Maximum number of alphas to cross-validate
        n_jobs: Parallel CV jobs

    Returns:
        Fitted DecisionTreeModel

    Raises:
        FitError: If the input is invalid or fitting fails
    """
    validate_training_input(features, labels)
    start_time = datetime.now()

    logger.info("=" * 60)
    logger.info("STARTING DECISION TREE TRAINING")
    logger.info("=" * 60)
    logger.info(f"Training data shape: {features.shape}, folds={fold_count}, seed={seed}")

    model = DecisionTreeModel.fit(
        features,
        labels,
        fold_count=fold_count,
        seed=seed,
        min_samples_split=min_samples_split,
        max_candidates=max_candidates,
        n_jobs=n_jobs
    )

    training_duration = (datetime.now() - start_time).total_seconds()
    model.training_info = {
        'training_duration_seconds': training_duration,
        'n_samples': int(features.shape[0]),
        'n_features': int(features.shape[1]),
        'ccp_alpha': model.ccp_alpha,
        'cv_accuracy': model.cv_accuracy
    }

    logger.info(f"Chosen ccp_alpha={model.ccp_alpha:.6g} (CV accuracy {model.cv_accuracy:.4f})")
    logger.info(f"DECISION TREE TRAINING COMPLETE in {training_duration:.2f} seconds")

    return model


def train_tree_from_config(
    features: pd.DataFrame,
    labels: pd.Series,
    config: Dict[str, Any]
) -> DecisionTreeModel:
    """Train the decision tree with parameters from the ``tree`` config section."""
    tree_config = config.get('tree', {})
    return train_tree(
        features,
        labels,
        fold_count=tree_config.get('fold_count', DEFAULT_FOLD_COUNT),
        seed=tree_config.get('seed', TREE_SEED),
        min_samples_split=tree_config.get('min_samples_split', 20),
        max_candidates=tree_config.get('max_candidates', 20),
        n_jobs=tree_config.get('n_jobs')
    )


def print_model_summary(model: FittedModel, top_n: int = 10) -> None:
    """
    Print a summary of a fitted model.

    Args:
        model: Fitted model instance
        top_n: Number of most important features to list
    """
    print("\n" + "=" * 50)
    print(f"MODEL SUMMARY: {model.name.upper()}")
    print("=" * 50)
    print(model.summary())

    oob = model.out_of_bag_error()
    if oob is not None:
        print(f"Out-of-bag error: {oob:.4f}")

    print(f"\nTop {top_n} features:")
    for feature, importance in model.feature_importances().head(top_n).items():
        print(f"  - {feature}: {importance:.4f}")

    if model.training_info:
        print(f"\nTraining duration: {model.training_info.get('training_duration_seconds', 0.0):.2f}s")

    print("=" * 50 + "\n")
