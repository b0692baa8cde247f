"""
Shared fixtures: synthetic sensor tables shaped like the weight lifting data.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

CLASSES = ["A", "B", "C", "D", "E"]
SUBJECTS = ["adelmo", "carlitos", "charles", "eurico", "jeremy", "pedro"]


def make_training_table(
    n_rows: int = 100,
    n_features: int = 20,
    n_constant: int = 2,
    n_window_rows: int = 0,
    with_subject: bool = False,
    seed: int = 42
) -> pd.DataFrame:
    """
    Build a raw training table with metadata columns, sensor features and labels.

    The last ``n_constant`` features are constant; the first four carry a
    weak class signal and the rest are noise.
    """
    rng = np.random.RandomState(seed)
    labels = np.repeat(CLASSES, n_rows // len(CLASSES))
    rng.shuffle(labels)
    class_index = np.array([CLASSES.index(label) for label in labels])

    data = {
        "X": np.arange(1, n_rows + 1),
        "raw_timestamp_part_1": 1322489729 + np.arange(n_rows),
        "raw_timestamp_part_2": rng.randint(0, 999999, n_rows),
        "cvtd_timestamp": ["28/11/2011 14:15"] * n_rows,
        "new_window": ["no"] * n_rows,
        "num_window": rng.randint(1, 864, n_rows),
    }
    if with_subject:
        data["user_name"] = [SUBJECTS[i % len(SUBJECTS)] for i in range(n_rows)]

    n_variable = n_features - n_constant
    for i in range(n_variable):
        noise = rng.randn(n_rows)
        data[f"sensor_{i + 1:02d}"] = noise + (0.8 * class_index if i < 4 else 0.0)
    for i in range(n_constant):
        data[f"sensor_{n_variable + i + 1:02d}"] = np.full(n_rows, 1.5 * (i + 1))

    data["classe"] = labels
    df = pd.DataFrame(data)

    if n_window_rows:
        window = df.sample(n=n_window_rows, random_state=seed).copy()
        window["new_window"] = "yes"
        window["X"] = np.arange(n_rows + 1, n_rows + n_window_rows + 1)
        df = pd.concat([df, window], ignore_index=True)

    return df


def make_testing_table(training: pd.DataFrame, n_rows: int = 20, seed: int = 7) -> pd.DataFrame:
    """Unlabeled table with the training columns and a ``problem_id`` column."""
    testing = training.drop(columns=["classe"]).sample(n=n_rows, random_state=seed)
    testing = testing.reset_index(drop=True)
    testing["new_window"] = "no"
    testing["problem_id"] = np.arange(1, n_rows + 1)
    return testing


@pytest.fixture
def training_table():
    """100 rows, 5 balanced classes, 20 features of which 2 are constant."""
    return make_training_table()


@pytest.fixture
def testing_table(training_table):
    return make_testing_table(training_table)


@pytest.fixture
def subject_training_table():
    """Training table that also carries the subject column."""
    return make_training_table(with_subject=True, n_window_rows=5)
