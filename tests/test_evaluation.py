"""
Test Suite for Evaluation Module
================================
"""

from fractions import Fraction

import pytest
import numpy as np
import pandas as pd

from conftest import make_training_table

from wle_report.evaluation import (
    Evaluation,
    compare_evaluations,
    confusion_table,
    evaluate_model,
    evaluate_out_of_bag,
    misclassification_rate,
    plot_confusion_matrix,
)
from wle_report.exceptions import AnalysisError
from wle_report.forest import train_forest
from wle_report.model import train_tree
from wle_report.preprocessing import filter_training


@pytest.fixture(scope="module")
def training_data():
    cleaned, selection = filter_training(make_training_table())
    return cleaned[list(selection.columns)], cleaned["classe"]


@pytest.fixture(scope="module")
def models(training_data):
    features, labels = training_data
    return {
        "tree": train_tree(features, labels),
        "forest": train_forest(features, labels, tree_count=50, n_jobs=1),
    }


class TestConfusionTable:

    def test_known_values(self):
        y_true = ["A", "A", "B", "C", "C", "C"]
        y_pred = ["A", "B", "B", "C", "A", "C"]

        table = confusion_table(y_true, y_pred, labels=["A", "B", "C"])

        expected = np.array([[1, 1, 0], [0, 1, 0], [1, 0, 2]])
        np.testing.assert_array_equal(table.values, expected)
        assert table.index.name == "true"
        assert table.columns.name == "predicted"

    def test_fixed_label_order_includes_unseen(self):
        table = confusion_table(["B", "A"], ["B", "A"], labels=["A", "B", "C", "D", "E"])

        assert table.shape == (5, 5)
        assert table.index.tolist() == ["A", "B", "C", "D", "E"]
        assert table.loc["C"].sum() == 0

    def test_default_labels_sorted_union(self):
        table = confusion_table(["B", "A"], ["C", "A"])
        assert table.index.tolist() == ["A", "B", "C"]

    def test_misclassification_rate(self):
        table = confusion_table(["A", "A", "B", "B"], ["A", "B", "B", "B"])
        assert misclassification_rate(table) == Fraction(1, 4)

    def test_empty_matrix(self):
        empty = pd.DataFrame(np.zeros((2, 2), dtype=int), index=["A", "B"], columns=["A", "B"])
        with pytest.raises(AnalysisError, match="empty confusion matrix"):
            misclassification_rate(empty)

    def test_rates_are_exact_for_every_count(self):
        truth = ["A"] * 100
        for n_correct in range(101):
            predicted = ["A"] * n_correct + ["B"] * (100 - n_correct)
            evaluation = Evaluation("decision tree", "in-sample", confusion_table(truth, predicted))

            assert evaluation.n_correct == n_correct
            assert Fraction(n_correct, 100) == 1 - evaluation.error_rate
            assert evaluation.accuracy == 1 - evaluation.error_rate

    def test_evaluation_rejects_empty_matrix(self):
        empty = pd.DataFrame(np.zeros((2, 2), dtype=int), index=["A", "B"], columns=["A", "B"])
        with pytest.raises(AnalysisError, match="empty confusion matrix"):
            Evaluation("decision tree", "in-sample", empty)


class TestEvaluateModel:

    @pytest.mark.parametrize("name", ["tree", "forest"])
    def test_diagonal_share_is_one_minus_error(self, models, training_data, name):
        features, labels = training_data
        evaluation = evaluate_model(models[name], features, labels)

        diagonal = int(np.trace(evaluation.confusion.values))
        total = int(evaluation.confusion.values.sum())
        assert Fraction(diagonal, total) == 1 - evaluation.error_rate
        assert evaluation.accuracy == Fraction(diagonal, total)

    def test_oob_diagonal_share_is_one_minus_error(self, models, training_data):
        _, labels = training_data
        evaluation = evaluate_out_of_bag(models["forest"], labels)

        diagonal = int(np.trace(evaluation.confusion.values))
        total = int(evaluation.confusion.values.sum())
        assert Fraction(diagonal, total) == 1 - evaluation.error_rate

    def test_fixed_axes(self, models, training_data):
        features, labels = training_data
        evaluation = evaluate_model(models["tree"], features, labels, classes=["A", "B", "C", "D", "E"])

        assert evaluation.confusion.index.tolist() == ["A", "B", "C", "D", "E"]
        assert evaluation.confusion.columns.tolist() == ["A", "B", "C", "D", "E"]
        assert evaluation.n_scored == 100
        assert evaluation.kind == "in-sample"

    def test_per_class_table(self, models, training_data):
        features, labels = training_data
        evaluation = evaluate_model(models["tree"], features, labels)

        assert evaluation.per_class.index.tolist() == ["A", "B", "C", "D", "E"]
        assert evaluation.per_class["support"].sum() == 100

    def test_subset_of_rows(self, models, training_data):
        features, labels = training_data
        evaluation = evaluate_model(models["forest"], features.head(30), labels.head(30))

        assert evaluation.n_scored == 30


class TestReporting:

    def test_compare(self):
        evaluations = [
            Evaluation("decision tree", "in-sample", confusion_table(["A", "B"], ["A", "A"])),
            Evaluation("random forest", "out-of-bag", confusion_table(["A", "B", "B", "B"], ["A", "A", "B", "B"])),
        ]

        table = compare_evaluations(evaluations)

        assert table["model"].tolist() == ["decision tree", "random forest"]
        assert table["accuracy"].tolist() == pytest.approx([0.5, 0.75])

    def test_plot_confusion_matrix(self, tmp_path):
        confusion = confusion_table(["A", "B", "B"], ["A", "B", "A"])
        evaluation = Evaluation("decision tree", "in-sample", confusion)

        fig = plot_confusion_matrix(evaluation, save_path=str(tmp_path / "cm.png"))

        assert (tmp_path / "cm.png").exists()
        assert "error rate=0.3333" in fig.axes[0].get_title()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
