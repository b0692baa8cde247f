"""
End-to-end tests for the pipeline in main.py.
"""

import sys

import pytest
import yaml

from conftest import make_training_table, make_testing_table

import main
from wle_report.exceptions import AnalysisError, DataFormatError, SchemaMismatchError

CONFIG = {
    "eda": {"histogram_columns": ["classe", "sensor_01"], "bins": 10},
    "tree": {"fold_count": 10, "seed": 1337},
    "forest": {"tree_count": 60, "seed": 1984, "n_jobs": 1},
}


@pytest.fixture
def data_files(tmp_path):
    training = make_training_table()
    testing = make_testing_table(training)
    train_path = tmp_path / "pml-training.csv"
    test_path = tmp_path / "pml-testing.csv"
    training.to_csv(train_path, index=False)
    testing.to_csv(test_path, index=False)
    return train_path, test_path, testing


class TestRunPipeline:

    def test_end_to_end(self, data_files, tmp_path):
        train_path, test_path, _ = data_files
        output_dir = tmp_path / "reports"

        results = main.run_pipeline(str(train_path), str(test_path), CONFIG, str(output_dir))

        selection = results["filtering"]["selection"]
        assert selection.n_features == 18
        assert set(selection.dropped_nzv) == {"sensor_19", "sensor_20"}
        assert results["filtering"]["testing_features"].columns.tolist() == list(selection.columns)

        tree_eval = results["tree"]["evaluation"]
        assert tree_eval.confusion.values.sum() == 100

        oob_error = results["forest"]["oob_evaluation"].error_rate
        assert 0.0 < oob_error < 1.0
        assert oob_error == pytest.approx(results["forest"]["model"].out_of_bag_error())

        report_path = results["report_path"]
        assert report_path.exists()
        text = report_path.read_text(encoding="utf-8")
        headings = [
            "# Weight Lifting Exercise Quality",
            "## Data",
            "## Exploratory Analysis",
            "## Decision Tree",
            "## Random Forest",
            "## Testing Set Predictions",
            "## Conclusion",
        ]
        positions = [text.index(h) for h in headings]
        assert positions == sorted(positions)
        assert (output_dir / "tree_confusion.png").exists()
        assert (output_dir / "forest_oob_confusion.png").exists()

    def test_stop_after_tree(self, data_files, tmp_path):
        train_path, test_path, _ = data_files
        results = main.run_pipeline(
            str(train_path), str(test_path), CONFIG, str(tmp_path / "out"), phase="tree"
        )

        assert "tree" in results
        assert "forest" not in results
        assert not (tmp_path / "out" / "report.md").exists()

    def test_unknown_phase(self, data_files, tmp_path):
        train_path, test_path, _ = data_files
        with pytest.raises(ValueError, match="Unknown phase"):
            main.run_pipeline(str(train_path), str(test_path), CONFIG, str(tmp_path), phase="serve")

    def test_schema_mismatch_before_any_prediction(self, data_files, tmp_path, monkeypatch):
        train_path, _, testing = data_files
        broken_path = tmp_path / "broken-testing.csv"
        testing.drop(columns=["sensor_07"]).to_csv(broken_path, index=False)

        def fail(*args, **kwargs):
            raise AssertionError("no model should be fitted or used")

        monkeypatch.setattr(main, "predict_testing", fail)
        monkeypatch.setattr(main, "train_tree_from_config", fail)
        monkeypatch.setattr(main, "train_forest_from_config", fail)

        with pytest.raises(SchemaMismatchError) as exc_info:
            main.run_pipeline(str(train_path), str(broken_path), CONFIG, str(tmp_path / "out"))

        assert exc_info.value.stage == "filter"
        assert exc_info.value.context["missing"] == ["sensor_07"]
        assert not (tmp_path / "out" / "report.md").exists()

    def test_missing_source_fails_at_load(self, tmp_path):
        with pytest.raises(DataFormatError) as exc_info:
            main.run_pipeline(
                str(tmp_path / "nope.csv"), str(tmp_path / "nope2.csv"), CONFIG, str(tmp_path)
            )

        assert exc_info.value.stage == "load"


class TestRunStage:

    def test_returns_result(self):
        assert main.run_stage("tree", lambda x: x + 1, 1) == 2

    def test_analysis_error_tagged(self):
        def fail():
            raise SchemaMismatchError("columns differ")

        with pytest.raises(SchemaMismatchError) as exc_info:
            main.run_stage("filter", fail)

        assert exc_info.value.stage == "filter"

    def test_existing_stage_kept(self):
        def fail():
            raise AnalysisError("bad", stage="load")

        with pytest.raises(AnalysisError) as exc_info:
            main.run_stage("filter", fail)

        assert exc_info.value.stage == "load"

    def test_library_error_wrapped(self):
        def fail():
            raise ValueError("could not convert string to float")

        with pytest.raises(AnalysisError) as exc_info:
            main.run_stage("forest", fail)

        assert exc_info.value.stage == "forest"
        assert "ValueError" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, ValueError)


class TestMain:

    @pytest.fixture
    def config_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(CONFIG))
        return path

    def test_success(self, data_files, config_file, tmp_path, monkeypatch):
        train_path, test_path, _ = data_files
        monkeypatch.setattr(sys, "argv", [
            "main.py", "--train", str(train_path), "--test", str(test_path),
            "--config", str(config_file), "--output", str(tmp_path / "out"),
        ])

        assert main.main() == 0
        assert (tmp_path / "out" / "report.md").exists()

    def test_failure_exit_code(self, data_files, config_file, tmp_path, monkeypatch, capsys):
        train_path, _, testing = data_files
        broken_path = tmp_path / "broken-testing.csv"
        testing.drop(columns=["sensor_01"]).to_csv(broken_path, index=False)
        monkeypatch.setattr(sys, "argv", [
            "main.py", "--train", str(train_path), "--test", str(broken_path),
            "--config", str(config_file), "--output", str(tmp_path / "out"),
        ])

        assert main.main() == 1
        assert "failed at stage 'filter'" in capsys.readouterr().out
        assert not (tmp_path / "out" / "report.md").exists()

    def test_text_in_numeric_testing_column(self, data_files, config_file, tmp_path, monkeypatch, capsys):
        train_path, _, testing = data_files
        broken_path = tmp_path / "text-testing.csv"
        testing["sensor_01"] = testing["sensor_01"].astype(object)
        testing.loc[0, "sensor_01"] = "oops"
        testing.to_csv(broken_path, index=False)
        monkeypatch.setattr(sys, "argv", [
            "main.py", "--train", str(train_path), "--test", str(broken_path),
            "--config", str(config_file), "--output", str(tmp_path / "out"),
        ])

        assert main.main() == 1
        out = capsys.readouterr().out
        assert "failed at stage 'filter'" in out
        assert "sensor_01" in out

    def test_library_error_exits_with_stage(self, data_files, config_file, tmp_path, monkeypatch, capsys):
        train_path, test_path, _ = data_files

        def broken_forest(*args, **kwargs):
            raise ValueError("Cannot use median strategy with non-numeric data")

        monkeypatch.setattr(main, "train_forest_from_config", broken_forest)
        monkeypatch.setattr(sys, "argv", [
            "main.py", "--train", str(train_path), "--test", str(test_path),
            "--config", str(config_file), "--output", str(tmp_path / "out"),
        ])

        assert main.main() == 1
        out = capsys.readouterr().out
        assert "failed at stage 'forest'" in out
        assert "median strategy" in out
        assert not (tmp_path / "out" / "report.md").exists()

    def test_missing_config(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["main.py", "--config", str(tmp_path / "none.yaml")])
        assert main.main() == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
