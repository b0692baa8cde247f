#!/usr/bin/env python3
"""
Weight Lifting Exercise Quality Report - Main Pipeline
======================================================

Orchestrates the analysis from raw sensor CSVs to a Markdown report.

Phases:
    1. Load - Read training and testing tables
    2. Filter - Drop window-summary rows, metadata and near-zero-variance columns
    3. Explore - Cross-tabulation and histograms
    4. Tree - Cross-validated decision tree and its in-sample evaluation
    5. Forest - Random forest and its out-of-bag evaluation
    6. Report - Testing predictions and report assembly

Usage:
    # Run complete pipeline
    python main.py --train data/pml-training.csv --test data/pml-testing.csv

    # Stop after a phase
    python main.py --train data/pml-training.csv --test data/pml-testing.csv --phase tree

    # Run with custom config
    python main.py --train data/pml-training.csv --test data/pml-testing.csv --config config/custom.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Callable, Optional

import matplotlib.pyplot as plt

from wle_report.data_loader import load_config, load_tables, get_data_summary, print_data_summary
from wle_report.eda import generate_eda_report
from wle_report.evaluation import (
    evaluate_model,
    evaluate_out_of_bag,
    plot_confusion_matrix,
    print_evaluation_report,
)
from wle_report.exceptions import AnalysisError
from wle_report.forest import train_forest_from_config
from wle_report.model import train_tree_from_config, print_model_summary
from wle_report.prediction import predict_testing, print_prediction_results
from wle_report.preprocessing import FeatureFilter, filter_rows, print_preprocessing_summary
from wle_report import report as report_writer

logger = logging.getLogger(__name__)

PHASES = ['explore', 'tree', 'forest', 'all']


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging for the pipeline."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def run_stage(stage: str, func: Callable, *args, **kwargs):
    """
    Run one pipeline stage, tagging any error with the stage name.

    Errors that are not ``AnalysisError`` are wrapped in one so the
    pipeline always aborts with the failing stage.
    """
    logger.info(f"Stage '{stage}' started")
    try:
        result = func(*args, **kwargs)
    except AnalysisError as e:
        if e.stage is None:
            e.stage = stage
        raise
    except Exception as e:
        raise AnalysisError(
            f"{type(e).__name__}: {e}", stage=stage
        ) from e
    logger.info(f"Stage '{stage}' finished")
    return result


def run_loading(train_path: str, test_path: str, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: load both tables.

    Returns:
        Dictionary with raw training/testing tables and the training summary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: DATA LOADING")
    print("=" * 70)

    label_column = config.get('schema', {}).get('label_column', 'classe')
    training, testing = load_tables(
        train_path,
        test_path,
        label_column=label_column,
        na_values=config.get('data', {}).get('na_values')
    )
    print_data_summary(training, label_column)

    return {
        'training': training,
        'testing': testing,
        'training_summary': get_data_summary(training, label_column)
    }


def run_filtering(loaded: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 2: learn the column selection on training and apply it to testing.

    Returns:
        Dictionary with cleaned tables, features, labels, selection and testing ids
    """
    print("\n" + "=" * 70)
    print("PHASE 2: FEATURE FILTERING")
    print("=" * 70)

    schema = config.get('schema', {})
    id_column = schema.get('id_column', 'problem_id')

    feature_filter = FeatureFilter.from_config(config)
    training = feature_filter.fit_transform(loaded['training'])
    selection = feature_filter.selection

    testing_features = feature_filter.transform(loaded['testing'])

    testing_rows = loaded['testing']
    if feature_filter.indicator_column in testing_rows.columns:
        testing_rows = filter_rows(
            testing_rows, feature_filter.indicator_column, feature_filter.raw_row_value
        )
    ids = testing_rows[id_column].tolist() if id_column in testing_rows.columns else None

    print_preprocessing_summary(selection, len(training), len(testing_features))

    return {
        'training': training,
        'features': training[list(selection.columns)],
        'labels': training[selection.label_column],
        'testing_features': testing_features,
        'testing_ids': ids,
        'selection': selection
    }


def run_exploration(filtered: Dict[str, Any], config: Dict[str, Any], output_dir: str) -> Dict[str, Any]:
    """
    Execute Phase 3: exploratory tables and figures.
    """
    print("\n" + "=" * 70)
    print("PHASE 3: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    eda_report = generate_eda_report(filtered['training'], config=config, output_dir=output_dir)

    if eda_report['crosstab'] is not None:
        print(eda_report['crosstab'].to_string())
    print(f"\n✓ EDA complete. {len(eda_report['figures'])} figures saved to {output_dir}")

    return eda_report


def run_tree(filtered: Dict[str, Any], config: Dict[str, Any], output_dir: str) -> Dict[str, Any]:
    """
    Execute Phase 4: fit the decision tree and evaluate it in-sample.
    """
    print("\n" + "=" * 70)
    print("PHASE 4: DECISION TREE")
    print("=" * 70)

    classes = config.get('schema', {}).get('classes')

    model = train_tree_from_config(filtered['features'], filtered['labels'], config)
    print_model_summary(model)

    evaluation = evaluate_model(model, filtered['features'], filtered['labels'], classes)
    print_evaluation_report(evaluation)

    figure = "tree_confusion.png"
    fig = plot_confusion_matrix(evaluation, save_path=str(Path(output_dir) / figure))
    plt.close(fig)

    return {'model': model, 'evaluation': evaluation, 'figure': figure}


def run_forest(filtered: Dict[str, Any], config: Dict[str, Any], output_dir: str) -> Dict[str, Any]:
    """
    Execute Phase 5: fit the random forest, evaluate out-of-bag and in-sample.
    """
    print("\n" + "=" * 70)
    print("PHASE 5: RANDOM FOREST")
    print("=" * 70)

    classes = config.get('schema', {}).get('classes')

    model = train_forest_from_config(filtered['features'], filtered['labels'], config)
    print_model_summary(model)

    oob_evaluation = evaluate_out_of_bag(model, filtered['labels'], classes)
    print_evaluation_report(oob_evaluation)

    in_sample = evaluate_model(model, filtered['features'], filtered['labels'], classes)

    figure = "forest_oob_confusion.png"
    fig = plot_confusion_matrix(oob_evaluation, save_path=str(Path(output_dir) / figure))
    plt.close(fig)

    return {
        'model': model,
        'oob_evaluation': oob_evaluation,
        'in_sample': in_sample,
        'figures': [figure]
    }


def run_reporting(results: Dict[str, Any], config: Dict[str, Any], output_dir: str) -> Path:
    """
    Execute Phase 6: predict the testing rows and write the report.
    """
    print("\n" + "=" * 70)
    print("PHASE 6: PREDICTIONS AND REPORT")
    print("=" * 70)

    schema = config.get('schema', {})
    filtered = results['filtering']
    tree = results['tree']
    forest = results['forest']

    predictions = predict_testing(
        forest['model'],
        filtered['testing_features'],
        ids=filtered['testing_ids'],
        id_column=schema.get('id_column', 'problem_id'),
        label_column=schema.get('label_column', 'classe')
    )
    print_prediction_results(predictions)

    sections = {
        'narrative': report_writer.render_narrative(config),
        'data': report_writer.render_data_summary(
            results['loading']['training_summary'],
            results['loading']['testing'].shape,
            filtered['selection'],
            len(filtered['training']),
            len(filtered['testing_features'])
        ),
        'exploration': report_writer.render_exploration(results['eda']),
        'tree': report_writer.render_tree(tree['model'], tree['evaluation'], tree['figure']),
        'forest': report_writer.render_forest(
            forest['model'], forest['oob_evaluation'], forest['in_sample'], forest['figures']
        ),
        'predictions': report_writer.render_predictions(predictions),
        'conclusion': report_writer.render_conclusion(
            [tree['evaluation'], forest['oob_evaluation'], forest['in_sample']],
            forest['oob_evaluation'].error_rate
        ),
    }

    text = report_writer.assemble_report(sections)
    report_name = config.get('output', {}).get('report_name', 'report.md')
    return report_writer.write_report(text, str(Path(output_dir) / report_name))


def run_pipeline(
    train_path: str,
    test_path: str,
    config: Dict[str, Any],
    output_dir: Optional[str] = None,
    phase: str = 'all'
) -> Dict[str, Any]:
    """
    Execute the pipeline up to and including ``phase``.

    Args:
        train_path: Path to the training CSV
        test_path: Path to the testing CSV
        config: Configuration dictionary
        output_dir: Directory for figures and the report
        phase: Last phase to run ('explore', 'tree', 'forest' or 'all')

    Returns:
        Dictionary containing all phase results
    """
    if phase not in PHASES:
        raise ValueError(f"Unknown phase: {phase}. Choose from: {', '.join(PHASES)}")

    output_dir = output_dir or config.get('output', {}).get('report_dir', 'reports/')
    Path(output_dir).mkdir(parents=True, exist_ok=True)

    results: Dict[str, Any] = {'config': config}
    results['loading'] = run_stage('load', run_loading, train_path, test_path, config)
    results['filtering'] = run_stage('filter', run_filtering, results['loading'], config)
    results['eda'] = run_stage('explore', run_exploration, results['filtering'], config, output_dir)
    if phase == 'explore':
        return results

    results['tree'] = run_stage('tree', run_tree, results['filtering'], config, output_dir)
    if phase == 'tree':
        return results

    results['forest'] = run_stage('forest', run_forest, results['filtering'], config, output_dir)
    if phase == 'forest':
        return results

    results['report_path'] = run_stage('report', run_reporting, results, config, output_dir)
    return results


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Weight lifting exercise quality analysis report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --train data/pml-training.csv --test data/pml-testing.csv
  python main.py --train data/pml-training.csv --test data/pml-testing.csv --phase explore
  python main.py --train data/pml-training.csv --test data/pml-testing.csv --output out/
        """
    )

    parser.add_argument('--train', '-t', type=str, default=None,
                        help='Path to the training CSV (default: data.training_path from config)')
    parser.add_argument('--test', '-s', type=str, default=None,
                        help='Path to the testing CSV (default: data.testing_path from config)')
    parser.add_argument('--config', '-c', type=str, default='config/config.yaml',
                        help='Path to configuration file (default: config/config.yaml)')
    parser.add_argument('--output', '-o', type=str, default=None,
                        help='Directory for figures and the report (default: output.report_dir)')
    parser.add_argument('--phase', '-p', type=str, choices=PHASES, default='all',
                        help='Last phase to run (default: all)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    config = load_config(args.config)
    log_config = config.get('logging', {})
    setup_logging('DEBUG' if args.verbose else log_config.get('level', 'INFO'), log_config.get('file'))

    data_config = config.get('data', {})
    train_path = args.train or data_config.get('training_path')
    test_path = args.test or data_config.get('testing_path')
    if not train_path or not test_path:
        print("Error: training and testing paths are required (--train/--test or config data section)")
        return 1

    started = datetime.now()
    print("\n" + "=" * 70)
    print("WEIGHT LIFTING EXERCISE QUALITY PIPELINE")
    print(f"Started at: {started.strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    try:
        results = run_pipeline(train_path, test_path, config, args.output, args.phase)
    except AnalysisError as e:
        logger.error(f"Pipeline failed at stage '{e.stage}': {e.message}")
        print(f"\n❌ Pipeline failed at stage '{e.stage}': {e}")
        return 1

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    if 'tree' in results:
        print(f"  • Decision tree in-sample error: {float(results['tree']['evaluation'].error_rate):.4f}")
    if 'forest' in results:
        print(f"  • Random forest out-of-bag error: {float(results['forest']['oob_evaluation'].error_rate):.4f}")
    if 'report_path' in results:
        print(f"  • Report: {results['report_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
