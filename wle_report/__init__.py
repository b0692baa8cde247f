"""
Weight Lifting Exercise Quality Report
======================================

A batch analysis pipeline that classifies how well barbell lifts were
performed from on-body sensor measurements.

Modules:
    - data_loader: YAML config and CSV ingestion (DataLoader)
    - preprocessing: Row filter, metadata and near-zero-variance drop (FeatureFilter)
    - eda: Cross-tabulation and histograms (Explorer)
    - model: Cross-validated decision tree (TreeTrainer)
    - forest: Bagged random-feature trees with out-of-bag voting (ForestTrainer)
    - evaluation: Confusion matrices and error rates (Evaluator)
    - prediction: Class predictions for the testing table
    - report: Markdown report assembly (ReportAssembler)
    - exceptions: Pipeline error hierarchy
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"
