"""Tests for topicstream.metrics and topicstream.model."""

import json

import numpy as np
import pandas as pd
import pytest

from topicstream.metrics import IterationMetrics, TrainingReport, WindowSummary
from topicstream.model import LDAModel
from topicstream.optimizers.base import Score


@pytest.fixture
def report():
    windows = [
        WindowSummary(
            index=0, begin=0, end=10, num_documents=10,
            iterations=[
                IterationMetrics(0, 0.5, Score(7.5, 0.25)),
                IterationMetrics(1, 0.4, Score(7.1, 0.24)),
            ],
        ),
        WindowSummary(
            index=1, begin=10, end=20, num_documents=10,
            iterations=[IterationMetrics(0, 0.3, Score(6.9, 0.2))],
        ),
    ]
    return TrainingReport(monitor_path="ps://lda-1234abcd", optimizer="OnlineLDAOptimizer(k=3, vocab=20)",
                          windows=windows)


# ── TrainingReport ────────────────────────────────────────────────────


class TestTrainingReport:
    def test_total_iterations(self, report):
        assert report.total_iterations == 3

    def test_to_dict(self, report):
        data = report.to_dict()
        assert data["monitor_path"] == "ps://lda-1234abcd"
        assert data["windows_processed"] == 2
        assert data["total_iterations"] == 3
        assert data["windows"][0]["scores"] == [[7.5, 0.25], [7.1, 0.24]]
        assert data["windows"][1]["iteration_times"] == [0.3]

    def test_to_frame(self, report):
        df = report.to_frame()
        assert list(df.columns) == [
            "window", "iteration", "num_documents",
            "elapsed_seconds", "document_score", "topic_score",
        ]
        assert len(df) == 3
        assert df["document_score"].tolist() == [7.5, 7.1, 6.9]

    def test_empty_frame_keeps_columns(self):
        df = TrainingReport(monitor_path="ps://x", optimizer="x").to_frame()
        assert df.empty
        assert "topic_score" in df.columns

    def test_export_json(self, report, tmp_path):
        out = tmp_path / "reports" / "run.json"
        report.export_json(out)
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["optimizer"] == "OnlineLDAOptimizer(k=3, vocab=20)"
        assert len(data["windows"]) == 2

    def test_export_csv(self, report, tmp_path):
        out = tmp_path / "run.csv"
        report.export_csv(out)
        df = pd.read_csv(out)
        assert df["window"].tolist() == [0, 0, 1]


class TestScore:
    def test_str(self):
        assert str(Score(1.5, 0.25)) == "(1.5, 0.25)"


# ── LDAModel ──────────────────────────────────────────────────────────


class TestLDAModel:
    @pytest.fixture
    def model(self):
        return LDAModel(topic_term=np.array([[1.0, 3.0, 0.0], [2.0, 2.0, 4.0]]), alpha=0.5, eta=0.5)

    def test_shape(self, model):
        assert model.num_topics == 2
        assert model.vocab_size == 3

    def test_topics_normalized(self, model):
        np.testing.assert_allclose(model.topics().sum(axis=1), 1.0)

    def test_show_topic_orders_terms(self, model):
        assert model.show_topic(0, topn=2) == [(1, 0.75), (0, 0.25)]

    def test_show_topic_with_words(self, model):
        words = {0: "alpha", 1: "beta", 2: "gamma"}
        assert model.show_topic(1, topn=1, id2word=words) == [("gamma", 0.5)]
