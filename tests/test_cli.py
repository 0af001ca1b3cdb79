"""Tests for topicstream.cli argument handling."""

import json
from unittest.mock import patch

import pytest

from topicstream.cli import build_parser, config_from_args, main
from topicstream.config import ModelKind, OptimizerKind
from topicstream.corpus import save_corpus


class TestParser:
    def test_camel_case_flags(self):
        args = build_parser().parse_args(
            ["--psCount", "3", "--corpusSize", "16001", "--windowSize", "8000", "--K", "4", "c.mm"]
        )
        config = config_from_args(args)
        assert (config.ps_count, config.corpus_size, config.window_size, config.k) == (3, 16001, 8000, 4)

    def test_kebab_case_aliases(self):
        args = build_parser().parse_args(["--max-iterations", "7", "--optimizer", "gibbs", "c.mm"])
        config = config_from_args(args)
        assert config.max_iterations == 7
        assert config.optimizer is OptimizerKind.GIBBS

    def test_default_topics_follow_model(self):
        parser = build_parser()
        assert config_from_args(parser.parse_args(["c.mm"])).k == 10
        hdp = config_from_args(parser.parse_args(["--model", "hdp", "c.mm"]))
        assert hdp.model is ModelKind.HDP
        assert hdp.k == 15

    def test_multiple_inputs(self):
        args = build_parser().parse_args(["a.mm", "b.mm"])
        assert args.input == ["a.mm", "b.mm"]


class TestMain:
    def test_unknown_optimizer_exits_with_one(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--optimizer", "foo", "c.mm"])
        assert exc_info.value.code == 1
        assert "Only online, gibbs are supported but got foo." in capsys.readouterr().err

    def test_missing_input_exits_with_one(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1
        assert "usage" in capsys.readouterr().err

    def test_invalid_topics_rejected_before_loading(self):
        with patch("topicstream.runner.run") as mock_run:
            with pytest.raises(SystemExit) as exc_info:
                main(["--K", "0", "missing.mm"])
        assert exc_info.value.code == 1
        mock_run.assert_not_called()

    def test_full_run_writes_report(self, tmp_path, documents):
        corpus = tmp_path / "corpus.mm"
        save_corpus(corpus, documents[:21], vocab_size=20)
        report = tmp_path / "report.json"
        code = main([
            "--K", "3", "--corpusSize", "21", "--windowSize", "10",
            "--maxIterations", "1", "--report", str(report), str(corpus),
        ])
        assert code == 0
        assert json.loads(report.read_text(encoding="utf-8"))["total_iterations"] == 2
