"""Tests for topicstream.config: TrainingConfig dataclass and variants."""

import dataclasses
from pathlib import Path

import pytest

from topicstream.config import ConfigurationError, ModelKind, OptimizerKind, TrainingConfig

# ── Defaults ──────────────────────────────────────────────────────────


class TestTrainingConfigDefaults:
    def test_topic_count(self):
        assert TrainingConfig().k == 10

    def test_window_size(self):
        assert TrainingConfig().window_size == 8000

    def test_optimizer_is_online(self):
        assert TrainingConfig().optimizer is OptimizerKind.ONLINE

    def test_model_is_lda(self):
        assert TrainingConfig().model is ModelKind.LDA

    def test_vocab_size_unset(self):
        assert TrainingConfig().vocab_size is None

    def test_partitions_and_servers(self):
        cfg = TrainingConfig()
        assert cfg.partition_count == 2
        assert cfg.ps_count == 2

    def test_checkpoint_interval(self):
        assert TrainingConfig().checkpoint_interval == 10


# ── Overrides & immutability ──────────────────────────────────────────


class TestTrainingConfigOverrides:
    def test_override_window_size(self):
        cfg = TrainingConfig(window_size=100)
        assert cfg.window_size == 100

    def test_is_frozen(self):
        cfg = TrainingConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.k = 5

    def test_with_vocab_size_returns_copy(self):
        cfg = TrainingConfig()
        updated = cfg.with_vocab_size(500)
        assert updated.vocab_size == 500
        assert cfg.vocab_size is None

    def test_checkpoint_dir_becomes_path(self):
        cfg = TrainingConfig(checkpoint_dir="ckpt")
        assert cfg.checkpoint_dir == Path("ckpt")

    def test_string_variants_are_parsed(self):
        cfg = TrainingConfig(model="HDP", optimizer="Online")
        assert cfg.model is ModelKind.HDP
        assert cfg.optimizer is OptimizerKind.ONLINE


# ── Concentrations ────────────────────────────────────────────────────


class TestConcentrations:
    def test_auto_alpha_is_inverse_k(self):
        cfg = TrainingConfig(k=4)
        assert cfg.alpha == pytest.approx(0.25)
        assert cfg.eta == pytest.approx(0.25)

    def test_explicit_values_kept(self):
        cfg = TrainingConfig(doc_concentration=0.01, topic_concentration=0.2)
        assert cfg.alpha == pytest.approx(0.01)
        assert cfg.eta == pytest.approx(0.2)

    def test_negative_other_than_auto_rejected(self):
        with pytest.raises(ConfigurationError, match="doc_concentration"):
            TrainingConfig(doc_concentration=-0.5)

    def test_num_topics_follows_model(self):
        assert TrainingConfig(k=7).num_topics == 7
        assert TrainingConfig(model="hdp", k=7, truncation=40).num_topics == 40


# ── Validation ────────────────────────────────────────────────────────


class TestValidation:
    def test_zero_topics_rejected(self):
        with pytest.raises(ConfigurationError, match="must be > 0, but was set to 0"):
            TrainingConfig(k=0)

    def test_unknown_optimizer_names_value(self):
        with pytest.raises(ConfigurationError, match="foo"):
            TrainingConfig(optimizer="foo")

    def test_unknown_model_names_value(self):
        with pytest.raises(ConfigurationError, match="lsi"):
            TrainingConfig(model="lsi")

    def test_hdp_requires_online(self):
        with pytest.raises(ConfigurationError, match="online"):
            TrainingConfig(model="hdp", optimizer="gibbs")

    def test_hdp_truncation_must_exceed_one(self):
        with pytest.raises(ConfigurationError, match="truncation"):
            TrainingConfig(model="hdp", truncation=1)

    @pytest.mark.parametrize(
        "field_name",
        ["window_size", "partition_count", "ps_count", "max_iterations", "max_inner_iterations"],
    )
    def test_non_positive_counts_rejected(self, field_name):
        with pytest.raises(ConfigurationError, match=field_name):
            TrainingConfig(**{field_name: 0})

    def test_negative_corpus_size_rejected(self):
        with pytest.raises(ConfigurationError, match="corpus_size"):
            TrainingConfig(corpus_size=-1)

    def test_zero_vocab_rejected(self):
        with pytest.raises(ConfigurationError, match="vocab_size"):
            TrainingConfig(vocab_size=0)

    def test_kappa_range(self):
        with pytest.raises(ConfigurationError, match="kappa"):
            TrainingConfig(kappa=0.4)

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)


class TestOptimizerKindParse:
    def test_case_insensitive(self):
        assert OptimizerKind.parse("GIBBS") is OptimizerKind.GIBBS

    def test_passes_through_enum(self):
        assert OptimizerKind.parse(OptimizerKind.ONLINE) is OptimizerKind.ONLINE

    def test_error_message(self):
        with pytest.raises(ConfigurationError) as exc_info:
            OptimizerKind.parse("foo")
        assert str(exc_info.value) == "Only online, gibbs are supported but got foo."
