"""
Tests for consumer configuration.
"""

import pytest

from stream_checkpoint.config import ConsumerConfig
from stream_checkpoint.exceptions import ConfigurationError
from stream_checkpoint.policy import BatchPolicy, BlockAdvancePolicy


class TestValidation:
    """Tests for ConsumerConfig.validate()."""

    def test_defaults_are_valid(self):
        config = ConsumerConfig(stream_key="karma", query={"accounts": "therealkarma"}).validate()

        assert config.commit_policy == "every_event"
        assert config.cursor_backend == "file"
        assert config.skip_replayed is True

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"stream_key": "  "}, "stream_key"),
            ({"query": {}}, "query"),
            ({"commit_policy": "sometimes"}, "commit_policy"),
            ({"batch_size": 0}, "batch_size"),
            ({"cursor_backend": "redis"}, "cursor_backend"),
            ({"shutdown_timeout": -1}, "shutdown_timeout"),
        ],
    )
    def test_invalid_settings(self, overrides, field):
        settings = {"stream_key": "karma", "query": {"q": 1}, **overrides}
        with pytest.raises(ConfigurationError) as exc_info:
            ConsumerConfig(**settings).validate()
        assert exc_info.value.field == field

    def test_build_policy(self):
        config = ConsumerConfig(stream_key="k", query={"q": 1}, commit_policy="batch", batch_size=25)
        policy = config.build_policy()

        assert isinstance(policy, BatchPolicy)
        assert policy.max_pending == 25

        config.commit_policy = "on_block_advance"
        assert isinstance(config.build_policy(), BlockAdvancePolicy)


class TestLoading:
    """Tests for dict, environment and YAML loading."""

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ConfigurationError, match="unknown settings"):
            ConsumerConfig.from_dict({"stream_key": "k", "query": {"q": 1}, "retries": 3})

    def test_from_dict_requires_stream_key(self):
        with pytest.raises(ConfigurationError):
            ConsumerConfig.from_dict({"query": {"q": 1}})

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STREAM_CHECKPOINT_STREAM_KEY", "karma")
        monkeypatch.setenv("STREAM_CHECKPOINT_QUERY", '{"accounts": "therealkarma"}')
        monkeypatch.setenv("STREAM_CHECKPOINT_COMMIT_POLICY", "progress_only")
        monkeypatch.setenv("STREAM_CHECKPOINT_SKIP_REPLAYED", "false")
        monkeypatch.setenv("STREAM_CHECKPOINT_SHUTDOWN_TIMEOUT", "2.5")

        config = ConsumerConfig.from_env()

        assert config.stream_key == "karma"
        assert config.query == {"accounts": "therealkarma"}
        assert config.commit_policy == "progress_only"
        assert config.skip_replayed is False
        assert config.shutdown_timeout == 2.5

    def test_from_env_requires_stream_key(self, monkeypatch):
        monkeypatch.delenv("STREAM_CHECKPOINT_STREAM_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            ConsumerConfig.from_env()

    def test_from_env_rejects_bad_query(self, monkeypatch):
        monkeypatch.setenv("STREAM_CHECKPOINT_STREAM_KEY", "karma")
        monkeypatch.setenv("STREAM_CHECKPOINT_QUERY", "{accounts")
        with pytest.raises(ConfigurationError, match="invalid JSON"):
            ConsumerConfig.from_env()

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "consumer.yaml"
        path.write_text(
            """
stream_checkpoint:
  stream_key: karma-transfers
  query:
    accounts: therealkarma
    action_names: transfer
  commit_policy: on_block_advance
  cursor_backend: sqlite
  cursor_path: cursors.db
"""
        )

        config = ConsumerConfig.from_yaml(path)

        assert config.stream_key == "karma-transfers"
        assert config.query["action_names"] == "transfer"
        assert config.commit_policy == "on_block_advance"
        assert config.cursor_backend == "sqlite"

    def test_from_yaml_missing_section(self, tmp_path):
        path = tmp_path / "consumer.yaml"
        path.write_text("other: {}\n")

        with pytest.raises(ConfigurationError):
            ConsumerConfig.from_yaml(path)

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConsumerConfig.from_yaml(tmp_path / "absent.yaml")
