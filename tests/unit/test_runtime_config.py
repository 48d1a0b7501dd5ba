"""
tests/unit/test_runtime_config.py

Unit tests for runtime settings, config files and logger setup.
"""

import json
import logging

import pytest

from hotswap import ConfigError, RuntimeConfig, configure_logger, load_config
from hotswap.config import RobustFileHandler


@pytest.fixture
def clean_logger():
    """Named logger whose handlers are removed after the test."""
    logger = logging.getLogger("hotswap.test_config")
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


# =================================================================
# RuntimeConfig
# =================================================================


@pytest.mark.unit
class TestRuntimeConfig:
    """RuntimeConfig"""

    def test_defaults(self):
        config = RuntimeConfig()

        assert config.fatal_grace_period == 5.0
        assert config.hot_reload is False
        assert config.hot_reload_delay == 0.5
        assert config.level == logging.INFO
        assert config.log_file is None

    def test_level_is_case_insensitive(self):
        assert RuntimeConfig(log_level="debug").level == logging.DEBUG

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"fatal_grace_period": -1},
            {"hot_reload_delay": -0.1},
            {"log_level": "LOUD"},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigError):
            RuntimeConfig(**kwargs)

    def test_from_dict_ignores_unknown_keys(self):
        config = RuntimeConfig.from_dict(
            {"fatal_grace_period": 2, "hot_reload": True, "nats": {"url": "x"}}
        )

        assert config.fatal_grace_period == 2
        assert config.hot_reload is True

    def test_from_dict_none(self):
        assert RuntimeConfig.from_dict(None) == RuntimeConfig()


# =================================================================
# load_config
# =================================================================


def test_load_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"fatal_grace_period": 1.5, "log_level": "WARNING"}))

    config = load_config(path)

    assert config.fatal_grace_period == 1.5
    assert config.level == logging.WARNING


def test_load_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("hot_reload: true\nhot_reload_delay: 1.0\n")

    config = load_config(str(path))

    assert config.hot_reload is True
    assert config.hot_reload_delay == 1.0


def test_load_empty_yaml(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("")

    assert load_config(path) == RuntimeConfig()


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="Cannot read"):
        load_config(tmp_path / "missing.json")


@pytest.mark.parametrize(
    "name, text",
    [
        ("config.json", "{not json"),
        ("config.yaml", "key: [unclosed"),
    ],
)
def test_load_malformed(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text)

    with pytest.raises(ConfigError, match="Malformed"):
        load_config(path)


def test_load_non_mapping(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2]")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(path)


def test_load_invalid_value(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"fatal_grace_period": -5}))

    with pytest.raises(ConfigError):
        load_config(path)


# =================================================================
# Logging
# =================================================================


def test_configure_logger_to_file(tmp_path, clean_logger):
    log_file = tmp_path / "hotswap.log"

    logger = configure_logger(
        clean_logger.name, str(log_file), "%(levelname)s %(message)s", logging.DEBUG
    )
    logger.debug("written to file")
    for handler in logger.handlers:
        handler.flush()

    assert logger is clean_logger
    assert isinstance(logger.handlers[0], RobustFileHandler)
    assert log_file.read_text(encoding="utf-8").strip() == "DEBUG written to file"


def test_configure_logger_to_stream(clean_logger):
    logger = configure_logger(clean_logger, log_level=logging.WARNING)

    assert logger.level == logging.WARNING
    assert isinstance(logger.handlers[0], logging.StreamHandler)
