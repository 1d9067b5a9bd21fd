"""Tests for configuration, logging setup and the error hierarchy."""

import logging

import pytest

from h2gnn import (
    Config,
    ConfigurationError,
    DimensionMismatch,
    DivergedTraining,
    GeometryMode,
    H2GNNError,
    InvalidCurvature,
    InvalidDimension,
    LoggingConfig,
    LogLevel,
    NullInput,
    OutOfBall,
    load_config,
)


class TestConfig:

    def test_defaults(self):
        config = Config()
        assert config.curvature == -1.0
        assert config.embedding_dim == 8
        assert config.num_layers == 3
        assert config.learning_rate == 0.01
        assert config.max_epochs == 100
        assert config.geometry_mode is GeometryMode.HYPERBOLIC

    @pytest.mark.parametrize('curvature', [0.0, 0.5, 1.0])
    def test_non_negative_curvature(self, curvature):
        with pytest.raises(InvalidCurvature):
            Config(curvature=curvature)

    @pytest.mark.parametrize('field', ['embedding_dim', 'num_layers', 'num_heads'])
    def test_non_positive_dimensions(self, field):
        with pytest.raises(InvalidDimension):
            Config(**{field: 0})

    @pytest.mark.parametrize('overrides', [
        {'learning_rate': 0.0},
        {'max_epochs': 0},
        {'dropout': 1.0},
        {'attention_temperature': -1.0},
        {'patience': 0},
        {'grad_clip': 0.0},
        {'geometry_mode': 'spherical'},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigurationError):
            Config(**overrides)

    def test_geometry_mode_from_string(self):
        assert Config(geometry_mode='Adaptive').geometry_mode is GeometryMode.ADAPTIVE

    def test_from_dict_accepts_camel_case(self):
        config = Config.from_dict({
            'embeddingDim': 16,
            'numLayers': 2,
            'learningRate': 0.05,
            'maxEpochs': 7,
            'geometryMode': 'euclidean',
        })
        assert config.embedding_dim == 16
        assert config.num_layers == 2
        assert config.learning_rate == 0.05
        assert config.max_epochs == 7
        assert config.geometry_mode is GeometryMode.EUCLIDEAN

    def test_unknown_keys_are_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger='h2gnn.config'):
            config = Config.from_dict({'embeddingDim': 4, 'colour': 'blue'})
        assert config.embedding_dim == 4
        assert 'colour' in caplog.text

    def test_to_dict_round_trip(self):
        config = Config(embedding_dim=4, geometry_mode=GeometryMode.ADAPTIVE, seed=3)
        data = config.to_dict()
        assert data['geometry_mode'] == 'adaptive'
        assert Config.from_dict(data) == config

    def test_architecture_excludes_training_fields(self):
        arch = Config().architecture()
        assert 'embedding_dim' in arch
        assert 'learning_rate' not in arch
        assert 'max_epochs' not in arch
        assert 'geometry_mode' not in arch

    def test_load_config(self):
        assert load_config() == Config()
        assert load_config({'numHeads': 2}).num_heads == 2
        assert load_config(Config(num_layers=1), max_epochs=3) == Config(num_layers=1, max_epochs=3)
        with pytest.raises(ConfigurationError):
            load_config(42)


class TestLoggingConfig:

    def test_level_from_string(self):
        assert LoggingConfig(level='debug').level is LogLevel.DEBUG
        with pytest.raises(ConfigurationError):
            LoggingConfig(level='verbose')

    def test_configure_logging(self, tmp_path):
        log_file = tmp_path / 'h2gnn.log'
        config = LoggingConfig(level=LogLevel.DEBUG, file_handler=log_file,
                               console_handler=False, logger_name='h2gnn.test')
        config.configure_logging()

        logger = logging.getLogger('h2gnn.test')
        logger.debug('hello')
        for handler in logger.handlers:
            handler.flush()

        assert logger.level == logging.DEBUG
        assert 'hello' in log_file.read_text()
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)


class TestExceptions:

    @pytest.mark.parametrize('error', [
        ConfigurationError('bad'),
        DimensionMismatch(3, 4),
        InvalidCurvature(1.0),
        InvalidDimension('dim', 0),
        NullInput('none'),
        OutOfBall(1.2, 1.0),
        DivergedTraining(3, 'nan loss'),
    ])
    def test_hierarchy(self, error):
        assert isinstance(error, H2GNNError)

    def test_builtin_families(self):
        assert isinstance(DimensionMismatch(3, 4), ValueError)
        assert isinstance(OutOfBall(1.2, 1.0), ArithmeticError)
        assert isinstance(DivergedTraining(0, 'nan'), ArithmeticError)

    def test_details(self):
        error = DimensionMismatch(3, 4)
        assert error.expected == 3
        assert error.actual == 4
        assert 'expected=3' in str(error)

        diverged = DivergedTraining(5, 'nan loss', {'loss': float('nan')})
        assert diverged.epoch == 5
        assert diverged.details['epoch'] == 5
