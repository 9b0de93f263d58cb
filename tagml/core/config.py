"""
Configuration management for tagml training runs
"""

import logging
import yaml
from typing import Dict, Any, Iterator, Mapping, Optional, Tuple
from pathlib import Path
from .exceptions import ConfigurationError

ALGORITHM_PARAM = 'Algorithm'
CUTOFF_PARAM = 'Cutoff'
ITERATIONS_PARAM = 'Iterations'
THREADS_PARAM = 'Threads'
TOLERANCE_PARAM = 'Tolerance'
SORT_PARAM = 'Sort'
DATA_INDEXER_PARAM = 'DataIndexer'

MAXENT_VALUE = 'MAXENT'
MAXENT_QN_VALUE = 'MAXENT_QN'
PERCEPTRON_VALUE = 'PERCEPTRON'
PERCEPTRON_SEQUENCE_VALUE = 'PERCEPTRON_SEQUENCE'
ALGORITHMS = (MAXENT_VALUE, MAXENT_QN_VALUE, PERCEPTRON_VALUE, PERCEPTRON_SEQUENCE_VALUE)

DATA_INDEXER_TWO_PASS = 'TwoPass'
DATA_INDEXER_ONE_PASS = 'OnePass'

CUTOFF_DEFAULT = 5
ITERATIONS_DEFAULT = 100
THREADS_DEFAULT = 1

DEFAULT_LOGGING = {
    'level': 'INFO',
    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
}

_TRUE = ('true', 'yes', '1', 'on')
_FALSE = ('false', 'no', '0', 'off')


class TrainingConfig:
    """Flat, case-insensitive key->value training parameters

    Keys may be qualified by a namespace ("pos.Iterations"), which lets a
    single file configure several models. Values keep the type they were
    given; the typed getters convert strings coming from YAML or the CLI.
    """

    def __init__(self, params: Optional[Mapping[str, Any]] = None):
        # lower-cased key -> (key as given, value)
        self._params: Dict[str, Tuple[str, Any]] = {}
        self.logging: Dict[str, Any] = dict(DEFAULT_LOGGING)
        if params:
            for key, value in _flatten(params).items():
                self.put(key, value)

    @classmethod
    def defaults(cls) -> 'TrainingConfig':
        """Parameters used when nothing else is specified"""
        return cls({
            ALGORITHM_PARAM: MAXENT_VALUE,
            ITERATIONS_PARAM: ITERATIONS_DEFAULT,
            CUTOFF_PARAM: CUTOFF_DEFAULT,
        })

    @classmethod
    def from_yaml(cls, config_path: str) -> 'TrainingConfig':
        """Load parameters from a YAML file

        The file either holds the parameters at top level or under a
        ``training`` section; an optional ``logging`` section configures
        :func:`setup_logging`.
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to load config from {config_file}: {e}")

        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file {config_file} must contain a mapping")

        logging_section = file_config.pop('logging', None)
        training_section = file_config.get('training', file_config)
        if not isinstance(training_section, dict):
            raise ConfigurationError("'training' section must be a mapping")

        config = cls(training_section)
        if logging_section:
            config.logging = _deep_merge(config.logging, logging_section)
        return config

    # ------------------------------------------------------------------
    # raw access
    # ------------------------------------------------------------------

    @staticmethod
    def _key(key: str, namespace: Optional[str] = None) -> str:
        return f"{namespace}.{key}" if namespace else key

    def put(self, key: str, value: Any, namespace: Optional[str] = None) -> None:
        full_key = self._key(key, namespace)
        self._params[full_key.lower()] = (full_key, value)

    def put_if_absent(self, key: str, value: Any, namespace: Optional[str] = None) -> None:
        full_key = self._key(key, namespace)
        if full_key.lower() not in self._params:
            self._params[full_key.lower()] = (full_key, value)

    def get(self, key: str, default: Any = None, namespace: Optional[str] = None) -> Any:
        entry = self._params.get(self._key(key, namespace).lower())
        return default if entry is None else entry[1]

    def __contains__(self, key: str) -> bool:
        return key.lower() in self._params

    def __iter__(self) -> Iterator[str]:
        return iter(given for given, _ in self._params.values())

    def __len__(self) -> int:
        return len(self._params)

    def __repr__(self) -> str:
        return f"TrainingConfig({self.to_dict()!r})"

    def to_dict(self) -> Dict[str, Any]:
        """Return all parameters as a plain dictionary"""
        return {given: value for given, value in self._params.values()}

    def copy(self) -> 'TrainingConfig':
        config = TrainingConfig(self.to_dict())
        config.logging = dict(self.logging)
        return config

    def namespace(self, namespace: Optional[str]) -> 'TrainingConfig':
        """Parameters of one namespace, with the prefix stripped

        ``namespace(None)`` returns the un-namespaced parameters.
        """
        settings = {}
        prefix = f"{namespace}." if namespace else None
        for given, value in self._params.values():
            if prefix is not None:
                if given.lower().startswith(prefix.lower()):
                    settings[given[len(prefix):]] = value
            elif '.' not in given:
                settings[given] = value
        config = TrainingConfig(settings)
        config.logging = dict(self.logging)
        return config

    # ------------------------------------------------------------------
    # typed getters
    # ------------------------------------------------------------------

    def get_str(self, key: str, default: Optional[str] = None,
                namespace: Optional[str] = None) -> Optional[str]:
        value = self.get(key, None, namespace)
        return default if value is None else str(value)

    def get_int(self, key: str, default: int, namespace: Optional[str] = None) -> int:
        value = self.get(key, None, namespace)
        if value is None:
            return default
        if isinstance(value, bool):
            raise ConfigurationError(f"{key} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{key} must be an integer, got {value!r}")

    def get_float(self, key: str, default: float, namespace: Optional[str] = None) -> float:
        value = self.get(key, None, namespace)
        if value is None:
            return default
        if isinstance(value, bool):
            raise ConfigurationError(f"{key} must be a number, got {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{key} must be a number, got {value!r}")

    def get_bool(self, key: str, default: bool, namespace: Optional[str] = None) -> bool:
        value = self.get(key, None, namespace)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigurationError(f"{key} must be a boolean, got {value!r}")

    # ------------------------------------------------------------------
    # well-known parameters
    # ------------------------------------------------------------------

    @property
    def algorithm(self) -> str:
        """Training algorithm, MAXENT when unset"""
        return self.get_str(ALGORITHM_PARAM, MAXENT_VALUE).upper()

    @property
    def iterations(self) -> int:
        return self.get_int(ITERATIONS_PARAM, ITERATIONS_DEFAULT)

    @property
    def cutoff(self) -> int:
        return self.get_int(CUTOFF_PARAM, CUTOFF_DEFAULT)

    @property
    def threads(self) -> int:
        return self.get_int(THREADS_PARAM, THREADS_DEFAULT)

    def validate(self) -> None:
        """Check the algorithm name and the type of the common numeric keys"""
        if self.algorithm not in ALGORITHMS:
            raise ConfigurationError(
                f"Unknown algorithm {self.algorithm!r}, expected one of {', '.join(ALGORITHMS)}")
        if self.iterations <= 0:
            raise ConfigurationError(f"{ITERATIONS_PARAM} must be positive, got {self.iterations}")
        if self.cutoff < 0:
            raise ConfigurationError(f"{CUTOFF_PARAM} must not be negative, got {self.cutoff}")
        if self.threads < 1:
            raise ConfigurationError(f"{THREADS_PARAM} must be at least 1, got {self.threads}")
        indexer = self.get_str(DATA_INDEXER_PARAM, DATA_INDEXER_TWO_PASS)
        if indexer not in (DATA_INDEXER_TWO_PASS, DATA_INDEXER_ONE_PASS):
            raise ConfigurationError(f"Unknown {DATA_INDEXER_PARAM} {indexer!r}")
        self.get_bool(SORT_PARAM, True)


def setup_logging(config: Optional[TrainingConfig] = None,
                  level: Optional[str] = None) -> None:
    """Configure root logging from the ``logging`` section of a config"""
    settings = dict(config.logging) if config is not None else dict(DEFAULT_LOGGING)
    if level:
        settings['level'] = level
    log_level = getattr(logging, str(settings.get('level', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=settings.get('format', DEFAULT_LOGGING['format'])
    )
    logging.getLogger('tagml').setLevel(log_level)


def _flatten(params: Mapping[str, Any], prefix: str = '') -> Dict[str, Any]:
    """Turn nested mappings into dotted namespace keys"""
    flat = {}
    for key, value in params.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(_flatten(value, full_key))
        else:
            flat[full_key] = value
    return flat


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries"""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
