"""Configuration management for crf-tuner."""

import os
from pathlib import Path
from typing import Optional, Dict, Any


DEFAULTS: Dict[str, str] = {
    'vmaf_target': '95.0',
    'search_tolerance': '0.5',
    'crf_initial': '20',
    'crf_min': '30',
    'crf_max': '15',
    'vmaf_speed': '5',
    'codec': 'libx264',
    'debug': 'false',
}


def load_env_file(env_path: Optional[Path] = None) -> Dict[str, str]:
    """Load environment variables from .env file."""
    if env_path is None:
        # Look for .env in current directory, then in package directory
        candidates = [
            Path.cwd() / ".env",
            Path(__file__).parent.parent / ".env",
        ]

        for candidate in candidates:
            if candidate.exists():
                env_path = candidate
                break

    env_vars = {}

    if env_path and env_path.exists():
        with open(env_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    if '=' in line:
                        key, value = line.split('=', 1)
                        env_vars[key.strip()] = value.strip().strip('"').strip("'")

    return env_vars


def _lookup(env_vars: Dict[str, str], key: str) -> str:
    # Process environment wins over .env, .env wins over built-in defaults
    value = os.getenv(key.upper())
    if value is None:
        value = env_vars.get(key.upper(), env_vars.get(key, DEFAULTS[key]))
    return value


def get_config(env_path: Optional[Path] = None) -> Dict[str, Any]:
    """Get configuration from environment variables and .env file.

    Raises ValueError when a numeric setting cannot be parsed.
    """
    env_vars = load_env_file(env_path)

    try:
        config = {
            'vmaf_target': float(_lookup(env_vars, 'vmaf_target')),
            'search_tolerance': float(_lookup(env_vars, 'search_tolerance')),
            'crf_initial': int(_lookup(env_vars, 'crf_initial')),
            'crf_min': int(_lookup(env_vars, 'crf_min')),
            'crf_max': int(_lookup(env_vars, 'crf_max')),
            'vmaf_speed': int(_lookup(env_vars, 'vmaf_speed')),
            'codec': _lookup(env_vars, 'codec'),
            'debug': _lookup(env_vars, 'debug').lower() in ('true', '1', 'yes'),
        }
    except ValueError as e:
        raise ValueError(f"Invalid crf-tuner configuration value: {e}") from e

    return config
