"""
crf-tuner - Adaptive CRF search against a target VMAF score.
"""

__version__ = "1.0.0"

from .config import get_config, load_env_file
from .core.models import OptimizedEncodeRequest, SearchRequest
from .core.modules.optimization.crf_search import run_search
from .core.modules.optimization.optimized_encode import run_optimized_encode

__all__ = [
    "get_config",
    "load_env_file",
    "OptimizedEncodeRequest",
    "SearchRequest",
    "run_search",
    "run_optimized_encode",
    "__version__",
]
