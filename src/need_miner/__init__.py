# need_miner/__init__.py
"""
need_miner - keyword discovery and user-journey simulation for unmet-demand mining.

Subpackages:
    llm        resilient LLM gateway (cache, retry, repair, sessions, transports)
    discovery  iterative keyword discovery with convergence scoring
    journey    autocomplete adoption model, journey simulation, fidelity and journey evaluation
"""

from .config import Settings
from .discovery import ConvergenceController, ConvergencePolicy, DiscoveryResult, discover_batch
from .exceptions import NeedMinerError, PermanentError, TransientError
from .journey import AdoptionModel, AdoptionParameters, FidelityEvaluator, JourneyEvaluator, JourneySimulator
from .llm import CallOptions, LLMGateway, create_transport

__version__ = "0.1.0"

__all__ = [
    "AdoptionModel",
    "AdoptionParameters",
    "CallOptions",
    "ConvergenceController",
    "ConvergencePolicy",
    "DiscoveryResult",
    "FidelityEvaluator",
    "JourneyEvaluator",
    "JourneySimulator",
    "LLMGateway",
    "NeedMinerError",
    "PermanentError",
    "Settings",
    "TransientError",
    "create_transport",
    "discover_batch",
]
