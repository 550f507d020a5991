# DataTracker sampler subpackage
from .counters import CounterSampler
from .delta import compute_delta, baseline_delta
from .identity import NetworkIdentity

__all__ = ['CounterSampler', 'compute_delta', 'baseline_delta', 'NetworkIdentity']
