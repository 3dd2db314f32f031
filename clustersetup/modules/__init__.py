"""
Pipeline components: preflight, stage registry, toolchain, executor and
kubeconfig retrieval.
"""
from .stages import STAGE_NAMES, PipelineRun, Stage, build_stages, resolve_start

__all__ = [
    'STAGE_NAMES',
    'PipelineRun',
    'Stage',
    'build_stages',
    'resolve_start',
]
