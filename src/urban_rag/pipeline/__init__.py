from .result import Result, BatchRunResult, ItemResult
from .settings import PipelineSettings
from .stages import StageExecutors
from .batch_runner import BatchRunner
from .driver import PipelineDriver

__all__ = ['Result', 'BatchRunResult', 'ItemResult', 'PipelineSettings', 'StageExecutors', 'BatchRunner', 'PipelineDriver']
