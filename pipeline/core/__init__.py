from .phase_executor import PhaseExecutionSummary, PhaseExecutor

__all__ = ["PhaseExecutionSummary", "PhaseExecutor"]
