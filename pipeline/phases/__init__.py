from .base_phase import PhaseResult, PipelinePhase
from .binding_phase import BindingPhase
from .hydration_phase import HydrationPhase
from .parse_phase import ParsePhase
from .schema_validation_phase import SchemaValidationPhase
from .semantic_validation_phase import SemanticValidationPhase

__all__ = [
    'BindingPhase',
    'HydrationPhase',
    'ParsePhase',
    'PhaseResult',
    'PipelinePhase',
    'SchemaValidationPhase',
    'SemanticValidationPhase',
]
