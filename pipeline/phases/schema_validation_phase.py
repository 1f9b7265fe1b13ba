from __future__ import annotations

from typing import Any, List, Mapping, Optional

from domain.ports.type_registry_port import ComponentTypeRegistryPort
from pipeline.pipeline_context import PipelineContext
from pipeline.processors.schema_composer import SchemaComposer
from pipeline.processors.schema_validator import SchemaValidator

from .base_phase import PhaseResult, PipelinePhase


class SchemaValidationPhase(PipelinePhase):
    """Compose the master schema for the registered types and validate the raw tree."""

    stage_name = 'schema-validation'

    def __init__(
        self,
        type_registry: ComponentTypeRegistryPort,
        composer: Optional[SchemaComposer] = None,
        validator: Optional[SchemaValidator] = None,
        base_schema: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__()
        self.type_registry = type_registry
        self.composer = composer if composer is not None else SchemaComposer()
        self.validator = validator if validator is not None else SchemaValidator()
        self.base_schema = base_schema

    @staticmethod
    def environment_keys(context: PipelineContext) -> List[str]:
        """Keys a per-environment map may use in this manifest."""
        config = context.config
        keys = {*config.environment_names, config.per_environment_fallback_key, context.environment}
        declared = context.raw_tree.get('environments') if isinstance(context.raw_tree, dict) else None
        if isinstance(declared, dict):
            keys.update(k for k in declared if isinstance(k, str))
        return sorted(keys)

    async def execute(self, context: PipelineContext) -> PhaseResult:
        master = self.composer.compose_from_registry(self.type_registry, self.base_schema, self.environment_keys(context))
        context.master_schema = master
        context.manifest = await self.validator.validate(context.raw_tree, master)
        return PhaseResult.success_result(
            self.stage_name,
            f"Manifest '{context.manifest.service}' is schema-valid ({len(context.manifest.components)} component(s))",
            metadata={'schemaFingerprint': master.fingerprint},
        )
