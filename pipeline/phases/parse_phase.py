from __future__ import annotations

from typing import Optional

from pipeline.pipeline_context import PipelineContext
from pipeline.processors.manifest_parser import ManifestParser

from .base_phase import PhaseResult, PipelinePhase


class ParsePhase(PipelinePhase):
    stage_name = 'parse'

    def __init__(self, parser: Optional[ManifestParser] = None) -> None:
        super().__init__()
        self.parser = parser if parser is not None else ManifestParser()

    async def execute(self, context: PipelineContext) -> PhaseResult:
        context.raw_tree = self.parser.parse(context.text, source=context.source)
        kind = type(context.raw_tree).__name__
        return PhaseResult.success_result(self.stage_name, f'Parsed manifest into {kind}', metadata={'source': context.source})
