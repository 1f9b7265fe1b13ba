from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Optional

from domain.manifest import Manifest
from pipeline.exceptions import GovernanceValidationError
from pipeline.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)

_SUPPRESSION_FIELDS = ('id', 'justification', 'owner', 'expires_on')
_PATCH_FIELDS = ('name', 'justification', 'owner', 'expires_on')
_WIRE_NAMES = {'expires_on': 'expiresOn'}


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def parse_expiry(value: str) -> date:
    """Accepts YYYY-MM-DD, or an ISO timestamp whose date part is used."""
    text = str(value).strip()
    return date.fromisoformat(text[:10])


class GovernanceValidator:
    """
    Every suppression and extension patch must be complete and not expired.
    Expiry is compared with the configured reference date (today by default);
    an entry expiring on the reference date itself is already expired.
    """

    def __init__(self, config: Optional[PipelineConfig] = None) -> None:
        self.config = config if config is not None else PipelineConfig()

    def validate(self, manifest: Manifest, component_names: Optional[Iterable[str]] = None) -> None:
        names = set(component_names) if component_names is not None else set(manifest.component_names())
        today = self.config.effective_reference_date

        for i, entry in enumerate(manifest.governance.suppress):
            path = f'/governance/suppress/{i}'
            label = f"suppression '{entry.id}'" if not _blank(entry.id) else f'suppression #{i}'
            self._check_fields(entry, _SUPPRESSION_FIELDS, path, label)
            self._check_expiry(entry.expires_on, today, path, label)
            for j, component in enumerate(entry.applies_to):
                if component not in names:
                    raise GovernanceValidationError(
                        f"{label} applies to unknown component '{component}'",
                        path=f'{path}/appliesTo/{j}', rule='governance-unknown-component',
                        component_name=component,
                    )

        for i, patch in enumerate(manifest.extensions.patches):
            path = f'/extensions/patches/{i}'
            label = f"patch '{patch.name}'" if not _blank(patch.name) else f'patch #{i}'
            self._check_fields(patch, _PATCH_FIELDS, path, label)
            self._check_expiry(patch.expires_on, today, path, label)

        logger.debug(
            'Governance validated: %d suppression(s), %d patch(es) against %s',
            len(manifest.governance.suppress), len(manifest.extensions.patches), today.isoformat(),
        )

    @staticmethod
    def _check_fields(entry: object, fields: Iterable[str], path: str, label: str) -> None:
        missing: List[str] = [_WIRE_NAMES.get(f, f) for f in fields if _blank(getattr(entry, f))]
        if missing:
            raise GovernanceValidationError(
                f"{label} is missing required field(s): {', '.join(missing)}",
                path=f'{path}/{missing[0]}', rule='governance-incomplete',
            )

    @staticmethod
    def _check_expiry(expires_on: str, today: date, path: str, label: str) -> None:
        try:
            expiry = parse_expiry(expires_on)
        except ValueError as exc:
            raise GovernanceValidationError(
                f"{label} has an invalid expiresOn {expires_on!r}; expected YYYY-MM-DD",
                path=f'{path}/expiresOn', rule='governance-invalid-expiry',
            ) from exc
        if expiry <= today:
            raise GovernanceValidationError(
                f"{label} expired on {expiry.isoformat()}",
                path=f'{path}/expiresOn', rule='governance-expired',
            )
