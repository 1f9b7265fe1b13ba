"""Shipped JSON schemas: the base service manifest and per-type component configs."""
from pathlib import Path

SCHEMA_ROOT = Path(__file__).resolve().parent
BASE_MANIFEST_SCHEMA = SCHEMA_ROOT / 'service-manifest.schema.json'
COMPONENT_SCHEMA_DIR = SCHEMA_ROOT / 'components'
