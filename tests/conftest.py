import sys
from datetime import date
from pathlib import Path

import pytest


# --- BOILERPLATE TO MAKE THE TESTS RUNNABLE FROM A CHECKOUT ---
def setup_path():
    project_root = Path(__file__).resolve().parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

setup_path()
# --------------------------------------------------

from core.registry.type_registry import ComponentTypeRegistry
from infrastructure.capabilities import StaticCapabilityProvider
from pipeline.orchestrator import ManifestResolver
from pipeline.pipeline_config import PipelineConfig

REFERENCE_DATE = date(2026, 6, 1)

QUEUE_ARN = 'arn:aws:sqs:us-east-1:123456789012:orders-queue'
QUEUE_URL = 'https://sqs.us-east-1.amazonaws.com/123456789012/orders-queue'
TOPIC_ARN = 'arn:aws:sns:us-east-1:123456789012:events'
BUCKET_ARN = 'arn:aws:s3:::uploads-bucket'
DB_ARN = 'arn:aws:rds:us-east-1:123456789012:db:orders-db'
DB_SECRET_ARN = 'arn:aws:secretsmanager:us-east-1:123456789012:secret:orders-db-creds'
SECRET_ARN = 'arn:aws:secretsmanager:us-east-1:123456789012:secret:api-key'


def capability_records():
    return {
        'queue': [{
            'type': 'queue:sqs',
            'region': 'us-east-1',
            'resources': {'arn': QUEUE_ARN, 'url': QUEUE_URL},
            'vpcEndpoint': 'vpce-0abc',
        }],
        'secure-queue': [{
            'type': 'queue:sqs',
            'resources': {'arn': QUEUE_ARN, 'url': QUEUE_URL},
            'tlsRequired': True,
        }],
        'events': [{'type': 'topic:sns', 'resources': {'arn': TOPIC_ARN}}],
        'uploads': [{
            'type': 'storage:s3',
            'resources': {'arn': BUCKET_ARN, 'name': 'uploads-bucket'},
            'encryptionAtRest': True,
        }],
        'orders-db': [{
            'type': 'db:postgres',
            'endpoint': 'orders-db.abc.us-east-1.rds.amazonaws.com',
            'port': 5432,
            'database': 'orders',
            'resources': {'arn': DB_ARN, 'secretArn': DB_SECRET_ARN},
            'encryptionAtRest': True,
            'tlsRequired': True,
            'securityGroupId': 'sg-0db',
        }],
        'api-key': [{'type': 'secret:secretsmanager', 'resources': {'arn': SECRET_ARN}}],
    }


@pytest.fixture
def pipeline_config():
    return PipelineConfig(reference_date=REFERENCE_DATE)


@pytest.fixture
def type_registry():
    return ComponentTypeRegistry.with_shipped_schemas()


@pytest.fixture
def capability_provider():
    return StaticCapabilityProvider(capability_records())


@pytest.fixture
def resolver(type_registry, capability_provider, pipeline_config):
    return ManifestResolver(type_registry, capability_provider, config=pipeline_config)


API_QUEUE_MANIFEST = """
service: orders
owner: team-orders
components:
  - name: api
    type: lambda-api
    config:
      handler: src/api.handler
    binds:
      - to: queue
        capability: queue:sqs
        access: write
  - name: queue
    type: sqs-queue
    config: {}
"""


@pytest.fixture
def api_queue_manifest():
    return API_QUEUE_MANIFEST
