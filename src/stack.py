"""Declarative resource graph for the wiki deployment.

Renders the stack as Terraform JSON (main.tf.json). Ordering between
resources comes only from references (${type.name.attr}) and depends_on;
terraform resolves the apply order, not this module.

The database password is never written to disk: it is generated by
random_password, stored in Secret Manager and handed to Cloud Run as a
secret reference.
"""

import json
import logging
import re
from collections import deque
from pathlib import Path
from typing import Any, Optional

from config import DeployConfig

logger = logging.getLogger(__name__)

STACK_FILENAME = 'main.tf.json'
IMAGE_VARS_FILENAME = 'image.auto.tfvars.json'

# Served until the wiki image has been pushed to the registry
PLACEHOLDER_IMAGE = 'us-docker.pkg.dev/cloudrun/container/hello'

SQL_INSTANCE_ADDRESS = 'google_sql_database_instance.wiki_postgres'
SERVICE_ADDRESS = 'google_cloud_run_v2_service.wiki_js'

SERVICE_ACCOUNT_ROLES = {
    'sql_client': 'roles/cloudsql.client',
    'run_invoker': 'roles/run.invoker',
    'log_writer': 'roles/logging.logWriter',
    'secret_accessor': 'roles/secretmanager.secretAccessor',
}

_REF_PATTERN = re.compile(r'\$\{([a-z0-9_]+\.[a-z0-9_]+)\.')


def ref(address: str, attr: str = 'id') -> str:
    """Interpolation referencing another resource's attribute."""
    return '${' + f'{address}.{attr}' + '}'


def var(name: str) -> str:
    return '${var.' + name + '}'


class Stack:
    """Accumulates resources, variables and outputs for one Terraform config."""

    def __init__(self):
        self.resources: dict[str, dict[str, dict]] = {}
        self.variables: dict[str, dict] = {}
        self.outputs: dict[str, dict] = {}

    def add(self, rtype: str, name: str, body: dict,
            depends_on: Optional[list[str]] = None) -> str:
        """Declare a resource and return its address."""
        address = f'{rtype}.{name}'
        if name in self.resources.get(rtype, {}):
            raise ValueError(f"Duplicate resource: {address}")
        if depends_on:
            body = {**body, 'depends_on': list(depends_on)}
        self.resources.setdefault(rtype, {})[name] = body
        return address

    def variable(self, name: str, description: str, default: Any = None,
                 sensitive: bool = False) -> None:
        spec: dict[str, Any] = {'type': 'string', 'description': description}
        if default is not None:
            spec['default'] = default
        if sensitive:
            spec['sensitive'] = True
        self.variables[name] = spec

    def output(self, name: str, value: str, description: str, sensitive: bool = False) -> None:
        spec: dict[str, Any] = {'value': value, 'description': description}
        if sensitive:
            spec['sensitive'] = True
        self.outputs[name] = spec

    def to_dict(self) -> dict:
        return {
            'terraform': {
                'required_providers': {
                    'google': {'source': 'hashicorp/google', 'version': '>= 5.0'},
                    'random': {'source': 'hashicorp/random', 'version': '>= 3.5'},
                    'time': {'source': 'hashicorp/time', 'version': '>= 0.9'},
                },
            },
            'provider': {
                'google': {
                    'project': var('project_id'),
                    'region': var('region'),
                    'zone': var('zone'),
                },
            },
            'variable': self.variables,
            'resource': self.resources,
            'output': self.outputs,
        }


def build_stack(config: DeployConfig) -> Stack:
    """Declare every resource of the deployment."""
    stack = Stack()

    stack.variable('project_id', 'GCP project ID')
    stack.variable('region', 'GCP region', default=config.region)
    stack.variable('zone', 'GCP zone', default=config.zone)
    stack.variable('container_image', 'Image served by Cloud Run', default=PLACEHOLDER_IMAGE)

    # Identity
    sa = stack.add('google_service_account', 'wiki_js', {
        'account_id': config.service_account_id,
        'display_name': 'Wiki.js Cloud Run service account',
    })
    sa_member = 'serviceAccount:' + ref(sa, 'email')

    # Registry
    repo = stack.add('google_artifact_registry_repository', 'wiki_js', {
        'location': var('region'),
        'repository_id': config.repository_id,
        'description': 'Wiki.js container images',
        'format': 'DOCKER',
    })
    stack.add('google_artifact_registry_repository_iam_member', 'wiki_js_writer', {
        'project': ref(repo, 'project'),
        'location': ref(repo, 'location'),
        'repository': ref(repo, 'name'),
        'role': 'roles/artifactregistry.writer',
        'member': sa_member,
    })

    role_bindings = []
    for binding_name, role in SERVICE_ACCOUNT_ROLES.items():
        role_bindings.append(stack.add('google_project_iam_member', binding_name, {
            'project': var('project_id'),
            'role': role,
            'member': sa_member,
        }))

    # Credentials
    password = stack.add('random_password', 'db_password', {
        'length': 24,
        'special': False,
    })
    secret = stack.add('google_secret_manager_secret', 'db_password', {
        'secret_id': f'{config.sql_instance}-password',
        'replication': {'auto': {}},
    })
    secret_version = stack.add('google_secret_manager_secret_version', 'db_password', {
        'secret': ref(secret, 'id'),
        'secret_data': ref(password, 'result'),
    })

    # Database
    instance = stack.add('google_sql_database_instance', 'wiki_postgres', {
        'name': config.sql_instance,
        'database_version': 'POSTGRES_15',
        'region': var('region'),
        'deletion_protection': False,
        'settings': {
            'tier': 'db-f1-micro',
            'backup_configuration': {
                'enabled': True,
                'start_time': '03:00',
            },
            'ip_configuration': {
                'ipv4_enabled': True,
                'authorized_networks': [
                    {'name': 'all', 'value': '0.0.0.0/0'},
                ],
            },
            'database_flags': [
                {'name': 'cloudsql.iam_authentication', 'value': 'on'},
            ],
        },
        'timeouts': {'create': '30m'},
    })

    # Child resources fail while a fresh instance is still settling
    settle = stack.add('time_sleep', 'wait_for_sql', {
        'create_duration': f'{config.sql_settle_seconds}s',
    }, depends_on=[instance])

    database = stack.add('google_sql_database', 'wiki', {
        'name': config.database_name,
        'instance': ref(instance, 'name'),
    }, depends_on=[settle])
    user = stack.add('google_sql_user', 'wiki', {
        'name': config.database_user,
        'instance': ref(instance, 'name'),
        'password': ref(password, 'result'),
    }, depends_on=[settle])

    # Service
    env = [
        {'name': 'DB_TYPE', 'value': 'postgres'},
        {'name': 'DB_HOST', 'value': ref(instance, 'public_ip_address')},
        {'name': 'DB_PORT', 'value': '5432'},
        {'name': 'DB_USER', 'value': ref(user, 'name')},
        {'name': 'DB_PASS', 'value_source': {
            'secret_key_ref': {'secret': ref(secret, 'secret_id'), 'version': 'latest'},
        }},
        {'name': 'DB_NAME', 'value': ref(database, 'name')},
    ]
    service = stack.add('google_cloud_run_v2_service', 'wiki_js', {
        'name': config.service_name,
        'location': var('region'),
        'ingress': 'INGRESS_TRAFFIC_ALL',
        'deletion_protection': False,
        'template': {
            'service_account': ref(sa, 'email'),
            'scaling': {
                'min_instance_count': 0,
                'max_instance_count': 10,
            },
            'containers': [{
                'image': var('container_image'),
                'ports': {'container_port': 3000},
                'resources': {
                    'limits': {'cpu': '1000m', 'memory': '1Gi'},
                },
                'env': env,
            }],
        },
    }, depends_on=[secret_version] + role_bindings)

    stack.add('google_cloud_run_v2_service_iam_member', 'public', {
        'name': ref(service, 'name'),
        'location': ref(service, 'location'),
        'role': 'roles/run.invoker',
        'member': 'allUsers',
    })

    # Outputs
    stack.output('wiki_js_url', ref(service, 'uri'), 'Public URL of the wiki')
    stack.output(
        'database_connection_string',
        'postgresql://' + ref(user, 'name') + ':' + ref(password, 'result')
        + '@' + ref(instance, 'public_ip_address') + ':5432/' + ref(database, 'name'),
        'PostgreSQL connection string',
        sensitive=True,
    )
    stack.output(
        'artifact_registry_url',
        '${var.region}-docker.pkg.dev/${var.project_id}/' + ref(repo, 'repository_id'),
        'Artifact Registry repository URL',
    )
    stack.output('service_account_email', ref(sa, 'email'), 'Service account used by Cloud Run')
    stack.output('project_id', var('project_id'), 'GCP project ID')
    stack.output('region', var('region'), 'GCP region')

    return stack


def render_stack(config: DeployConfig) -> dict:
    """Return the Terraform JSON document for the deployment."""
    return build_stack(config).to_dict()


def write_stack(config: DeployConfig, output_dir: Path) -> Path:
    """Write main.tf.json to output_dir and return its path."""
    path = output_dir / STACK_FILENAME
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(render_stack(config), f, indent=2)
        f.write('\n')
    logger.debug(f"Wrote {path}")
    return path


def write_image_vars(image: str, output_dir: Path) -> Path:
    """Pin the served image so later applies keep it."""
    path = output_dir / IMAGE_VARS_FILENAME
    with open(path, 'w', encoding='utf-8') as f:
        json.dump({'container_image': image}, f, indent=2)
        f.write('\n')
    return path


def clear_image_vars(output_dir: Path) -> bool:
    """Remove the image pin. Returns True if a pin was removed."""
    path = output_dir / IMAGE_VARS_FILENAME
    if not path.exists():
        return False
    path.unlink()
    return True


def _collect_refs(value: Any, found: set[str]) -> None:
    if isinstance(value, dict):
        for item in value.values():
            _collect_refs(item, found)
    elif isinstance(value, list):
        for item in value:
            _collect_refs(item, found)
    elif isinstance(value, str):
        found.update(m for m in _REF_PATTERN.findall(value) if not m.startswith('var.'))


def dependencies(document: dict) -> dict[str, set[str]]:
    """Map each resource address to the addresses it references or depends on."""
    graph: dict[str, set[str]] = {}
    for rtype, named in document.get('resource', {}).items():
        for name, body in named.items():
            address = f'{rtype}.{name}'
            found: set[str] = set()
            _collect_refs({k: v for k, v in body.items() if k != 'depends_on'}, found)
            found.update(body.get('depends_on', []))
            found.discard(address)
            graph[address] = found
    return graph


def apply_order(document: dict) -> list[str]:
    """Resource addresses with every dependency before its dependents.

    Raises:
        ValueError: unknown reference or dependency cycle
    """
    graph = dependencies(document)
    for address, deps in graph.items():
        unknown = deps - graph.keys()
        if unknown:
            raise ValueError(f"{address} references undeclared resources: {sorted(unknown)}")

    remaining = {address: set(deps) for address, deps in graph.items()}
    dependents: dict[str, list[str]] = {address: [] for address in graph}
    for address, deps in graph.items():
        for dep in deps:
            dependents[dep].append(address)

    queue = deque(address for address in graph if not remaining[address])
    order = []
    while queue:
        address = queue.popleft()
        order.append(address)
        for child in dependents[address]:
            remaining[child].discard(address)
            if not remaining[child]:
                queue.append(child)

    if len(order) != len(graph):
        cyclic = sorted(set(graph) - set(order))
        raise ValueError(f"Dependency cycle between: {cyclic}")
    return order
