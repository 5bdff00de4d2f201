"""Deployment configuration management.

Configuration comes from two files in the terraform directory:
- terraform.tfvars: operator-edited project settings (project_id, region, zone)
- terraform.tfvars.example: template copied when terraform.tfvars is missing

Optional site-wide overrides for the fixed deployment constants (service
name, SQL instance name, upstream image, polling budget) are read from
site.yaml in the repository root:

    defaults:
      service_name: wiki-js
      poll_attempts: 15

The merge order is: built-in defaults -> site.yaml -> terraform.tfvars.
"""

import os
import re
import shutil
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_REGION = 'us-central1'
DEFAULT_ZONE = 'us-central1-a'

# Value shipped in terraform.tfvars.example
PLACEHOLDER_PROJECT_ID = 'your-gcp-project-id'


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class DeployConfig:
    """Settings for one deployment of the wiki stack.

    project_id, region and zone come from terraform.tfvars. Everything else
    has a fixed default that site.yaml may override.
    """
    project_id: str
    config_file: Path
    region: str = DEFAULT_REGION
    zone: str = DEFAULT_ZONE

    # Resource names (must match the rendered stack)
    service_name: str = 'wiki-js'
    sql_instance: str = 'wiki-postgres-instance'
    database_name: str = 'wiki'
    database_user: str = 'wikijs'
    repository_id: str = 'wiki-js'
    service_account_id: str = 'wiki-js-sa'

    # Container image
    upstream_image: str = 'ghcr.io/requarks/wiki:2'
    image_name: str = 'wiki'
    image_tags: list = field(default_factory=lambda: ['2', 'latest'])

    # Tooling
    terraform_bin: str = 'terraform'
    editor: str = field(default_factory=lambda: os.environ.get('EDITOR', 'nano'))

    # Timing (seconds)
    poll_attempts: int = 15
    poll_interval: int = 60
    sql_settle_seconds: int = 60
    apply_timeout: int = 2700  # past the 30m Cloud SQL create timeout

    def __post_init__(self):
        if isinstance(self.config_file, str):
            self.config_file = Path(self.config_file)

    @property
    def name(self) -> str:
        """Label used in logs and reports."""
        return self.project_id

    @property
    def registry_host(self) -> str:
        """Artifact Registry Docker endpoint for the region."""
        return f'{self.region}-docker.pkg.dev'

    @property
    def registry_url(self) -> str:
        """Repository URL derived from settings (terraform output is preferred)."""
        return f'{self.registry_host}/{self.project_id}/{self.repository_id}'

    @property
    def primary_tag(self) -> str:
        """Tag the running service is pointed at."""
        return self.image_tags[0]

    @property
    def terraform_dir(self) -> Path:
        """Directory holding terraform.tfvars and the rendered stack."""
        return self.config_file.parent


_FIELD_TYPES = {f.name: f.type for f in fields(DeployConfig)}


def _parse_tfvars(path: Path) -> dict:
    """Parse a tfvars file and return key-value pairs."""
    result = {}
    content = path.read_text(encoding='utf-8')
    # Match: key = "value" or key = 'value'
    for match in re.finditer(r'^(\w+)\s*=\s*["\']([^"\']*)["\']', content, re.MULTILINE):
        # First assignment wins (matches `grep | head -1` semantics)
        result.setdefault(match.group(1), match.group(2))
    return result


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")
    return data


def _load_site_defaults(site_file: Optional[Path]) -> dict:
    """Load overridable defaults from site.yaml (unknown keys ignored)."""
    if site_file is None or not site_file.exists():
        return {}
    defaults = _parse_yaml(site_file).get('defaults') or {}
    if not isinstance(defaults, dict):
        raise ConfigError(f"'defaults' in {site_file} must be a mapping")
    known = {f.name for f in fields(DeployConfig)} - {'project_id', 'config_file', 'region', 'zone'}
    overrides = {key: value for key, value in defaults.items() if key in known}
    for key, value in overrides.items():
        _check_override(site_file, key, value)
    return overrides


# Zero is allowed only where a delay can be skipped
_NON_NEGATIVE_INTS = {'sql_settle_seconds'}


def _check_override(site_file: Path, key: str, value) -> None:
    """Reject a site.yaml default whose type does not fit its field.

    Raises:
        ConfigError: wrong type, empty string, or out-of-range number
    """
    expected = _FIELD_TYPES[key]
    where = f"defaults.{key} in {site_file}"

    if expected is list:
        if not isinstance(value, list) or not value:
            raise ConfigError(f"{where} must be a non-empty list of strings")
        for item in value:
            if not isinstance(item, str) or not item.strip():
                raise ConfigError(f"{where} must contain only non-empty strings, got {item!r}")
    elif expected is int:
        # bool is an int subclass; 'true' is never a count
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{where} must be an integer, got {value!r}")
        if key in _NON_NEGATIVE_INTS:
            if value < 0:
                raise ConfigError(f"{where} must be zero or more, got {value}")
        elif value <= 0:
            raise ConfigError(f"{where} must be greater than zero, got {value}")
    elif not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{where} must be a non-empty string, got {value!r}")


def get_base_dir() -> Path:
    """Get the repository root directory."""
    return Path(__file__).parent.parent  # src/ -> repo/


def get_terraform_dir() -> Path:
    """Get the terraform working directory.

    $WIKIRUN_TERRAFORM_DIR overrides the default of <repo>/terraform.
    """
    if env_path := os.environ.get('WIKIRUN_TERRAFORM_DIR'):
        return Path(env_path)
    return get_base_dir() / 'terraform'


def default_config_file() -> Path:
    """Path of terraform.tfvars."""
    return get_terraform_dir() / 'terraform.tfvars'


def template_file_for(config_file: Path) -> Path:
    """Path of the example file next to a tfvars file."""
    return config_file.with_name(config_file.name + '.example')


def ensure_config_file(config_file: Path, template_file: Optional[Path] = None) -> bool:
    """Make sure terraform.tfvars exists, copying the template if needed.

    Returns:
        True if the file was created from the template, False if it existed.

    Raises:
        ConfigError: neither the file nor the template exists.
    """
    if config_file.exists():
        return False

    template_file = template_file or template_file_for(config_file)
    if not template_file.exists():
        raise ConfigError(
            f"{config_file} not found and no template at {template_file}\n"
            f"  Please ensure {template_file.name} exists in {template_file.parent}/"
        )

    shutil.copyfile(template_file, config_file)
    return True


def load_deploy_config(config_file: Path, site_file: Optional[Path] = None) -> DeployConfig:
    """Load deployment settings.

    Args:
        config_file: Path to terraform.tfvars
        site_file: Optional site.yaml with overrides (default: <repo>/site.yaml)

    Raises:
        ConfigError: file missing, or project_id missing or still the placeholder
    """
    if not config_file.exists():
        raise ConfigError(f"{config_file} not found")

    tfvars = _parse_tfvars(config_file)

    project_id = tfvars.get('project_id', '').strip()
    if not project_id:
        raise ConfigError(f"project_id not found in {config_file}")
    if project_id == PLACEHOLDER_PROJECT_ID:
        raise ConfigError(
            f"project_id in {config_file} is still '{PLACEHOLDER_PROJECT_ID}'\n"
            f"  Change it to your actual GCP project ID"
        )

    if site_file is None:
        site_file = get_base_dir() / 'site.yaml'
    overrides = _load_site_defaults(site_file)

    return DeployConfig(
        project_id=project_id,
        config_file=config_file,
        region=tfvars.get('region', '').strip() or DEFAULT_REGION,
        zone=tfvars.get('zone', '').strip() or DEFAULT_ZONE,
        **overrides,
    )
