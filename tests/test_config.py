"""Tests for config.py: tfvars parsing, template copy, site.yaml overrides."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import (
    DEFAULT_REGION,
    DEFAULT_ZONE,
    ConfigError,
    DeployConfig,
    _parse_tfvars,
    ensure_config_file,
    get_terraform_dir,
    load_deploy_config,
    template_file_for,
)


class TestParseTfvars:
    """Test the key = "value" parser."""

    def test_double_and_single_quotes(self, tmp_path):
        """Both quote styles are accepted."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = "p1"\nregion = \'europe-west1\'\n')
        assert _parse_tfvars(path) == {'project_id': 'p1', 'region': 'europe-west1'}

    def test_first_assignment_wins(self, tmp_path):
        """A repeated key keeps its first value."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = "first"\nproject_id = "second"\n')
        assert _parse_tfvars(path)['project_id'] == 'first'

    def test_comments_ignored(self, tmp_path):
        """Commented-out assignments are not picked up."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('# project_id = "old"\nproject_id = "new"\n')
        assert _parse_tfvars(path) == {'project_id': 'new'}


class TestEnsureConfigFile:
    """Test the template copy gate."""

    def test_existing_file_untouched(self, tfvars_file):
        """An existing config is left alone."""
        before = tfvars_file.read_text()
        assert ensure_config_file(tfvars_file) is False
        assert tfvars_file.read_text() == before

    def test_template_copied_verbatim(self, terraform_dir):
        """Missing config is created from the example byte for byte."""
        config_file = terraform_dir / 'terraform.tfvars'
        template = template_file_for(config_file)

        assert ensure_config_file(config_file) is True
        assert config_file.read_bytes() == template.read_bytes()

    def test_no_template_raises_without_side_effects(self, tmp_path):
        """Missing config and template raises and creates nothing."""
        config_file = tmp_path / 'terraform.tfvars'
        with pytest.raises(ConfigError) as exc_info:
            ensure_config_file(config_file)

        assert 'terraform.tfvars.example' in str(exc_info.value)
        assert list(tmp_path.iterdir()) == []

    def test_explicit_template(self, tmp_path):
        """A template path can be given explicitly."""
        template = tmp_path / 'custom.example'
        template.write_text('project_id = "x"\n')
        config_file = tmp_path / 'terraform.tfvars'

        assert ensure_config_file(config_file, template) is True
        assert config_file.read_text() == 'project_id = "x"\n'


class TestLoadDeployConfig:
    """Test effective configuration resolution."""

    def test_region_defaults_when_absent(self, tmp_path):
        """No region key resolves to us-central1."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = "p1"\n')

        config = load_deploy_config(path, site_file=tmp_path / 'missing.yaml')

        assert config.project_id == 'p1'
        assert config.region == 'us-central1'
        assert config.region == DEFAULT_REGION
        assert config.zone == DEFAULT_ZONE

    def test_region_from_file(self, tmp_path):
        """An explicit region wins over the default."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = "p1"\nregion = "europe-west1"\nzone = "europe-west1-b"\n')

        config = load_deploy_config(path, site_file=tmp_path / 'missing.yaml')

        assert config.region == 'europe-west1'
        assert config.zone == 'europe-west1-b'

    def test_missing_file(self, tmp_path):
        """A missing file is a configuration error."""
        with pytest.raises(ConfigError, match='not found'):
            load_deploy_config(tmp_path / 'terraform.tfvars')

    def test_missing_project_id(self, tmp_path):
        """project_id is required."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('region = "us-east1"\n')
        with pytest.raises(ConfigError, match='project_id not found'):
            load_deploy_config(path, site_file=tmp_path / 'missing.yaml')

    def test_empty_project_id(self, tmp_path):
        """An empty project_id counts as missing."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = ""\n')
        with pytest.raises(ConfigError, match='project_id not found'):
            load_deploy_config(path, site_file=tmp_path / 'missing.yaml')

    def test_placeholder_rejected(self, terraform_dir):
        """The template value is not a usable project."""
        config_file = terraform_dir / 'terraform.tfvars'
        ensure_config_file(config_file)
        with pytest.raises(ConfigError, match='your-gcp-project-id'):
            load_deploy_config(config_file, site_file=terraform_dir / 'missing.yaml')

    def test_site_defaults_applied(self, tmp_path):
        """site.yaml defaults override built-in constants."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = "p1"\n')
        site = tmp_path / 'site.yaml'
        site.write_text(
            'defaults:\n'
            '  service_name: my-wiki\n'
            '  terraform_bin: tofu\n'
            '  poll_attempts: 5\n'
            '  unknown_key: ignored\n'
        )

        config = load_deploy_config(path, site_file=site)

        assert config.service_name == 'my-wiki'
        assert config.terraform_bin == 'tofu'
        assert config.poll_attempts == 5
        assert not hasattr(config, 'unknown_key')

    def test_site_cannot_override_tfvars_keys(self, tmp_path):
        """project_id and region only come from terraform.tfvars."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = "p1"\n')
        site = tmp_path / 'site.yaml'
        site.write_text('defaults:\n  project_id: other\n  region: asia-east1\n')

        config = load_deploy_config(path, site_file=site)

        assert config.project_id == 'p1'
        assert config.region == DEFAULT_REGION

    def test_invalid_site_yaml(self, tmp_path):
        """Malformed site.yaml raises ConfigError."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = "p1"\n')
        site = tmp_path / 'site.yaml'
        site.write_text('defaults: [unclosed\n')

        with pytest.raises(ConfigError, match='Invalid YAML'):
            load_deploy_config(path, site_file=site)

    @pytest.mark.parametrize('defaults,message', [
        ('  image_tags: latest\n', 'non-empty list of strings'),
        ('  image_tags: []\n', 'non-empty list of strings'),
        ("  image_tags: ['2', '']\n", 'only non-empty strings'),
        ('  image_tags: [2, latest]\n', 'only non-empty strings'),
        ('  poll_attempts: "15"\n', 'must be an integer'),
        ('  poll_attempts: true\n', 'must be an integer'),
        ('  poll_attempts: 0\n', 'greater than zero'),
        ('  poll_interval: -60\n', 'greater than zero'),
        ('  apply_timeout: 2.5\n', 'must be an integer'),
        ('  sql_settle_seconds: -1\n', 'zero or more'),
        ('  service_name: ""\n', 'non-empty string'),
        ('  terraform_bin: 42\n', 'non-empty string'),
        ('  upstream_image:\n', 'non-empty string'),
    ])
    def test_site_defaults_type_checked(self, tmp_path, defaults, message):
        """Ill-typed site.yaml defaults fail as configuration errors."""
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = "p1"\n')
        site = tmp_path / 'site.yaml'
        site.write_text('defaults:\n' + defaults)

        with pytest.raises(ConfigError, match=message):
            load_deploy_config(path, site_file=site)

    def test_site_zero_settle_delay_allowed(self, tmp_path):
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = "p1"\n')
        site = tmp_path / 'site.yaml'
        site.write_text("defaults:\n  sql_settle_seconds: 0\n  image_tags: ['3']\n")

        config = load_deploy_config(path, site_file=site)

        assert config.sql_settle_seconds == 0
        assert config.image_tags == ['3']

    def test_site_defaults_must_be_mapping(self, tmp_path):
        path = tmp_path / 'terraform.tfvars'
        path.write_text('project_id = "p1"\n')
        site = tmp_path / 'site.yaml'
        site.write_text('defaults:\n  - service_name\n')

        with pytest.raises(ConfigError, match='must be a mapping'):
            load_deploy_config(path, site_file=site)


class TestDeployConfig:
    """Test derived DeployConfig properties."""

    def test_registry_paths(self, tmp_path):
        """Registry host and URL follow the region and project."""
        config = DeployConfig(project_id='p1', config_file=tmp_path / 'terraform.tfvars',
                              region='europe-west1')
        assert config.registry_host == 'europe-west1-docker.pkg.dev'
        assert config.registry_url == 'europe-west1-docker.pkg.dev/p1/wiki-js'

    def test_terraform_dir_is_config_parent(self, tmp_path):
        """The terraform directory is where terraform.tfvars lives."""
        config = DeployConfig(project_id='p1', config_file=str(tmp_path / 'terraform.tfvars'))
        assert config.terraform_dir == tmp_path

    def test_primary_tag(self, tmp_path):
        """The first image tag is the one the service runs."""
        config = DeployConfig(project_id='p1', config_file=tmp_path / 'x')
        assert config.image_tags == ['2', 'latest']
        assert config.primary_tag == '2'


class TestTerraformDir:
    """Test terraform directory discovery."""

    def test_env_override(self, tmp_path, monkeypatch):
        """WIKIRUN_TERRAFORM_DIR overrides the default."""
        monkeypatch.setenv('WIKIRUN_TERRAFORM_DIR', str(tmp_path))
        assert get_terraform_dir() == tmp_path

    def test_default(self, monkeypatch):
        """Default is <repo>/terraform."""
        monkeypatch.delenv('WIKIRUN_TERRAFORM_DIR', raising=False)
        assert get_terraform_dir().name == 'terraform'
