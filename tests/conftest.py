"""Shared pytest fixtures for wikirun-driver tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


TEMPLATE_TFVARS = '''# Copy to terraform.tfvars and set your project.
project_id = "your-gcp-project-id"
region     = "us-central1"
zone       = "us-central1-a"
'''


@pytest.fixture
def terraform_dir(tmp_path):
    """Terraform directory holding only the example template."""
    tf_dir = tmp_path / 'terraform'
    tf_dir.mkdir()
    (tf_dir / 'terraform.tfvars.example').write_text(TEMPLATE_TFVARS)
    return tf_dir


@pytest.fixture
def tfvars_file(terraform_dir):
    """terraform.tfvars with a real project ID."""
    path = terraform_dir / 'terraform.tfvars'
    path.write_text('project_id = "p1"\nregion = "europe-west1"\n')
    return path


@pytest.fixture
def make_config(tmp_path):
    """Factory for DeployConfig objects rooted in tmp_path/terraform."""
    from config import DeployConfig

    def _make(**kwargs):
        tf_dir = tmp_path / 'terraform'
        tf_dir.mkdir(exist_ok=True)
        defaults = dict(
            project_id='p1',
            config_file=tf_dir / 'terraform.tfvars',
            poll_interval=0,
        )
        defaults.update(kwargs)
        return DeployConfig(**defaults)

    return _make
