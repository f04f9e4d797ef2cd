import pytest

from aseimport.core.config import Config
from aseimport.parsers.ase_parser import AsepriteParser


@pytest.fixture
def config(tmp_path):
    """Default configuration that never touches the project's data folder."""
    return Config(str(tmp_path / 'config.json'))


@pytest.fixture
def parser(config):
    return AsepriteParser(config)
