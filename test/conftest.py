"""
Test configuration for sugarcube tests
"""

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from preprocess import FeatureFlags, preprocess

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def rewrite():
  """Preprocess a string with every extension enabled and return the text"""
  def run(source, flags=None, filename="<input>"):
    return preprocess(source, filename=filename, flags=flags or FeatureFlags()).text
  return run


@pytest.fixture
def fixtures_dir():
  return FIXTURES
