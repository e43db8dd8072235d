import sys
import os

TESTS_DIR = os.path.dirname(__file__)

# Add backend/ to path so tests can import backend modules directly
sys.path.insert(0, os.path.join(TESTS_DIR, "..", "backend"))

# Add scripts/ to path so tests can import the data-check CLI directly
sys.path.insert(0, os.path.join(TESTS_DIR, "..", "scripts"))

# Shared builders (plan_utils) live next to the tests
sys.path.insert(0, TESTS_DIR)
