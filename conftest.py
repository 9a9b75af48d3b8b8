# Ensure tests import the service package from this checkout even when it is
# not installed, so `import rewrite_proxy.*` resolves consistently.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
