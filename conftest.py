# Ensure tests import the report_proxy package from this checkout first,
# whether or not the project has been installed.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
