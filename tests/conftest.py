"""Keep logs, caches and lock files of the test run out of the user's home."""
import os
import tempfile

os.environ.setdefault("MAILSPEND_HOME", tempfile.mkdtemp(prefix="mailspend-tests-"))
