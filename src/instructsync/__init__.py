"""
instructsync — keep copilot-instructions.md in step with a GitHub gist.

One file, two replicas. The local copy lives in the project, the remote
copy lives in a gist. A content fingerprint plus an embedded version
marker decide which way the bytes flow.
"""

import os

__version__ = "0.1.0"
__author__ = "instructsync contributors"

SYNC_HOME = os.environ.get("INSTRUCTSYNC_HOME", "~/.instructsync")
ARTIFACT_NAME = "copilot-instructions.md"
