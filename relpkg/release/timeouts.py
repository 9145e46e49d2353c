from __future__ import annotations

# GH / API operations
GH_TIMEOUT_SECONDS = 60.0
GH_UPLOAD_TIMEOUT_SECONDS = 10 * 60.0

# Idempotent GH read retry policy
GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0

# Package smoke tests
VALIDATION_TIMEOUT_SECONDS = 15 * 60.0

# Repository index generation (createrepo_c, dpkg-scanpackages)
INDEX_TIMEOUT_SECONDS = 5 * 60.0

# Local git operations on the published tree
GIT_TIMEOUT_SECONDS = 30.0
GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# Agent liveness smoke check
SMOKE_GRACE_SECONDS = 5.0
SMOKE_STOP_TIMEOUT_SECONDS = 30.0
