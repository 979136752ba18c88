"""Shared constants for taskplan."""

import re

# Feature names become part of every input/output filename
FEATURE_PATTERN = re.compile(r'^[a-z0-9][a-z0-9._-]*$')
MAX_FEATURE_LEN = 64

# Explicit requirement tag, e.g. REQ-001 or REQ-auth-2
REQ_ID_PATTERN = re.compile(r'^REQ-[A-Za-z0-9][A-Za-z0-9_.-]*$')

STATE_DIR_NAME = ".taskplan"
CONFIG_FILE_NAME = "taskplan.env"
AGENTS_FILE_NAME = "agents.yaml"

DEFAULT_TASKS_MAX_LINES = 400
DEFAULT_AGENT_TIMEOUT = 300

# Exit codes
EXIT_OK = 0
EXIT_MISSING_INPUT = 1
EXIT_VALIDATION = 2
EXIT_ABANDONED = 3
EXIT_CONCURRENT_RUN = 4
EXIT_COLLABORATOR = 5
