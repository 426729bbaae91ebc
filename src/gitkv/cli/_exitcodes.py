"""Process exit codes shared by all gitkv commands."""

SUCCESS = 0
USAGE_ERROR = 2
BACKEND_ERROR = 3
EXECUTION_FAILURE = 4
