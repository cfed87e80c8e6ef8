from .binary import binary_path as binary_path
from .models import ProcessStatus as ProcessStatus
from .process import Process as Process
from .process_options import (
    ProcessOption as ProcessOption,
    ProcessOptions as ProcessOptions,
    with_env_vars as with_env_vars,
    with_exit_code as with_exit_code,
    with_stderr as with_stderr,
    with_stdout as with_stdout,
    with_working_directory as with_working_directory,
)
