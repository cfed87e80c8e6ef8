from .process_status import ProcessStatus as ProcessStatus
