# core.py
from typing import Optional
from mini_arch.utils.logger import RichAppLogger

# A global variable to hold the initialized logger wrapper
# It starts as None and will be set by the CLI before any step runs
app_logger: Optional[RichAppLogger] = None
