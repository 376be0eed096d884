from .config import DEFAULT_CONFIG, ValidatorConfig, load_config
from .errors import (FeeError, GentxCheckError, PanicDetectedError, ParseError,
                     ProcessError, ProcessExitedError, SpawnError,
                     StagingError)
from .fee import FeeErrorReason, GentxDocument, validate_fee
from .monitor import MonitorReport, MonitorState, NodeHealthMonitor
from .pipeline import (FileValidationResult, Mode, RunResult,
                       ValidationPipeline, discover_gentx_files)
from .runner import ExternalProcessRunner, LogSink
from .workspace import ValidationWorkspace, rewrite_chain_id

__version__ = '0.2.0'
