from .config import ShareGuardConfig, setup_logging
from .validators import validate_config

__all__ = ["ShareGuardConfig", "setup_logging", "validate_config"]
