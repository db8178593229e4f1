from .browser.flow import SocialLoginFlow, perform_social_login, run_social_login
from .config import SocialLoginConfig, load_config
from .errors import ConfigurationError, RaceFailure, SocialLoginError, UIWaitTimeout
from .models import ExtractionResult

__all__ = [
    "ConfigurationError",
    "ExtractionResult",
    "RaceFailure",
    "SocialLoginConfig",
    "SocialLoginError",
    "SocialLoginFlow",
    "UIWaitTimeout",
    "load_config",
    "perform_social_login",
    "run_social_login",
]
