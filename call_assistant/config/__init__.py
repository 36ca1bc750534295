"""
Configuration module for the call assistant service.

Key components:
- constants: Application-wide constants such as the logger name, provider
  endpoints, retry defaults and the overlay socket message types.
- logging_config: Console and rotating-file logging for the ``call_assistant`` logger.
- settings: Environment-driven settings with the credential checks that must
  pass before a call session is allowed to touch the network.

Usage examples:
```python
from call_assistant.config.logging_config import configure_logging
from call_assistant.config.settings import AssistantSettings

logger = configure_logging()
settings = AssistantSettings.from_env()
settings.validate_for_session()  # raises ConfigurationError
```
"""
