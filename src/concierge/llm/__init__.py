# src/concierge/llm/__init__.py
from .router import LLMRouter
from .types import (
    FallbackStrategy,
    LLMResponse,
    LLMUsage,
    ModelCapabilities,
    ModelConfig,
    RequestOptions,
    TaskComplexity,
)
from .errors import (
    LLMError,
    ConfigurationError,
    RequestValidationError,
    NoEligibleModelsError,
    ProviderError,
    ProviderTimeoutError,
    ProviderRateLimitError,
    AllProvidersFailedError,
    USER_FACING_UNAVAILABLE_MESSAGE,
)
