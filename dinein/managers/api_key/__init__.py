from dinein.managers.api_key.api_key import (
    ApiKeyAttributes,
    ApiKeyCriteria,
    ApiKeyManager,
    generate_api_key,
)

__all__ = ["ApiKeyManager", "ApiKeyCriteria", "ApiKeyAttributes", "generate_api_key"]
