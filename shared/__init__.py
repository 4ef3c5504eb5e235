"""
Shared module for configuration and infrastructure used by the gateway.

STRUCTURE:
- shared.config: Settings (pydantic-settings) and structured logging
- shared.infrastructure: Request and connection correlation ids
"""
