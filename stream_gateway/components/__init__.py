"""
Stream Gateway Components.

Organized into domain-specific modules:
- core/       - Foundational pieces (constants, context, exceptions)
- connection/ - Connection handle, registry, outbox, heartbeat
- protocol/   - Inbound message decoding and framed payloads
- streams/    - Tiers, frame buffer, stream directory
- endpoints/  - WebSocket endpoints (base, mixins, handlers)
- metrics/    - Observability (collector, prometheus)

Import from the specific submodules.
"""
