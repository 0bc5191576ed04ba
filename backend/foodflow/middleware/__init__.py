"""
FoodFlow Backend: Middleware Package
=====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Rate Limit first: reject abusive clients before any processing
    2. Request ID: correlation id for every log line of the request
    3. Logging: method, path, status and duration, tagged with the id

    Responses travel the chain in reverse, so the request id header and the
    access log line both see the final status code.
"""
