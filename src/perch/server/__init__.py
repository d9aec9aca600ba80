"""ASGI server glue — request handling, error responses, and response sending."""
