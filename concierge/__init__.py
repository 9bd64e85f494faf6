"""Voice apartment concierge: dialogue policy, streaming synthesis, HTTP API.

The FastAPI app lives in ``concierge.app`` and is not imported here, so
the dialogue and synthesis layers can be used without building it.
"""
