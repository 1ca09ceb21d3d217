"""Business logic services.

Services contain the marketplace rules and are called by routes.
They accept their stores explicitly so tests can swap them.
"""
