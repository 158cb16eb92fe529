"""
Integration tests for the journeys.

The actions run against a Flask application that mimics the board API,
so request routing, JSON bodies, auth headers, and status codes are
exercised through a real WSGI stack.
"""
