"""
Test suite for the board API load tests.

This package contains:
- unit/: Actions, pre-authentication, journeys, profiles, and thresholds
  against in-memory fakes
- integration/: Journeys end to end against a Flask mock of the board API
"""
