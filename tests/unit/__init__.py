"""Unit tests run against in-memory fakes of the Locust session."""
