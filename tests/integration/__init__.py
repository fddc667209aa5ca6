"""
Integration tests for the inbound parse pipeline.

These tests use mocked AWS services to run complete flows across the
webhook, queue worker and notification Lambdas.
"""
